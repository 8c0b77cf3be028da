# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Sysfs attribute adapter.

Reads and writes single-value kernel attribute files below a root
directory. sysfs attributes are rewritten in place, so writes open the
existing file without truncation or creation.
"""

import logging
import os
from pathlib import Path

from cxlmem.domain.errors import ResourceUnavailableError
from cxlmem.ports.outbound import DirEntry

logger = logging.getLogger(__name__)


class SysfsAttributeAdapter:
    """AttributePort implementation over a sysfs directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        if Path(path).is_absolute() or ".." in Path(path).parts:
            raise ResourceUnavailableError(f"Attribute path must be relative to {self.root}: {path}")
        return self.root / path if path else self.root

    def read(self, path: str) -> str:
        target = self._resolve(path)
        try:
            with open(target, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            logger.debug(f"Failed to read {target}: {e}")
            raise ResourceUnavailableError(f"Failed to read {target}: {e}") from e
        return text.rstrip("\n")

    def write(self, path: str, value: str) -> int:
        """Write ``value`` plus a newline in a single write call.

        A write the kernel rejects (EINVAL, EBUSY, ...) is reported as 0
        bytes written; callers compare the count against ``len(value) + 1``.

        Raises:
            ResourceUnavailableError: If the attribute cannot be opened.
        """
        target = self._resolve(path)
        try:
            fd = os.open(target, os.O_WRONLY)
        except OSError as e:
            logger.error(f"Failed to open {target} for writing: {e}")
            raise ResourceUnavailableError(f"Failed to open {target}: {e}") from e

        try:
            written = os.write(fd, f"{value}\n".encode())
        except OSError as e:
            logger.warning(f"Kernel rejected '{value}' written to {target}: {e}")
            written = 0
        finally:
            os.close(fd)
        return written

    def list_dir(self, path: str = "") -> list[DirEntry]:
        target = self._resolve(path)
        try:
            with os.scandir(target) as it:
                return [
                    DirEntry(
                        name=entry.name,
                        is_dir=entry.is_dir(),
                        is_link=entry.is_symlink(),
                    )
                    for entry in it
                ]
        except OSError as e:
            raise ResourceUnavailableError(f"Failed to list {target}: {e}") from e
