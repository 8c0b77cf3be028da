# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""System-wide auto-online policy for hot-added memory blocks."""

import structlog

from cxlmem.domain.errors import InvalidPolicyError, WriteVerificationError
from cxlmem.domain.value_objects import BlockPolicy
from cxlmem.ports.outbound import AttributePort

logger = structlog.get_logger(__name__)

POLICY_ATTR = "auto_online_blocks"


class PolicyManager:
    """Reads and writes ``auto_online_blocks`` under the memory root."""

    def __init__(self, attributes: AttributePort) -> None:
        self._attributes = attributes

    def get(self) -> BlockPolicy:
        """Current auto-online policy.

        Raises:
            ResourceUnavailableError: If the attribute cannot be read.
            InvalidPolicyError: If the attribute holds an unknown policy.
        """
        return BlockPolicy.parse(self._attributes.read(POLICY_ATTR))

    def set(self, mode: BlockPolicy | str) -> None:
        """Set the auto-online policy. No-op if it is already ``mode``.

        Args:
            mode: Policy enum member or its kernel string.

        Raises:
            InvalidPolicyError: If ``mode`` is not a valid policy.
            ResourceUnavailableError: If the attribute cannot be opened.
            WriteVerificationError: If the kernel did not accept the write.
        """
        if isinstance(mode, str):
            mode = BlockPolicy.parse(mode)
        elif not isinstance(mode, BlockPolicy):
            raise InvalidPolicyError(f"Invalid memory auto online policy: {mode!r}")

        try:
            current = self.get()
        except InvalidPolicyError:
            logger.warning("policy_current_unparseable")
            current = None

        if current is mode:
            logger.info("policy_unchanged", policy=mode.value)
            return

        value = mode.sysfs_value
        expected = len(value) + 1
        written = self._attributes.write(POLICY_ATTR, value)
        if written != expected:
            logger.error("policy_write_failed", policy=value, written=written)
            raise WriteVerificationError(
                f"Failed to write memory auto online policy: {written}/{expected} bytes",
                expected=expected,
                written=written,
            )
        logger.info("policy_set", policy=value)
