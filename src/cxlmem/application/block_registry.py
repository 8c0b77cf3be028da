# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Registry of kernel memory blocks.

The registry scans the memory block root once per session and keeps a
sorted, immutable snapshot. Higher layers iterate it with the
first()/next() cursor or a plain ``for block in registry`` loop.

Staleness: the snapshot is never invalidated implicitly. State changes
made through the StateController, or by other tools, are only visible
after an explicit refresh().
"""

import re
from collections.abc import Iterator

import structlog

from cxlmem.domain.entities import UNKNOWN_NODE, MemoryBlock
from cxlmem.domain.errors import BlockNotFoundError, ResourceUnavailableError
from cxlmem.domain.value_objects import RawBlockState, Zone, parse_zones
from cxlmem.ports.outbound import AttributePort

logger = structlog.get_logger(__name__)

_BLOCK_DIR_PATTERN = re.compile(r"^memory(\d+)$")
_NODE_LINK_PATTERN = re.compile(r"^node(\d+)$")


def _parse_int(text: str) -> int:
    """Parse an integer attribute the way strtoul(..., 0) would."""
    text = text.strip()
    try:
        return int(text, 0)
    except ValueError:
        # int(..., 0) rejects leading zeros ("08"); sysfs decimal values can have them
        return int(text, 10)


class BlockRegistry:
    """Sorted snapshot of all memory blocks.

    Attributes:
        attributes: Port used for directory scans and attribute reads.

    Example:
        >>> registry = BlockRegistry(SysfsAttributeAdapter("/sys/devices/system/memory"))
        >>> registry.enumerate()
        >>> blk = registry.first()
        >>> while blk is not None:
        ...     print(blk.block_id)
        ...     blk = registry.next(blk)
    """

    def __init__(self, attributes: AttributePort) -> None:
        self.attributes = attributes
        self._blocks: list[MemoryBlock] = []
        self._index: dict[int, int] = {}

    def enumerate(self) -> None:
        """Scan the block directory and build the sorted snapshot.

        A no-op when the registry already holds blocks.

        Raises:
            ResourceUnavailableError: If the block directory cannot be listed.
        """
        if self._blocks:
            return

        try:
            entries = self.attributes.list_dir("")
        except ResourceUnavailableError:
            logger.error("memory_block_dir_unavailable")
            raise

        blocks: list[MemoryBlock] = []
        for entry in entries:
            if not entry.is_dir:
                continue
            match = _BLOCK_DIR_PATTERN.match(entry.name)
            if match is None:
                continue
            blocks.append(self._read_block(int(match.group(1)), entry.name))

        blocks.sort(key=lambda blk: blk.block_id)
        self._blocks = blocks
        self._index = {blk.block_id: i for i, blk in enumerate(blocks)}

        logger.info("memory_blocks_enumerated", count=len(blocks))

    def refresh(self) -> None:
        """Drop the snapshot and rescan the block directory."""
        self._blocks = []
        self._index = {}
        self.enumerate()

    def _read_block(self, block_id: int, dirname: str) -> MemoryBlock:
        """Read one block's attributes; unreadable attributes keep defaults."""
        node = UNKNOWN_NODE
        try:
            for entry in self.attributes.list_dir(dirname):
                match = _NODE_LINK_PATTERN.match(entry.name)
                if entry.is_link and match is not None:
                    node = int(match.group(1))
        except ResourceUnavailableError:
            logger.debug("memory_block_node_unresolved", block=block_id)

        online = self._read_int(dirname, "online", 0)
        phys_device = self._read_int(dirname, "phys_device", 0)
        removable = self._read_int(dirname, "removable", 0)

        raw_state = RawBlockState.OFFLINE
        text = self._read_text(dirname, "state")
        if text is not None:
            parsed = RawBlockState.parse(text)
            if parsed is not None:
                raw_state = parsed

        zones = Zone(0)
        text = self._read_text(dirname, "valid_zones")
        if text is not None:
            zones = parse_zones(text)

        return MemoryBlock(
            block_id=block_id,
            node=node,
            online=bool(online),
            phys_device=phys_device,
            removable=bool(removable),
            raw_state=raw_state,
            valid_zones=zones,
        )

    def _read_text(self, dirname: str, attr: str) -> str | None:
        try:
            return self.attributes.read(f"{dirname}/{attr}")
        except ResourceUnavailableError:
            logger.debug("memory_block_attr_unreadable", block=dirname, attr=attr)
            return None

    def _read_int(self, dirname: str, attr: str, default: int) -> int:
        text = self._read_text(dirname, attr)
        if text is None:
            return default
        try:
            return _parse_int(text)
        except ValueError:
            logger.warning("memory_block_attr_invalid", block=dirname, attr=attr, value=text)
            return default

    def _ensure(self) -> None:
        if not self._blocks:
            self.enumerate()

    # Cursor

    def first(self) -> MemoryBlock | None:
        """First block in id order, None if the system has no blocks."""
        self._ensure()
        return self._blocks[0] if self._blocks else None

    def next(self, block: MemoryBlock) -> MemoryBlock | None:
        """Block following ``block`` in id order, None at the end."""
        self._ensure()
        i = self._index.get(block.block_id)
        if i is None or i + 1 >= len(self._blocks):
            return None
        return self._blocks[i + 1]

    def __iter__(self) -> Iterator[MemoryBlock]:
        self._ensure()
        return iter(list(self._blocks))

    def __len__(self) -> int:
        self._ensure()
        return len(self._blocks)

    # Lookups and counts

    def find_by_id(self, block_id: int) -> MemoryBlock:
        """Get a block by kernel id.

        Raises:
            BlockNotFoundError: If no block has this id.
        """
        self._ensure()
        i = self._index.get(block_id)
        if i is None:
            raise BlockNotFoundError(f"Memory block {block_id} not found")
        return self._blocks[i]

    def ids(self) -> list[int]:
        self._ensure()
        return [blk.block_id for blk in self._blocks]

    def count(self) -> int:
        return len(self)

    def count_online(self) -> int:
        return sum(1 for blk in self if blk.online)

    def count_offline(self) -> int:
        return sum(1 for blk in self if not blk.online)
