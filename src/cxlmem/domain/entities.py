# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain entities for memory block management.

All entities in this module have NO external dependencies - only Python
stdlib and typing imports.
"""

from dataclasses import dataclass

from cxlmem.domain.errors import BlockValidationError
from cxlmem.domain.value_objects import RawBlockState, Zone

UNKNOWN_NODE = -1


@dataclass(frozen=True)
class MemoryBlock:
    """Snapshot of one kernel memory block (``memory<id>`` in sysfs).

    Blocks are read once per session by the BlockRegistry and never mutated
    in place. A state change made through the StateController is only
    visible after an explicit registry refresh.

    Attributes:
        block_id: Kernel block index; the block covers physical addresses
            starting at ``block_id * block_size``.
        node: NUMA node from the ``node<N>`` link, UNKNOWN_NODE if absent.
        online: Value of the ``online`` attribute.
        phys_device: Value of the ``phys_device`` attribute.
        removable: Value of the ``removable`` attribute.
        raw_state: Parsed ``state`` attribute.
        valid_zones: Parsed ``valid_zones`` attribute.

    Example:
        >>> block = MemoryBlock(block_id=32, online=True, raw_state=RawBlockState.ONLINE,
        ...                     valid_zones=Zone.MOVABLE)
        >>> block.name
        'memory32'
    """

    block_id: int
    node: int = UNKNOWN_NODE
    online: bool = False
    phys_device: int = 0
    removable: bool = False
    raw_state: RawBlockState = RawBlockState.OFFLINE
    valid_zones: Zone = Zone(0)

    @property
    def name(self) -> str:
        """Directory name of this block under the memory root."""
        return f"memory{self.block_id}"

    def __post_init__(self) -> None:
        """Validate block invariants after construction."""
        if self.block_id < 0:
            raise BlockValidationError(f"block_id must be >= 0, got {self.block_id}")
