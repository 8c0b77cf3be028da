# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain services for logic that doesn't belong to entities.

Services here are pure functions of entity fields: they perform no I/O and
can be called any number of times with identical results.
"""

from cxlmem.domain.entities import MemoryBlock
from cxlmem.domain.value_objects import U64_MASK, BlockPolicy, RawBlockState, Zone


def classify(block: MemoryBlock) -> BlockPolicy:
    """Classify a block into its effective state.

    Rules, first match wins:
        1. raw state offline -> OFFLINE
        2. DMA or DMA32 zone valid -> ONLINE_KERNEL
        3. Normal zone valid -> ONLINE
        4. Movable zone valid -> ONLINE_MOVABLE
        5. otherwise -> ONLINE

    Args:
        block: Block snapshot from the registry.

    Returns:
        The BlockPolicy the block is currently in.
    """
    if block.raw_state is RawBlockState.OFFLINE:
        return BlockPolicy.OFFLINE
    if block.valid_zones & (Zone.DMA | Zone.DMA32):
        return BlockPolicy.ONLINE_KERNEL
    if block.valid_zones & Zone.NORMAL:
        return BlockPolicy.ONLINE
    if block.valid_zones & Zone.MOVABLE:
        return BlockPolicy.ONLINE_MOVABLE
    return BlockPolicy.ONLINE


def block_address(block: MemoryBlock, block_size: int) -> int:
    """Physical start address of a block (u64 arithmetic)."""
    return (block_size * block.block_id) & U64_MASK
