# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Memory block state machine.

States (see cxlmem.domain.services.classify):

    OFFLINE <-> ONLINE / ONLINE_KERNEL / ONLINE_MOVABLE

Any online state can go to OFFLINE, and OFFLINE can go to any online
state. Direct online -> online transitions are rejected; a block must pass
through OFFLINE.

Transitions are decided from the registry snapshot (no I/O) and then
written to the block's ``online`` or ``state`` attribute. Every write is
verified by byte count.
"""

from collections.abc import Callable, Iterable

import structlog

from cxlmem.application.block_registry import BlockRegistry
from cxlmem.domain.entities import MemoryBlock
from cxlmem.domain.errors import (
    InvalidTransitionError,
    MemError,
    PartialFailureError,
    WriteVerificationError,
)
from cxlmem.domain.services import classify
from cxlmem.domain.value_objects import BlockPolicy
from cxlmem.ports.outbound import AttributePort

logger = structlog.get_logger(__name__)

OFFLINE_VALUE = "0"


class StateController:
    """Performs block state transitions through the attribute port.

    Block paths are built directly from the block id (``memory<id>/...``).

    Example:
        >>> controller = StateController(attributes, registry)
        >>> blk = registry.find_by_id(40)
        >>> controller.offline(blk)
        >>> controller.set_state(blk, BlockPolicy.ONLINE_MOVABLE)  # stale snapshot!
        InvalidTransitionError: ...
        >>> registry.refresh()
        >>> controller.set_state(registry.find_by_id(40), BlockPolicy.ONLINE_MOVABLE)
    """

    def __init__(self, attributes: AttributePort, registry: BlockRegistry) -> None:
        self._attributes = attributes
        self._registry = registry

    def classify(self, block: MemoryBlock) -> BlockPolicy:
        """Current state of a block from its cached fields (no I/O)."""
        return classify(block)

    def _write_verified(self, block: MemoryBlock, attr: str, value: str) -> None:
        path = f"{block.name}/{attr}"
        expected = len(value) + 1
        written = self._attributes.write(path, value)
        if written != expected:
            raise WriteVerificationError(
                f"Short write to {path}: {written}/{expected} bytes",
                expected=expected,
                written=written,
            )

    def offline(self, block: MemoryBlock) -> None:
        """Offline a block. No-op if it is already offline.

        Raises:
            ResourceUnavailableError: If the ``online`` attribute cannot be opened.
            WriteVerificationError: If the kernel did not accept the write.
        """
        state = self.classify(block)
        if state is BlockPolicy.OFFLINE:
            logger.info("block_already_offline", block=block.block_id)
            return

        try:
            self._write_verified(block, "online", OFFLINE_VALUE)
        except MemError as e:
            logger.error("block_offline_failed", block=block.block_id, error=str(e))
            raise
        logger.info("block_offlined", block=block.block_id, previous=state.value)

    def online(self, block: MemoryBlock) -> None:
        """Online an offline block into the movable zone.

        Raises:
            InvalidTransitionError: If the block is not offline, including when
                it is already online-movable.
            ResourceUnavailableError: If the ``state`` attribute cannot be opened.
            WriteVerificationError: If the kernel did not accept the write.
        """
        state = self.classify(block)
        if state is not BlockPolicy.OFFLINE:
            raise InvalidTransitionError(
                f"Cannot online memory block {block.block_id}: it is not offline ({state.value})"
            )

        try:
            self._write_verified(block, "state", BlockPolicy.ONLINE_MOVABLE.sysfs_value)
        except MemError as e:
            logger.error("block_online_failed", block=block.block_id, error=str(e))
            raise
        logger.info("block_onlined", block=block.block_id)

    def set_state(self, block: MemoryBlock, target: BlockPolicy) -> None:
        """Move a block to a target state.

        No-op if the block is already in ``target``. Online targets require
        the block to be offline first.

        Raises:
            InvalidTransitionError: If both current and target states are online.
            ResourceUnavailableError: If the ``state`` attribute cannot be opened.
            WriteVerificationError: If the kernel did not accept the write.
        """
        state = self.classify(block)
        if state is target:
            logger.info("block_state_unchanged", block=block.block_id, state=state.value)
            return

        if target is not BlockPolicy.OFFLINE and state is not BlockPolicy.OFFLINE:
            raise InvalidTransitionError(
                f"Cannot set memory block {block.block_id} to {target.value}: "
                f"it is not offline ({state.value})"
            )

        try:
            self._write_verified(block, "state", target.sysfs_value)
        except MemError as e:
            logger.error(
                "block_set_state_failed", block=block.block_id, target=target.value, error=str(e)
            )
            raise
        logger.info("block_state_set", block=block.block_id, previous=state.value, state=target.value)

    # Bulk operations

    def offline_blocks(self, blocks: Iterable[MemoryBlock]) -> int:
        """Offline every block, continuing past individual failures.

        Returns:
            Number of blocks processed.

        Raises:
            PartialFailureError: If any block failed; carries the failure count.
        """
        return self._bulk(blocks, self.offline, "offline")

    def online_blocks(self, blocks: Iterable[MemoryBlock]) -> int:
        """Online every block (movable), continuing past individual failures.

        Raises:
            PartialFailureError: If any block failed; carries the failure count.
        """
        return self._bulk(blocks, self.online, "online")

    def _bulk(
        self,
        blocks: Iterable[MemoryBlock],
        action: Callable[[MemoryBlock], None],
        verb: str,
    ) -> int:
        total = 0
        failed = 0
        for blk in blocks:
            total += 1
            try:
                action(blk)
            except MemError as e:
                failed += 1
                logger.error(f"bulk_{verb}_block_failed", block=blk.block_id, error=str(e))

        if failed:
            raise PartialFailureError(
                f"Failed to {verb} {failed} of {total} memory blocks",
                failed=failed,
                total=total,
            )
        return total

    # By-id helpers

    def offline_id(self, block_id: int) -> None:
        self.offline(self._registry.find_by_id(block_id))

    def online_id(self, block_id: int) -> None:
        self.online(self._registry.find_by_id(block_id))

    def set_state_id(self, block_id: int, target: BlockPolicy) -> None:
        self.set_state(self._registry.find_by_id(block_id), target)
