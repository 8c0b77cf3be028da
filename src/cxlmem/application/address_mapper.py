# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Address mapping between memory blocks and CXL regions.

A block with id ``n`` starts at physical address ``n * block_size``. A
block belongs to a region when that address lies inside
[region base, region base + region size). The relation is recomputed on
every query and never cached as an index.

Precondition: interleave granularity is validated by callers (see
cxlmem.domain.value_objects.validate_granularity); nothing here depends
on it.
"""

from collections.abc import Callable

import structlog

from cxlmem.application.block_registry import BlockRegistry
from cxlmem.domain.entities import MemoryBlock
from cxlmem.domain.errors import (
    BlockNotFoundError,
    ConfigurationInconsistencyError,
    ResourceUnavailableError,
)
from cxlmem.domain.services import block_address
from cxlmem.domain.value_objects import (
    ADDRESS_UNAVAILABLE,
    ADDRESS_UNSET,
    U64_MASK,
    CapacitySummary,
    RegionBounds,
)
from cxlmem.ports.outbound import AttributePort, CxlTopologyPort

logger = structlog.get_logger(__name__)

BLOCK_SIZE_ATTR = "block_size_bytes"


class BlockAddressMapper:
    """Computes block and region addresses and block/region membership.

    Args:
        attributes: Port for the memory block root (block size attribute).
        registry: Block snapshot to map.
        topology: CXL topology port (region base/size).
        regions: Provider of known region names; defaults to
            ``topology.list_regions``. The RegionProvisioner passes its cached
            list so both see the same set.
    """

    def __init__(
        self,
        attributes: AttributePort,
        registry: BlockRegistry,
        topology: CxlTopologyPort,
        regions: Callable[[], list[str]] | None = None,
    ) -> None:
        self._attributes = attributes
        self._registry = registry
        self._topology = topology
        self._regions = regions or topology.list_regions

    def block_size(self) -> int:
        """Read the system block size, fresh on every call.

        Returns:
            Block size in bytes, 0 if it cannot be read or parsed.
        """
        try:
            text = self._attributes.read(BLOCK_SIZE_ATTR)
        except ResourceUnavailableError:
            logger.error("block_size_unreadable")
            return 0
        try:
            return int(text.strip(), 16)
        except ValueError:
            logger.error("block_size_invalid", value=text)
            return 0

    def require_block_size(self) -> int:
        """Block size, raising instead of returning 0.

        Raises:
            ConfigurationInconsistencyError: If the block size is unavailable.
        """
        size = self.block_size()
        if size == 0:
            raise ConfigurationInconsistencyError("Unable to read system memory block size")
        return size

    def address(self, block: MemoryBlock) -> int:
        """Physical start address of a block.

        Raises:
            ConfigurationInconsistencyError: If the block size is unavailable.
        """
        return block_address(block, self.require_block_size())

    def region_bounds(self, region: str) -> RegionBounds:
        """Read a region's address range.

        A zero size is not an error: the result is an empty RegionBounds
        and callers treat the region as containing nothing.

        Raises:
            ConfigurationInconsistencyError: If the base address is 0 or all-ones.
        """
        base = self._topology.region_resource(region) & U64_MASK
        if base in (ADDRESS_UNSET, ADDRESS_UNAVAILABLE):
            raise ConfigurationInconsistencyError(
                f"Unable to get resource address of region {region}: {base:#x}"
            )
        size = self._topology.region_size(region)
        if size == 0:
            logger.warning("region_size_zero", region=region)
        return RegionBounds(base=base, size=size)

    def region_of(self, block: MemoryBlock) -> str | None:
        """First region whose range contains the block, None if none does.

        Regions with an unavailable base or zero size are skipped.
        """
        regions = self._regions()
        if not regions:
            return None

        addr = self.address(block)
        for region in regions:
            try:
                bounds = self.region_bounds(region)
            except ConfigurationInconsistencyError:
                logger.warning("region_skipped_unavailable_base", region=region)
                continue
            if bounds.contains(addr):
                return region
        return None

    def blocks_of(self, region: str, online: bool | None = None) -> list[MemoryBlock]:
        """Blocks inside a region, ascending by id.

        Args:
            region: Region name.
            online: If given, keep only blocks whose online flag matches.

        Returns:
            Blocks in ascending id order, empty for a zero-size region.

        Raises:
            ConfigurationInconsistencyError: Unavailable block size or region base.
        """
        block_size = self.require_block_size()
        bounds = self.region_bounds(region)
        if bounds.is_empty:
            return []

        result = []
        for blk in self._registry:
            if not bounds.contains(block_address(blk, block_size)):
                continue
            if online is not None and blk.online != online:
                continue
            result.append(blk)
        return result

    def num_blocks_of(self, region: str, online: bool | None = None) -> int:
        return len(self.blocks_of(region, online=online))

    def offset_to_block(self, region: str, offset: int) -> MemoryBlock:
        """Resolve the block at a block offset within a region.

        Args:
            region: Region name.
            offset: Zero-based block index from the region base.

        Raises:
            ValueError: If offset is negative.
            ConfigurationInconsistencyError: Unavailable block size or base.
            BlockNotFoundError: If the region has zero size, the offset lies
                past the region end, or no block starts at the computed address.
        """
        if offset < 0:
            raise ValueError(f"Block offset must be >= 0, got {offset}")

        block_size = self.require_block_size()
        bounds = self.region_bounds(region)
        if bounds.is_empty:
            raise BlockNotFoundError(f"Region {region} has zero size and contains no blocks")

        addr = bounds.base + block_size * offset
        if addr >= bounds.base + bounds.size:
            raise BlockNotFoundError(
                f"Offset {offset} exceeds the range of region {region}"
            )

        for blk in self._registry:
            if block_address(blk, block_size) == addr:
                return blk
        raise BlockNotFoundError(f"No memory block at address {addr:#x} in region {region}")

    def system_capacity(self) -> CapacitySummary:
        """Block counts and bytes for the whole system."""
        return CapacitySummary(
            block_size=self.require_block_size(),
            total_blocks=self._registry.count(),
            online_blocks=self._registry.count_online(),
        )

    def region_capacity(self, region: str) -> CapacitySummary:
        """Block counts and bytes for one region."""
        blocks = self.blocks_of(region)
        return CapacitySummary(
            block_size=self.require_block_size(),
            total_blocks=len(blocks),
            online_blocks=sum(1 for blk in blocks if blk.online),
        )
