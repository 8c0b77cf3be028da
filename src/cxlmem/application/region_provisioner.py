# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""CXL region provisioning and lifecycle.

Region creation is the only transactional operation in the package. It
runs these steps, deleting the partially built region if any step after
creation fails:

1. Resolve the root decoder
2. Create an empty RAM region under it
3. Set interleave ways and granularity
4. For each memdev: set its endpoint decoder to RAM mode and DPA size
5. Set the region size to the sum of the memdev RAM sizes
6. Bind each decoder to its target slot
7. Commit the decode layout
8. Enable the region

Delete, enable/disable and dax/ram mode switches are not transactional.
A failure leaves the region in an intermediate state that is safe to
retry (e.g. blocks offline but region not deleted).
"""

import logging

from cxlmem.application.address_mapper import BlockAddressMapper
from cxlmem.application.state_controller import StateController
from cxlmem.domain.errors import (
    ConfigurationInconsistencyError,
    InvalidTransitionError,
    MemdevNotFoundError,
    MemError,
    PartialFailureError,
    RegionNotFoundError,
    RegionProvisioningError,
    ResourceUnavailableError,
)
from cxlmem.domain.services import classify
from cxlmem.domain.value_objects import (
    BlockPolicy,
    MemdevInfo,
    RegionInfo,
    validate_granularity,
)
from cxlmem.ports.outbound import CxlTopologyPort

logger = logging.getLogger(__name__)

DECODER_MODE_RAM = "ram"


class RegionProvisioner:
    """Creates, deletes and reconfigures CXL regions.

    The region list is read once and cached for the session. Creating or
    deleting a region through this class refreshes the cache; changes made
    by other tools are only seen after refresh_regions().

    Thread Safety:
    - Not thread-safe. Callers must not run concurrent mutating sessions
      against the same kernel resources.

    Example:
        >>> provisioner = RegionProvisioner(topology, controller, mapper)
        >>> name = provisioner.create(4096, ["mem0", "mem1"])
        >>> provisioner.dax_mode(name)
        >>> provisioner.delete(name)
    """

    def __init__(
        self,
        topology: CxlTopologyPort,
        controller: StateController,
        mapper: BlockAddressMapper,
    ) -> None:
        self._topology = topology
        self._controller = controller
        self._mapper = mapper
        self._regions: list[str] | None = None

    # Collections

    def list_regions(self) -> list[str]:
        """Known regions, read once per session."""
        if self._regions is None:
            self._regions = list(self._topology.list_regions())
        return list(self._regions)

    def refresh_regions(self) -> list[str]:
        """Re-read the region list from the topology."""
        self._regions = None
        return self.list_regions()

    def get_region(self, name: str) -> str:
        """Validate that a region exists.

        Raises:
            RegionNotFoundError: If no region has this name.
        """
        if name not in self.list_regions():
            raise RegionNotFoundError(f"Region {name} not found")
        return name

    def list_memdevs(self) -> list[str]:
        return list(self._topology.list_memdevs())

    def memdev_is_available(self, memdev: str) -> bool:
        """True if a memdev is enabled and its endpoint decoder is not in a region."""
        if not self._topology.memdev_is_enabled(memdev):
            return False
        decoder = self._topology.memdev_decoder(memdev)
        if decoder is None:
            logger.error(f"Unable to get endpoint decoder for memdev {memdev}")
            return False
        return self._topology.decoder_region(decoder) is None

    def describe_memdev(self, memdev: str) -> MemdevInfo:
        """Size, binding and availability of a memdev, for listing.

        Raises:
            MemdevNotFoundError: If the memdev does not exist.
        """
        return MemdevInfo(
            name=memdev,
            ram_size=self._topology.memdev_ram_size(memdev),
            enabled=self._topology.memdev_is_enabled(memdev),
            available=self.memdev_is_available(memdev),
            interleave_granularity=self._topology.memdev_interleave_granularity(memdev),
        )

    def describe(self, region: str) -> RegionInfo:
        return RegionInfo(
            name=region,
            base=self._topology.region_resource(region),
            size=self._topology.region_size(region),
            interleave_ways=self._topology.region_interleave_ways(region),
            interleave_granularity=self._topology.region_interleave_granularity(region),
            enabled=self._topology.region_is_enabled(region),
        )

    # Create / delete

    def create(self, granularity: int, memdevs: list[str]) -> str:
        """Create, commit and enable a RAM region interleaved across memdevs.

        Args:
            granularity: Interleave granularity in bytes (256..8192, power of 2).
            memdevs: Memdev names in target slot order.

        Returns:
            Name of the new, enabled region.

        Raises:
            InvalidGranularityError: If granularity is not supported.
            MemdevNotFoundError: If a memdev does not exist.
            ResourceUnavailableError: If there is no root decoder.
            RegionProvisioningError: If any topology step fails. When the
                region had been created it is deleted first and
                ``rolled_back`` reports whether that delete succeeded.
        """
        validate_granularity(granularity)
        if not memdevs:
            raise RegionProvisioningError("No memory devices given for region", step="validate")

        known = set(self._topology.list_memdevs())
        for memdev in memdevs:
            if memdev not in known:
                raise MemdevNotFoundError(f"Could not obtain memdev {memdev}")

        logger.info(f"Creating region: granularity={granularity} memdevs={','.join(memdevs)}")

        # Step 1: Root decoder
        root = self._topology.root_decoder()
        if root is None:
            logger.error("Could not obtain root decoder")
            raise ResourceUnavailableError("Could not obtain root decoder")

        # Step 2: Empty RAM region
        try:
            region = self._topology.create_ram_region(root)
        except MemError as e:
            logger.error(f"Could not create ram region: {e}")
            raise RegionProvisioningError(
                f"Could not create ram region under {root}: {e}", step="create_region"
            ) from e
        logger.info(f"Step 2/8: Created ram region {region}")

        step = "set_interleave"
        try:
            # Step 3: Interleave geometry
            step = "set_interleave_ways"
            self._topology.set_interleave_ways(region, len(memdevs))
            step = "set_interleave_granularity"
            self._topology.set_interleave_granularity(region, granularity)
            logger.info(f"Step 3/8: Set interleave ways={len(memdevs)} granularity={granularity}")

            # Step 4: Endpoint decoders
            total_size = 0
            decoders: list[str] = []
            for memdev in memdevs:
                step = "resolve_decoder"
                decoder = self._topology.memdev_decoder(memdev)
                if decoder is None:
                    raise ResourceUnavailableError(f"Memdev {memdev} has no endpoint decoder")

                size = self._topology.memdev_ram_size(memdev)

                step = "set_decoder_mode"
                self._topology.set_decoder_mode(decoder, DECODER_MODE_RAM)
                step = "set_dpa_size"
                self._topology.set_decoder_dpa_size(decoder, size)
                logger.info(f"Step 4/8: Decoder {decoder} set to ram, DPA size {size}")

                total_size += size
                decoders.append(decoder)

            # Step 5: Region size
            step = "set_region_size"
            self._topology.set_region_size(region, total_size)
            logger.info(f"Step 5/8: Set region size to {total_size} on {region}")

            # Step 6: Targets
            step = "set_target"
            for slot, decoder in enumerate(decoders):
                self._topology.set_region_target(region, slot, decoder)
                logger.info(f"Step 6/8: Set target {slot} to {decoder} on {region}")

            # Step 7: Commit
            step = "commit"
            self._topology.commit_region(region)
            logger.info(f"Step 7/8: Decode commit on {region}")

            # Step 8: Enable
            step = "enable"
            self._topology.enable_region(region)
            logger.info(f"Step 8/8: Enabled region {region}")

        except MemError as e:
            logger.error(f"Region {region} creation failed at {step}: {e}")
            rolled_back = self._rollback(region)
            self._regions = None
            raise RegionProvisioningError(
                f"Region {region} creation failed at {step}: {e}",
                region=region,
                step=step,
                rolled_back=rolled_back,
            ) from e

        self._regions = None
        logger.info(f"Region {region} created")
        return region

    def _rollback(self, region: str) -> bool:
        """Delete a partially built region. Returns True on success."""
        logger.warning(f"Rolling back: deleting region {region}")
        try:
            self._topology.delete_region(region)
        except MemError as e:
            logger.error(f"Failed to delete region {region} during rollback: {e}")
            return False
        logger.info(f"Deleted region {region}")
        return True

    def delete(self, region: str) -> None:
        """Offline the region's online blocks, then disable and delete it.

        Raises:
            RegionProvisioningError: If offlining is incomplete (the region is
                left untouched) or the disable/delete step fails.
        """
        try:
            online = self._mapper.num_blocks_of(region, online=True)
        except ConfigurationInconsistencyError as e:
            # Uncommitted regions have no address range and so no blocks
            logger.warning(f"Region {region} has no usable address range: {e}")
            online = 0

        if online > 0:
            try:
                self.offline_blocks(region)
            except PartialFailureError as e:
                raise RegionProvisioningError(
                    f"Failed to offline all blocks of region {region}: {e}",
                    region=region,
                    step="offline_blocks",
                ) from e
            logger.info(f"Offlined all memory blocks of region {region}")

        self._run_step(region, "disable", self._topology.disable_region)
        logger.info(f"Disabled region {region}")

        self._run_step(region, "delete", self._topology.delete_region)
        self._regions = None
        logger.info(f"Deleted region {region}")

    def delete_all(self) -> int:
        """Delete every region in id order, stopping at the first failure.

        Returns:
            Number of regions deleted.
        """
        deleted = 0
        for region in self.list_regions():
            self.delete(region)
            deleted += 1
        return deleted

    def _run_step(self, region: str, step: str, action, *args) -> None:
        try:
            action(region, *args)
        except MemError as e:
            logger.error(f"Failed to {step} region {region}: {e}")
            raise RegionProvisioningError(
                f"Failed to {step} region {region}: {e}", region=region, step=step
            ) from e

    # Enable / disable

    def enable(self, region: str) -> None:
        """Enable a disabled region.

        Raises:
            InvalidTransitionError: If the region is already enabled.
            RegionProvisioningError: If the kernel rejects the enable.
        """
        if self._topology.region_is_enabled(region):
            raise InvalidTransitionError(f"Region {region} was already enabled")
        self._run_step(region, "enable", self._topology.enable_region)
        logger.info(f"Enabled region {region}")

    def disable(self, region: str) -> None:
        """Disable an enabled region.

        Raises:
            InvalidTransitionError: If the region is already disabled.
            RegionProvisioningError: If the kernel rejects the disable.
        """
        if not self._topology.region_is_enabled(region):
            raise InvalidTransitionError(f"Region {region} was already disabled")
        self._run_step(region, "disable", self._topology.disable_region)
        logger.info(f"Disabled region {region}")

    # DAX / RAM mode

    def _dax_device(self, region: str) -> str:
        dax_dev = self._topology.dax_device(region)
        if dax_dev is None:
            raise ResourceUnavailableError(f"Failed to obtain dax device for region {region}")
        return dax_dev

    def is_dax_mode(self, region: str) -> bool:
        return not self._topology.dax_is_ram_mode(self._dax_device(region))

    def is_ram_mode(self, region: str) -> bool:
        return self._topology.dax_is_ram_mode(self._dax_device(region))

    def dax_mode(self, region: str) -> None:
        """Switch a region's DAX device to device-dax mode.

        Blocks of an enabled region are offlined first: device-dax and
        system RAM use of the same memory are mutually exclusive.

        Raises:
            ResourceUnavailableError: If the region has no DAX device.
            RegionProvisioningError: If offlining or a DAX step fails.
        """
        dax_dev = self._dax_device(region)
        if not self._topology.dax_is_ram_mode(dax_dev):
            logger.info(f"dax device {dax_dev} was already in devdax mode")
            return

        if self._topology.region_is_enabled(region):
            try:
                self.offline_blocks(region)
            except PartialFailureError as e:
                raise RegionProvisioningError(
                    f"Failed to offline all blocks of region {region}: {e}",
                    region=region,
                    step="offline_blocks",
                ) from e
            logger.info(f"Offlined all memory blocks of region {region}")

        self._switch_dax(region, dax_dev, self._topology.enable_devdax, "devdax")

    def ram_mode(self, region: str) -> None:
        """Switch a region's DAX device to system-ram (kmem) mode.

        Raises:
            ResourceUnavailableError: If the region has no DAX device.
            RegionProvisioningError: If a DAX step fails.
        """
        dax_dev = self._dax_device(region)
        if self._topology.dax_is_ram_mode(dax_dev):
            logger.info(f"dax device {dax_dev} was already in system-ram mode")
            return

        self._switch_dax(region, dax_dev, self._topology.enable_ram, "system-ram")

    def _switch_dax(self, region: str, dax_dev: str, enable, mode: str) -> None:
        if self._topology.dax_is_enabled(dax_dev):
            try:
                self._topology.disable_dax(dax_dev)
            except MemError as e:
                raise RegionProvisioningError(
                    f"Failed to disable dax device {dax_dev}: {e}",
                    region=region,
                    step="disable_dax",
                ) from e
            logger.info(f"Disabled dax device {dax_dev}")

        try:
            enable(dax_dev)
        except MemError as e:
            raise RegionProvisioningError(
                f"Failed to enable {mode} mode on {dax_dev}: {e}",
                region=region,
                step=f"enable_{mode}",
            ) from e
        logger.info(f"Enabled {mode} mode on dax device {dax_dev}")

    # Blocks of a region

    def offline_blocks(self, region: str) -> int:
        """Offline every block of a region.

        Raises:
            PartialFailureError: If some blocks could not be offlined.
        """
        blocks = self._mapper.blocks_of(region)
        if not blocks:
            return 0
        count = self._controller.offline_blocks(blocks)
        logger.info(f"Offlined all blocks of region {region}")
        return count

    def online_blocks(self, region: str) -> int:
        """Online (movable) every offline block of a region.

        Blocks that are already online, in any zone, are left alone.

        Returns:
            Number of blocks onlined.

        Raises:
            PartialFailureError: If some blocks could not be onlined.
        """
        blocks = self._mapper.blocks_of(region, online=False)
        if not blocks:
            return 0
        count = self._controller.online_blocks(blocks)
        logger.info(f"Onlined all blocks of region {region}")
        return count

    def block_state_at(self, region: str, offset: int) -> BlockPolicy:
        return classify(self._mapper.offset_to_block(region, offset))

    def set_block_state_at(self, region: str, offset: int, mode: BlockPolicy) -> None:
        self._controller.set_state(self._mapper.offset_to_block(region, offset), mode)
