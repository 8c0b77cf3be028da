# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Session context wiring the block and region components together."""

from functools import cached_property

import structlog

from cxlmem.adapters.config.settings import Settings
from cxlmem.adapters.outbound.sysfs_attribute_adapter import SysfsAttributeAdapter
from cxlmem.adapters.outbound.sysfs_cxl_adapter import SysfsCxlAdapter
from cxlmem.application.address_mapper import BlockAddressMapper
from cxlmem.application.block_registry import BlockRegistry
from cxlmem.application.policy_manager import PolicyManager
from cxlmem.application.region_provisioner import RegionProvisioner
from cxlmem.application.state_controller import StateController
from cxlmem.ports.outbound import AttributePort, CxlTopologyPort

logger = structlog.get_logger(__name__)


class MemSession:
    """One run of the tool against one kernel.

    Owns the two ports and builds each component on first use. All
    components share a single BlockRegistry, so one refresh() is seen by
    every one of them, and the mapper sees the provisioner's cached region
    list.

    Example:
        >>> session = MemSession.from_settings(get_settings())
        >>> session.registry.count_online()
        64
        >>> session.provisioner.list_regions()
        ['region0']
    """

    def __init__(
        self,
        attributes: AttributePort,
        topology: CxlTopologyPort,
        settings: Settings | None = None,
    ) -> None:
        self.attributes = attributes
        self.topology = topology
        self.settings = settings or Settings()

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemSession":
        """Build a session over the sysfs trees named in settings."""
        logger.debug(
            "session_created",
            memory_root=str(settings.sysfs.memory_root),
            cxl_root=str(settings.sysfs.cxl_root),
            dax_root=str(settings.sysfs.dax_root),
        )
        return cls(
            attributes=SysfsAttributeAdapter(settings.sysfs.memory_root),
            topology=SysfsCxlAdapter(
                SysfsAttributeAdapter(settings.sysfs.cxl_root),
                SysfsAttributeAdapter(settings.sysfs.dax_root),
            ),
            settings=settings,
        )

    @cached_property
    def registry(self) -> BlockRegistry:
        return BlockRegistry(self.attributes)

    @cached_property
    def controller(self) -> StateController:
        return StateController(self.attributes, self.registry)

    @cached_property
    def policy(self) -> PolicyManager:
        return PolicyManager(self.attributes)

    @cached_property
    def mapper(self) -> BlockAddressMapper:
        # Resolved lazily so the mapper and provisioner can reference each other
        return BlockAddressMapper(
            self.attributes,
            self.registry,
            self.topology,
            regions=lambda: self.provisioner.list_regions(),
        )

    @cached_property
    def provisioner(self) -> RegionProvisioner:
        return RegionProvisioner(self.topology, self.controller, self.mapper)

    def refresh(self) -> None:
        """Rescan blocks and regions."""
        self.registry.refresh()
        self.provisioner.refresh_regions()
