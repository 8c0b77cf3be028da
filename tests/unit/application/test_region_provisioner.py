"""Unit tests for RegionProvisioner: create with rollback, delete, modes."""

import pytest

from cxlmem.application.address_mapper import BlockAddressMapper
from cxlmem.application.block_registry import BlockRegistry
from cxlmem.application.region_provisioner import RegionProvisioner
from cxlmem.application.state_controller import StateController
from cxlmem.domain.errors import (
    InvalidGranularityError,
    InvalidTransitionError,
    MemdevNotFoundError,
    PartialFailureError,
    RegionNotFoundError,
    RegionProvisioningError,
    ResourceUnavailableError,
    TopologyOperationError,
)
from cxlmem.domain.value_objects import BlockPolicy, MemdevInfo
from fakes import BLOCK_SIZE, GIB

pytestmark = pytest.mark.unit

REGION_BASE = 0x100000000


@pytest.fixture
def blocks(attributes):
    """Blocks 0..63: 0..15 online Normal, 16/18/20 online Movable, rest offline."""
    for block_id in range(64):
        if block_id < 16:
            attributes.add_block(block_id, state="online", zones="Normal")
        elif block_id in (16, 18, 20):
            attributes.add_block(block_id, state="online", zones="Movable")
        else:
            attributes.add_block(block_id, state="offline", zones="Normal Movable")
    return attributes


@pytest.fixture
def provisioner(blocks, topology) -> RegionProvisioner:
    topology.add_memdev("mem0", ram_size=GIB)
    topology.add_memdev("mem1", ram_size=GIB)
    registry = BlockRegistry(blocks)
    controller = StateController(blocks, registry)
    holder: dict[str, RegionProvisioner] = {}
    mapper = BlockAddressMapper(
        blocks, registry, topology, regions=lambda: holder["p"].list_regions()
    )
    holder["p"] = RegionProvisioner(topology, controller, mapper)
    return holder["p"]


@pytest.fixture
def region0(topology) -> str:
    topology.add_region("region0", base=REGION_BASE, size=2 * GIB)
    return "region0"


class TestCreate:
    def test_creates_commits_and_enables(self, provisioner, topology) -> None:
        name = provisioner.create(4096, ["mem0", "mem1"])

        assert name == "region0"
        region = topology.regions[name]
        assert (region.ways, region.granularity, region.size) == (2, 4096, 2 * GIB)
        assert region.targets == {0: "decoder2.0", 1: "decoder3.0"}
        assert region.committed and region.enabled
        assert topology.decoders["decoder2.0"].mode == "ram"
        assert topology.decoders["decoder3.0"].dpa_size == GIB

    def test_step_order(self, provisioner, topology) -> None:
        provisioner.create(256, ["mem0", "mem1"])

        assert topology.call_names() == [
            "create_ram_region",
            "set_interleave_ways",
            "set_interleave_granularity",
            "set_decoder_mode",
            "set_decoder_dpa_size",
            "set_decoder_mode",
            "set_decoder_dpa_size",
            "set_region_size",
            "set_region_target",
            "set_region_target",
            "commit_region",
            "enable_region",
        ]

    def test_new_region_is_listed(self, provisioner) -> None:
        assert provisioner.list_regions() == []

        name = provisioner.create(4096, ["mem0"])

        assert provisioner.list_regions() == [name]

    def test_dpa_failure_on_second_device_rolls_back(self, provisioner, topology) -> None:
        provisioner.list_regions()
        topology.fail_on("set_decoder_dpa_size", when=lambda decoder, size: decoder == "decoder3.0")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.create(4096, ["mem0", "mem1"])

        error = exc_info.value
        assert error.region == "region0"
        assert error.step == "set_dpa_size"
        assert error.rolled_back is True
        assert isinstance(error.__cause__, TopologyOperationError)
        assert topology.call_names()[-1] == "delete_region"
        assert "region0" not in topology.regions
        assert provisioner.list_regions() == []

    def test_failed_rollback_is_reported(self, provisioner, topology) -> None:
        topology.fail_on("commit_region")
        topology.fail_on("delete_region")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.create(4096, ["mem0", "mem1"])

        assert exc_info.value.step == "commit"
        assert exc_info.value.rolled_back is False
        assert "region0" in topology.regions

    def test_missing_endpoint_decoder_rolls_back(self, provisioner, topology) -> None:
        topology.memdevs["mem1"].decoder = None

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.create(4096, ["mem0", "mem1"])

        assert exc_info.value.step == "resolve_decoder"
        assert exc_info.value.rolled_back is True
        assert topology.regions == {}

    def test_enable_failure_rolls_back(self, provisioner, topology) -> None:
        topology.fail_on("enable_region")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.create(4096, ["mem0"])

        assert exc_info.value.step == "enable"
        assert topology.regions == {}

    def test_create_region_failure_has_nothing_to_roll_back(self, provisioner, topology) -> None:
        topology.fail_on("create_ram_region")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.create(4096, ["mem0"])

        assert exc_info.value.region is None
        assert exc_info.value.step == "create_region"
        assert "delete_region" not in topology.call_names()

    def test_invalid_granularity_before_mutation(self, provisioner, topology) -> None:
        with pytest.raises(InvalidGranularityError):
            provisioner.create(1000, ["mem0"])
        assert topology.calls == []

    def test_empty_memdev_list(self, provisioner, topology) -> None:
        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.create(4096, [])
        assert exc_info.value.step == "validate"
        assert topology.calls == []

    def test_unknown_memdev(self, provisioner, topology) -> None:
        with pytest.raises(MemdevNotFoundError, match="mem7"):
            provisioner.create(4096, ["mem0", "mem7"])
        assert topology.calls == []

    def test_no_root_decoder(self, provisioner, topology) -> None:
        topology.root = None

        with pytest.raises(ResourceUnavailableError, match="root decoder"):
            provisioner.create(4096, ["mem0"])


class TestRegionCache:
    def test_list_is_cached_until_refresh(self, provisioner, topology, region0) -> None:
        assert provisioner.list_regions() == ["region0"]
        topology.add_region("region1", base=0x300000000, size=GIB)

        assert provisioner.list_regions() == ["region0"]
        assert provisioner.refresh_regions() == ["region0", "region1"]

    def test_get_region(self, provisioner, region0) -> None:
        assert provisioner.get_region("region0") == "region0"
        with pytest.raises(RegionNotFoundError):
            provisioner.get_region("region9")

    def test_describe(self, provisioner, region0) -> None:
        info = provisioner.describe(region0)

        assert info.base == REGION_BASE
        assert info.size == 2 * GIB
        assert info.enabled is True


class TestDelete:
    def test_offlines_then_disables_then_deletes(self, provisioner, topology, blocks, region0) -> None:
        provisioner.delete(region0)

        assert sorted(blocks.writes_to("/online")) == [
            ("memory16/online", "0"),
            ("memory18/online", "0"),
            ("memory20/online", "0"),
        ]
        assert topology.call_names() == ["disable_region", "delete_region"]
        assert provisioner.list_regions() == []

    def test_partial_offline_aborts(self, provisioner, topology, blocks, region0) -> None:
        blocks.short_writes["memory18/online"] = 0

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.delete(region0)

        assert exc_info.value.step == "offline_blocks"
        assert isinstance(exc_info.value.__cause__, PartialFailureError)
        assert "disable_region" not in topology.call_names()
        assert "region0" in topology.regions

    def test_uncommitted_region(self, provisioner, topology) -> None:
        topology.add_region("region3", base=0, size=0, enabled=False)

        provisioner.delete("region3")

        assert "region3" not in topology.regions

    def test_disable_failure(self, provisioner, topology, region0) -> None:
        topology.fail_on("disable_region")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.delete(region0)

        assert exc_info.value.step == "disable"
        assert "delete_region" not in topology.call_names()

    def test_delete_all(self, provisioner, topology, region0) -> None:
        topology.add_region("region1", base=0x300000000, size=GIB)

        assert provisioner.delete_all() == 2
        assert topology.regions == {}


class TestEnableDisable:
    def test_enable_enabled_region(self, provisioner, region0) -> None:
        with pytest.raises(InvalidTransitionError, match="already enabled"):
            provisioner.enable(region0)

    def test_disable_then_enable(self, provisioner, topology, region0) -> None:
        provisioner.disable(region0)
        assert topology.regions[region0].enabled is False

        with pytest.raises(InvalidTransitionError, match="already disabled"):
            provisioner.disable(region0)

        provisioner.enable(region0)
        assert topology.regions[region0].enabled is True

    def test_kernel_rejects_enable(self, provisioner, topology) -> None:
        topology.add_region("region1", base=0x300000000, size=GIB, enabled=False)
        topology.fail_on("enable_region")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.enable("region1")
        assert exc_info.value.step == "enable"


class TestModes:
    def test_dax_mode_offlines_and_rebinds(self, provisioner, topology, blocks, region0) -> None:
        assert provisioner.is_ram_mode(region0)

        provisioner.dax_mode(region0)

        assert len(blocks.writes_to("/online")) == 3
        assert topology.call_names() == ["disable_dax", "enable_devdax"]
        assert provisioner.is_dax_mode(region0)

    def test_dax_mode_noop_when_already_devdax(self, provisioner, topology) -> None:
        topology.add_region("region1", base=0x300000000, size=GIB, dax_driver="device_dax")

        provisioner.dax_mode("region1")

        assert topology.calls == []

    def test_dax_mode_disabled_region_skips_offline(self, provisioner, topology, blocks) -> None:
        topology.add_region("region0", base=REGION_BASE, size=2 * GIB, enabled=False)

        provisioner.dax_mode("region0")

        assert blocks.writes == []
        assert topology.call_names() == ["disable_dax", "enable_devdax"]

    def test_dax_mode_aborts_on_partial_offline(self, provisioner, topology, blocks, region0) -> None:
        blocks.short_writes["memory20/online"] = 0

        with pytest.raises(RegionProvisioningError):
            provisioner.dax_mode(region0)
        assert topology.calls == []

    def test_ram_mode(self, provisioner, topology) -> None:
        topology.add_region("region1", base=0x300000000, size=GIB, dax_driver="device_dax")

        provisioner.ram_mode("region1")

        assert topology.call_names() == ["disable_dax", "enable_ram"]
        assert provisioner.is_ram_mode("region1")

    def test_ram_mode_noop_when_kmem(self, provisioner, topology, region0) -> None:
        provisioner.ram_mode(region0)

        assert topology.calls == []

    def test_ram_mode_unbound_device(self, provisioner, topology) -> None:
        topology.add_region("region1", base=0x300000000, size=GIB, dax_driver=None)

        provisioner.ram_mode("region1")

        assert topology.call_names() == ["enable_ram"]

    def test_missing_dax_device(self, provisioner, topology, region0) -> None:
        del topology.dax[region0]

        with pytest.raises(ResourceUnavailableError, match="dax device"):
            provisioner.dax_mode(region0)

    def test_enable_devdax_failure(self, provisioner, topology, region0) -> None:
        topology.fail_on("enable_devdax")

        with pytest.raises(RegionProvisioningError) as exc_info:
            provisioner.dax_mode(region0)
        assert exc_info.value.step == "enable_devdax"


class TestRegionBlocks:
    def test_offline_blocks(self, provisioner, region0) -> None:
        assert provisioner.offline_blocks(region0) == 8

    def test_online_blocks(self, provisioner, blocks, region0) -> None:
        assert provisioner.online_blocks(region0) == 5
        assert len(blocks.writes_to("/state")) == 5
        assert ("memory16/state", "online_movable") not in blocks.writes

    def test_online_blocks_leaves_kernel_blocks_alone(self, blocks, topology, region0) -> None:
        blocks.add_block(17, state="online", zones="Normal")
        registry = BlockRegistry(blocks)
        mapper = BlockAddressMapper(blocks, registry, topology)
        provisioner = RegionProvisioner(topology, StateController(blocks, registry), mapper)

        assert provisioner.online_blocks(region0) == 4
        assert ("memory17/state", "online_movable") not in blocks.writes

    def test_empty_region(self, provisioner, topology, blocks) -> None:
        topology.add_region("region1", base=0x300000000, size=0)

        assert provisioner.offline_blocks("region1") == 0
        assert blocks.writes == []

    def test_block_state_at(self, provisioner, region0) -> None:
        assert provisioner.block_state_at(region0, 0) is BlockPolicy.ONLINE_MOVABLE
        assert provisioner.block_state_at(region0, 1) is BlockPolicy.OFFLINE

    def test_set_block_state_at(self, provisioner, blocks, region0) -> None:
        provisioner.set_block_state_at(region0, 1, BlockPolicy.ONLINE_KERNEL)

        assert blocks.writes == [(f"memory{REGION_BASE // BLOCK_SIZE + 1}/state", "online_kernel")]


class TestMemdevs:
    def test_list_memdevs(self, provisioner) -> None:
        assert provisioner.list_memdevs() == ["mem0", "mem1"]

    def test_available(self, provisioner) -> None:
        assert provisioner.memdev_is_available("mem0")

    def test_disabled_memdev(self, provisioner, topology) -> None:
        topology.memdevs["mem0"].enabled = False

        assert not provisioner.memdev_is_available("mem0")

    def test_memdev_in_region(self, provisioner) -> None:
        provisioner.create(4096, ["mem0"])

        assert not provisioner.memdev_is_available("mem0")
        assert provisioner.memdev_is_available("mem1")

    def test_memdev_without_decoder(self, provisioner, topology) -> None:
        topology.memdevs["mem1"].decoder = None

        assert not provisioner.memdev_is_available("mem1")

    def test_describe_memdev(self, provisioner) -> None:
        info = provisioner.describe_memdev("mem0")

        assert info == MemdevInfo(
            name="mem0", ram_size=GIB, enabled=True, available=True, interleave_granularity=256
        )

    def test_describe_memdev_in_region(self, provisioner, topology) -> None:
        provisioner.create(4096, ["mem1"])
        topology.memdevs["mem0"].decoder = None

        assert provisioner.describe_memdev("mem1").available is False
        assert provisioner.describe_memdev("mem0").interleave_granularity == 0

    def test_describe_unknown_memdev(self, provisioner) -> None:
        with pytest.raises(MemdevNotFoundError):
            provisioner.describe_memdev("mem9")
