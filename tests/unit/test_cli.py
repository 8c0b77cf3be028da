"""Tests for the typer CLI over a fake-backed session."""

import pytest
from typer.testing import CliRunner

from cxlmem import __version__
from cxlmem.adapters.config.logging import configure_logging
from cxlmem.application.session import MemSession
from cxlmem.entrypoints import cli
from fakes import GIB

pytestmark = [pytest.mark.unit, pytest.mark.usefixtures("clean_env")]

runner = CliRunner()


@pytest.fixture
def session(attributes, topology, monkeypatch) -> MemSession:
    """64 blocks; region0 covers ids 16..23 with 16/18/20 online movable."""
    for block_id in range(64):
        if block_id < 16:
            attributes.add_block(block_id, state="online", zones="Normal")
        elif block_id in (16, 18, 20):
            attributes.add_block(block_id, state="online", zones="Movable")
        else:
            attributes.add_block(block_id, state="offline", zones="Normal Movable")
    topology.add_region("region0", base=0x100000000, size=2 * GIB)
    topology.add_memdev("mem0", ram_size=GIB)
    topology.add_memdev("mem1", ram_size=GIB)

    configure_logging("WARNING", json_output=False)
    session = MemSession(attributes, topology)
    monkeypatch.setattr(cli, "_session", lambda: session)
    return session


class TestInfoCommands:
    def test_devices(self, session, topology) -> None:
        topology.memdevs["mem1"].enabled = False

        result = runner.invoke(cli.app, ["devices"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0].split() == [
            "mem0", "ram", "1024", "MiB", "granularity", "256", "enabled", "available"
        ]
        assert lines[1].endswith("disabled unavailable")
        assert lines[-1] == "2 memdevs"

    def test_available_devices(self, session, topology) -> None:
        session.provisioner.create(4096, ["mem0"])

        result = runner.invoke(cli.app, ["devices", "--available"])

        assert result.exit_code == 0
        assert result.output.splitlines()[0].startswith("mem1 ")
        assert result.output.splitlines()[-1] == "1 memdevs"


    def test_version(self) -> None:
        result = runner.invoke(cli.app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config(self) -> None:
        result = runner.invoke(cli.app, ["config"])

        assert result.exit_code == 0
        assert "/sys/devices/system/memory" in result.output
        assert "Default granularity: 4096" in result.output

    def test_info(self, session) -> None:
        result = runner.invoke(cli.app, ["info"])

        assert result.exit_code == 0
        assert "Blocks: 64 (19 online, 45 offline)" in result.output
        assert "Auto-online policy: online_movable" in result.output
        assert "Regions: region0" in result.output
        assert "Memdevs: mem0, mem1" in result.output

    def test_capacity_of_region(self, session) -> None:
        result = runner.invoke(cli.app, ["capacity", "--region", "region0"])

        assert result.exit_code == 0
        assert "Blocks: 8 (3 online, 5 offline)" in result.output
        assert "Total: 2048 MiB" in result.output

    def test_regions(self, session) -> None:
        result = runner.invoke(cli.app, ["regions"])

        assert result.exit_code == 0
        assert "region0" in result.output
        assert "enabled" in result.output


class TestBlockCommands:
    def test_list_offline_blocks_of_region(self, session) -> None:
        result = runner.invoke(cli.app, ["blocks", "--offline", "-r", "region0"])

        assert result.exit_code == 0
        names = [line.split()[0] for line in result.output.splitlines()]
        assert names == ["memory17", "memory19", "memory21", "memory22", "memory23"]

    def test_online_and_offline_are_exclusive(self, session) -> None:
        result = runner.invoke(cli.app, ["blocks", "--online", "--offline"])

        assert result.exit_code == 2

    def test_block_offline(self, session, attributes) -> None:
        result = runner.invoke(cli.app, ["block-offline", "16"])

        assert result.exit_code == 0
        assert attributes.writes == [("memory16/online", "0")]

    def test_block_online_of_kernel_block_fails(self, session, attributes) -> None:
        result = runner.invoke(cli.app, ["block-online", "0"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert attributes.writes == []

    def test_block_online_of_movable_block_fails(self, session, attributes) -> None:
        result = runner.invoke(cli.app, ["block-online", "16"])

        assert result.exit_code == 1
        assert "not offline (online_movable)" in result.output
        assert attributes.writes == []

    def test_block_show(self, session, attributes) -> None:
        attributes.set("memory17/phys_device", "3")
        attributes.set("memory17/removable", "0")
        session.refresh()

        result = runner.invoke(cli.app, ["block-show", "17"])

        assert result.exit_code == 0
        assert "[memory17]" in result.output
        assert "State: offline" in result.output
        assert "Node: 0" in result.output
        assert "Zones: Normal Movable" in result.output
        assert "Physical device: 3" in result.output
        assert "Removable: False" in result.output

    def test_block_show_unknown_block(self, session) -> None:
        result = runner.invoke(cli.app, ["block-show", "999"])

        assert result.exit_code == 1

    def test_unknown_block(self, session) -> None:
        result = runner.invoke(cli.app, ["block-offline", "999"])

        assert result.exit_code == 1
        assert "Memory block 999 not found" in result.output

    def test_block_state_show_and_set(self, session, attributes) -> None:
        shown = runner.invoke(cli.app, ["block-state", "16"])
        assert shown.output.strip() == "online_movable"

        result = runner.invoke(cli.app, ["block-state", "17", "online_kernel"])
        assert result.exit_code == 0
        assert attributes.writes == [("memory17/state", "online_kernel")]

    def test_block_state_invalid(self, session) -> None:
        result = runner.invoke(cli.app, ["block-state", "17", "sideways"])

        assert result.exit_code == 1


class TestPolicyCommands:
    def test_show_policy(self, session) -> None:
        result = runner.invoke(cli.app, ["policy"])

        assert result.output.strip() == "online_movable"

    def test_set_policy(self, session, attributes) -> None:
        result = runner.invoke(cli.app, ["set-policy", "offline"])

        assert result.exit_code == 0
        assert attributes.read("auto_online_blocks") == "offline"

    def test_set_invalid_policy(self, session, attributes) -> None:
        result = runner.invoke(cli.app, ["set-policy", "bogus"])

        assert result.exit_code == 1
        assert attributes.writes == []


class TestRegionCommands:
    def test_create_with_explicit_memdevs(self, session, topology) -> None:
        result = runner.invoke(cli.app, ["region-create", "-g", "256", "-m", "mem0", "-m", "mem1"])

        assert result.exit_code == 0
        assert "Created region1" in result.output
        assert topology.regions["region1"].granularity == 256

    def test_create_defaults_to_available_memdevs(self, session, topology) -> None:
        result = runner.invoke(cli.app, ["region-create"])

        assert result.exit_code == 0
        assert topology.regions["region1"].ways == 2
        assert topology.regions["region1"].granularity == 4096

    def test_create_invalid_granularity(self, session, topology) -> None:
        result = runner.invoke(cli.app, ["region-create", "-g", "1000"])

        assert result.exit_code == 1
        assert "region1" not in topology.regions

    def test_create_rollback_reported(self, session, topology) -> None:
        topology.fail_on("commit_region")

        result = runner.invoke(cli.app, ["region-create"])

        assert result.exit_code == 1
        assert "commit" in result.output
        assert "region1" not in topology.regions

    def test_delete(self, session, topology) -> None:
        result = runner.invoke(cli.app, ["region-delete", "region0"])

        assert result.exit_code == 0
        assert topology.regions == {}

    def test_delete_requires_target(self, session) -> None:
        result = runner.invoke(cli.app, ["region-delete"])

        assert result.exit_code == 2

    def test_delete_all(self, session, topology) -> None:
        topology.add_region("region1", base=0x300000000, size=GIB)

        result = runner.invoke(cli.app, ["region-delete", "--all"])

        assert "Deleted 2 regions" in result.output
        assert topology.regions == {}

    def test_unknown_region(self, session) -> None:
        result = runner.invoke(cli.app, ["region-disable", "region9"])

        assert result.exit_code == 1
        assert "Region region9 not found" in result.output

    def test_enable_enabled_region(self, session) -> None:
        result = runner.invoke(cli.app, ["region-enable", "region0"])

        assert result.exit_code == 1
        assert "already enabled" in result.output

    def test_disable(self, session, topology) -> None:
        result = runner.invoke(cli.app, ["region-disable", "region0"])

        assert result.exit_code == 0
        assert topology.regions["region0"].enabled is False

    def test_daxmode_then_rammode(self, session, topology) -> None:
        assert runner.invoke(cli.app, ["region-daxmode", "region0"]).exit_code == 0
        assert topology.dax_driver["dax0.0"] == "device_dax"

        assert runner.invoke(cli.app, ["region-rammode", "region0"]).exit_code == 0
        assert topology.dax_driver["dax0.0"] == "kmem"

    def test_region_online_and_offline(self, session) -> None:
        result = runner.invoke(cli.app, ["region-online", "region0"])
        assert "Onlined 5 blocks of region0" in result.output

        result = runner.invoke(cli.app, ["region-offline", "region0"])
        assert "Offlined 8 blocks of region0" in result.output

    def test_region_block_state(self, session, attributes) -> None:
        shown = runner.invoke(cli.app, ["region-block-state", "region0", "0"])
        assert shown.output.strip() == "online_movable"

        result = runner.invoke(cli.app, ["region-block-state", "region0", "1", "online"])
        assert result.exit_code == 0
        assert attributes.writes == [("memory17/state", "online")]

    def test_region_block_state_past_end(self, session) -> None:
        result = runner.invoke(cli.app, ["region-block-state", "region0", "8"])

        assert result.exit_code == 1
        assert "exceeds" in result.output
