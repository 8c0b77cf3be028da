# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""CLI entrypoint for memory block and CXL region management.

Usage:
    cxlmem info
    cxlmem blocks --online
    cxlmem devices --available
    cxlmem block-offline 40
    cxlmem region-create -g 4096 -m mem0 -m mem1
    cxlmem region-daxmode region0
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import List, Optional

import typer

from cxlmem import __version__
from cxlmem.adapters.config.logging import configure_logging
from cxlmem.adapters.config.settings import get_settings
from cxlmem.application.session import MemSession
from cxlmem.domain.errors import MemError
from cxlmem.domain.services import classify
from cxlmem.domain.value_objects import BlockPolicy, CapacitySummary, format_zones

app = typer.Typer(
    name="cxlmem",
    help="Memory block and CXL region management",
    add_completion=False,
)

_MIB = 1024 * 1024


def _session() -> MemSession:
    settings = get_settings()
    configure_logging(settings.logging.level, settings.logging.json_output)
    return MemSession.from_settings(settings)


@contextmanager
def _errors() -> Iterator[None]:
    """Report domain errors on stderr and exit with status 1."""
    try:
        yield
    except (MemError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


def _echo_capacity(title: str, cap: CapacitySummary) -> None:
    typer.echo(f"[{title}]")
    typer.echo(f"  Block size: {cap.block_size:#x} ({cap.block_size // _MIB} MiB)")
    typer.echo(f"  Blocks: {cap.total_blocks} ({cap.online_blocks} online, {cap.offline_blocks} offline)")
    typer.echo(f"  Total: {cap.total // _MIB} MiB")
    typer.echo(f"  Online: {cap.online // _MIB} MiB")
    typer.echo(f"  Offline: {cap.offline // _MIB} MiB")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"cxlmem v{__version__}")


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()

    typer.echo("[Sysfs]")
    typer.echo(f"  Memory root: {settings.sysfs.memory_root}")
    typer.echo(f"  CXL root: {settings.sysfs.cxl_root}")
    typer.echo(f"  DAX root: {settings.sysfs.dax_root}")
    typer.echo("[Region]")
    typer.echo(f"  Default granularity: {settings.region.default_granularity}")
    typer.echo("[Logging]")
    typer.echo(f"  Level: {settings.logging.level}")
    typer.echo(f"  JSON output: {settings.logging.json_output}")


@app.command()
def info() -> None:
    """Show a summary of blocks, policy, regions and memdevs."""
    session = _session()
    with _errors():
        _echo_capacity("System", session.mapper.system_capacity())
        typer.echo(f"Auto-online policy: {session.policy.get().value}")
        regions = session.provisioner.list_regions()
        typer.echo(f"Regions: {', '.join(regions) if regions else '(none)'}")
        memdevs = session.provisioner.list_memdevs()
        typer.echo(f"Memdevs: {', '.join(memdevs) if memdevs else '(none)'}")


@app.command()
def blocks(
    online: bool = typer.Option(False, "--online", help="Only online blocks"),
    offline: bool = typer.Option(False, "--offline", help="Only offline blocks"),
    region: str = typer.Option(None, "--region", "-r", help="Only blocks of this region"),
) -> None:
    """List memory blocks.

    Example:
        $ cxlmem blocks
        $ cxlmem blocks --offline --region region0
    """
    if online and offline:
        typer.echo("Error: --online and --offline are mutually exclusive", err=True)
        raise typer.Exit(code=2)

    session = _session()
    flag = True if online else False if offline else None
    with _errors():
        if region:
            session.provisioner.get_region(region)
            selected = session.mapper.blocks_of(region, online=flag)
        else:
            selected = [blk for blk in session.registry if flag is None or blk.online == flag]

        for blk in selected:
            node = blk.node if blk.node >= 0 else "-"
            typer.echo(
                f"{blk.name:<14} node {node:<3} {classify(blk).value:<15} {format_zones(blk.valid_zones)}"
            )


@app.command("block-show")
def block_show(block_id: int = typer.Argument(..., help="Memory block id")) -> None:
    """Show every attribute of a memory block."""
    session = _session()
    with _errors():
        blk = session.registry.find_by_id(block_id)
        typer.echo(f"[{blk.name}]")
        typer.echo(f"  State: {classify(blk).value}")
        typer.echo(f"  Online: {blk.online}")
        typer.echo(f"  Node: {blk.node if blk.node >= 0 else 'unknown'}")
        typer.echo(f"  Zones: {format_zones(blk.valid_zones) or '-'}")
        typer.echo(f"  Physical device: {blk.phys_device}")
        typer.echo(f"  Removable: {blk.removable}")


@app.command("block-online")
def block_online(block_id: int = typer.Argument(..., help="Memory block id")) -> None:
    """Online a memory block into the movable zone."""
    session = _session()
    with _errors():
        session.controller.online_id(block_id)
    typer.echo(f"memory{block_id} online")


@app.command("block-offline")
def block_offline(block_id: int = typer.Argument(..., help="Memory block id")) -> None:
    """Offline a memory block."""
    session = _session()
    with _errors():
        session.controller.offline_id(block_id)
    typer.echo(f"memory{block_id} offline")


@app.command("block-state")
def block_state(
    block_id: int = typer.Argument(..., help="Memory block id"),
    state: str = typer.Argument(None, help="New state (offline, online, online_kernel, online_movable)"),
) -> None:
    """Show a block's state, or set it when STATE is given."""
    session = _session()
    with _errors():
        blk = session.registry.find_by_id(block_id)
        if state is None:
            typer.echo(classify(blk).value)
            return
        session.controller.set_state(blk, BlockPolicy.parse(state))
    typer.echo(f"memory{block_id} {state}")


@app.command()
def policy() -> None:
    """Show the auto-online policy for hot-added memory."""
    session = _session()
    with _errors():
        typer.echo(session.policy.get().value)


@app.command("set-policy")
def set_policy(mode: str = typer.Argument(..., help="offline, online, online_kernel or online_movable")) -> None:
    """Set the auto-online policy for hot-added memory."""
    session = _session()
    with _errors():
        session.policy.set(mode)
    typer.echo(f"Auto-online policy: {mode}")


@app.command()
def capacity(
    region: str = typer.Option(None, "--region", "-r", help="Region to report instead of the system"),
) -> None:
    """Show block counts and capacity."""
    session = _session()
    with _errors():
        if region:
            session.provisioner.get_region(region)
            _echo_capacity(region, session.mapper.region_capacity(region))
        else:
            _echo_capacity("System", session.mapper.system_capacity())


@app.command()
def regions() -> None:
    """List CXL regions."""
    session = _session()
    with _errors():
        for name in session.provisioner.list_regions():
            r = session.provisioner.describe(name)
            typer.echo(
                f"{r.name:<10} base {r.base:#018x} size {r.size:#x} "
                f"ways {r.interleave_ways} granularity {r.interleave_granularity} "
                f"{'enabled' if r.enabled else 'disabled'}"
            )


@app.command()
def devices(
    available: bool = typer.Option(False, "--available", "-a", help="Only memdevs free for a new region"),
) -> None:
    """List CXL memory devices.

    Example:
        $ cxlmem devices
        $ cxlmem devices --available
    """
    session = _session()
    with _errors():
        shown = 0
        for name in session.provisioner.list_memdevs():
            m = session.provisioner.describe_memdev(name)
            if available and not m.available:
                continue
            shown += 1
            typer.echo(
                f"{m.name:<8} ram {m.ram_size // _MIB} MiB granularity {m.interleave_granularity} "
                f"{'enabled' if m.enabled else 'disabled'} "
                f"{'available' if m.available else 'unavailable'}"
            )
    typer.echo(f"{shown} memdevs")


@app.command("region-create")
def region_create(
    granularity: int = typer.Option(
        None,
        "--granularity",
        "-g",
        help="Interleave granularity in bytes (default: from settings)",
    ),
    memdevs: Optional[List[str]] = typer.Option(
        None,
        "--memdev",
        "-m",
        help="Memdev to interleave (repeatable; default: all available memdevs)",
    ),
) -> None:
    """Create, commit and enable a RAM region.

    Example:
        $ cxlmem region-create
        $ cxlmem region-create -g 256 -m mem0 -m mem1
    """
    session = _session()
    final_granularity = granularity or session.settings.region.default_granularity
    with _errors():
        devices = list(memdevs) if memdevs else [
            m for m in session.provisioner.list_memdevs() if session.provisioner.memdev_is_available(m)
        ]
        name = session.provisioner.create(final_granularity, devices)
    typer.echo(f"Created {name}")


@app.command("region-delete")
def region_delete(
    region: str = typer.Argument(None, help="Region name"),
    all_regions: bool = typer.Option(False, "--all", help="Delete every region"),
) -> None:
    """Offline a region's blocks, then disable and delete it."""
    if region is None and not all_regions:
        typer.echo("Error: give a region or --all", err=True)
        raise typer.Exit(code=2)

    session = _session()
    with _errors():
        if all_regions:
            count = session.provisioner.delete_all()
            typer.echo(f"Deleted {count} regions")
            return
        session.provisioner.delete(session.provisioner.get_region(region))
    typer.echo(f"Deleted {region}")


@app.command("region-enable")
def region_enable(region: str = typer.Argument(..., help="Region name")) -> None:
    """Enable a region."""
    session = _session()
    with _errors():
        session.provisioner.enable(session.provisioner.get_region(region))
    typer.echo(f"Enabled {region}")


@app.command("region-disable")
def region_disable(region: str = typer.Argument(..., help="Region name")) -> None:
    """Disable a region."""
    session = _session()
    with _errors():
        session.provisioner.disable(session.provisioner.get_region(region))
    typer.echo(f"Disabled {region}")


@app.command("region-daxmode")
def region_daxmode(region: str = typer.Argument(..., help="Region name")) -> None:
    """Switch a region to device-dax mode (offlines its blocks)."""
    session = _session()
    with _errors():
        session.provisioner.dax_mode(session.provisioner.get_region(region))
    typer.echo(f"{region} in devdax mode")


@app.command("region-rammode")
def region_rammode(region: str = typer.Argument(..., help="Region name")) -> None:
    """Switch a region to system-ram mode."""
    session = _session()
    with _errors():
        session.provisioner.ram_mode(session.provisioner.get_region(region))
    typer.echo(f"{region} in system-ram mode")


@app.command("region-online")
def region_online(region: str = typer.Argument(..., help="Region name")) -> None:
    """Online every block of a region into the movable zone."""
    session = _session()
    with _errors():
        count = session.provisioner.online_blocks(session.provisioner.get_region(region))
    typer.echo(f"Onlined {count} blocks of {region}")


@app.command("region-offline")
def region_offline(region: str = typer.Argument(..., help="Region name")) -> None:
    """Offline every block of a region."""
    session = _session()
    with _errors():
        count = session.provisioner.offline_blocks(session.provisioner.get_region(region))
    typer.echo(f"Offlined {count} blocks of {region}")


@app.command("region-block-state")
def region_block_state(
    region: str = typer.Argument(..., help="Region name"),
    offset: int = typer.Argument(..., help="Block offset from the region base"),
    state: str = typer.Argument(None, help="New state; shows the current state when omitted"),
) -> None:
    """Show or set the state of the block at an offset within a region."""
    session = _session()
    with _errors():
        session.provisioner.get_region(region)
        if state is None:
            typer.echo(session.provisioner.block_state_at(region, offset).value)
            return
        session.provisioner.set_block_state_at(region, offset, BlockPolicy.parse(state))
    typer.echo(f"{region} block {offset} {state}")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
