# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Outbound port interfaces (driven adapters).

These ports define the contracts for the application core to interact
with the kernel. Implementations are provided by outbound adapters
(sysfs attribute files, the CXL/DAX bus trees) and by in-memory fakes in
the test suite.

All interfaces use Protocol (PEP 544) for structural typing, allowing
implicit implementation without inheritance.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory listing."""

    name: str
    is_dir: bool = False
    is_link: bool = False


class AttributePort(Protocol):
    """Port for single text attribute access.

    Paths are relative to the adapter's root (the memory block root for
    the production adapter), e.g. ``"memory32/state"``.
    """

    def read(self, path: str) -> str:
        """Read an attribute.

        Args:
            path: Attribute path relative to the root.

        Returns:
            Attribute contents with the trailing newline removed.

        Raises:
            ResourceUnavailableError: If the attribute cannot be opened or read.
        """
        ...

    def write(self, path: str, value: str) -> int:
        """Write a value to an attribute.

        The value is written with one terminating byte, so a complete write
        returns ``len(value) + 1``. Callers verify the count.

        Args:
            path: Attribute path relative to the root.
            value: Text to write.

        Returns:
            Number of bytes the kernel accepted (may be short).

        Raises:
            ResourceUnavailableError: If the attribute cannot be opened.
        """
        ...

    def list_dir(self, path: str = "") -> list[DirEntry]:
        """List a directory.

        Args:
            path: Directory path relative to the root ("" for the root).

        Returns:
            Entries in directory order (unsorted).

        Raises:
            ResourceUnavailableError: If the directory cannot be opened.
        """
        ...


class CxlTopologyPort(Protocol):
    """Port for the CXL region / decoder / memdev and DAX device topology.

    Objects are addressed by their kernel device names ("region0",
    "decoder0.0", "mem0", "dax0.0"). Mutating calls raise
    TopologyOperationError when the kernel rejects the operation.
    """

    # Collections

    def list_regions(self) -> list[str]:
        """All regions, sorted by region id."""
        ...

    def list_memdevs(self) -> list[str]:
        """All memory devices, sorted by memdev id."""
        ...

    def root_decoder(self) -> str | None:
        """First decoder of the first root port, None if no CXL bus exists."""
        ...

    # Regions

    def create_ram_region(self, root_decoder: str) -> str:
        """Create an empty RAM region under a root decoder; returns its name."""
        ...

    def delete_region(self, region: str) -> None:
        ...

    def region_resource(self, region: str) -> int:
        """Region base physical address (0 or all-ones when unavailable)."""
        ...

    def region_size(self, region: str) -> int:
        ...

    def set_region_size(self, region: str, size: int) -> None:
        ...

    def region_interleave_ways(self, region: str) -> int:
        ...

    def set_interleave_ways(self, region: str, ways: int) -> None:
        ...

    def region_interleave_granularity(self, region: str) -> int:
        ...

    def set_interleave_granularity(self, region: str, granularity: int) -> None:
        ...

    def region_target(self, region: str, slot: int) -> str | None:
        """Endpoint decoder bound to a target slot, None if unbound."""
        ...

    def set_region_target(self, region: str, slot: int, decoder: str) -> None:
        ...

    def commit_region(self, region: str) -> None:
        """Commit the decode layout of a region."""
        ...

    def region_is_enabled(self, region: str) -> bool:
        ...

    def enable_region(self, region: str) -> None:
        ...

    def disable_region(self, region: str) -> None:
        ...

    # Memdevs and decoders

    def memdev_ram_size(self, memdev: str) -> int:
        ...

    def memdev_is_enabled(self, memdev: str) -> bool:
        ...

    def memdev_decoder(self, memdev: str) -> str | None:
        """First endpoint decoder of a memdev, None if it has no endpoint."""
        ...

    def memdev_interleave_granularity(self, memdev: str) -> int:
        """Interleave granularity of the memdev's first endpoint decoder.

        Returns 0 if the memdev has no endpoint decoder.
        """
        ...

    def decoder_region(self, decoder: str) -> str | None:
        """Region an endpoint decoder is attached to, None if free."""
        ...

    def set_decoder_mode(self, decoder: str, mode: str) -> None:
        ...

    def set_decoder_dpa_size(self, decoder: str, size: int) -> None:
        ...

    # DAX

    def dax_device(self, region: str) -> str | None:
        """First DAX device of the region's DAX region, None if absent."""
        ...

    def dax_is_enabled(self, dax_dev: str) -> bool:
        ...

    def dax_is_ram_mode(self, dax_dev: str) -> bool:
        """True if the device is onlined as system RAM (kmem)."""
        ...

    def disable_dax(self, dax_dev: str) -> None:
        ...

    def enable_devdax(self, dax_dev: str) -> None:
        ...

    def enable_ram(self, dax_dev: str) -> None:
        ...
