# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""CXL and DAX bus topology adapter.

Implements CxlTopologyPort on top of two AttributePorts, one rooted at the
CXL bus (``/sys/bus/cxl``) and one at the DAX bus (``/sys/bus/dax``).

Layout used below the CXL root::

    devices/root<N>                     root port
    devices/decoder<N>.<M>              decoders (root, switch, endpoint)
    devices/decoder<N>.<M>/create_ram_region, delete_region   (root only)
    devices/decoder<N>.<M>/{mode,dpa_size,region,interleave_granularity}  (endpoint)
    devices/mem<N>/ram/size
    devices/mem<N>/endpoint<P>          endpoint port of a memdev
    devices/region<N>/{resource,size,interleave_ways,
                       interleave_granularity,target<i>,commit}
    devices/region<N>/dax_region<N>/dax<N>.<M>
    drivers/{cxl_region,cxl_mem}/       bound devices, bind, unbind

Binding state is read from the driver directories: a device is enabled
when its name is listed under its driver.
"""

import logging
import re

from cxlmem.domain.errors import (
    MemdevNotFoundError,
    RegionNotFoundError,
    ResourceUnavailableError,
    TopologyOperationError,
)
from cxlmem.ports.outbound import AttributePort

logger = logging.getLogger(__name__)

_REGION_PATTERN = re.compile(r"^region(\d+)$")
_MEMDEV_PATTERN = re.compile(r"^mem(\d+)$")
_ROOT_PATTERN = re.compile(r"^root(\d+)$")
_ENDPOINT_PATTERN = re.compile(r"^endpoint(\d+)$")
_DECODER_PATTERN = re.compile(r"^decoder(\d+)\.(\d+)$")
_DAX_REGION_PATTERN = re.compile(r"^dax_region(\d+)$")
_DAX_PATTERN = re.compile(r"^dax(\d+)\.(\d+)$")

REGION_DRIVER = "cxl_region"
MEMDEV_DRIVER = "cxl_mem"
KMEM_DRIVER = "kmem"
DEVDAX_DRIVER = "device_dax"


def _numeric_key(pattern: re.Pattern[str]):
    def key(name: str) -> tuple[int, ...]:
        match = pattern.match(name)
        return tuple(int(g) for g in match.groups()) if match else ()

    return key


class SysfsCxlAdapter:
    """CxlTopologyPort implementation over the CXL and DAX sysfs buses.

    Args:
        cxl: Attribute port rooted at the CXL bus.
        dax: Attribute port rooted at the DAX bus.
    """

    def __init__(self, cxl: AttributePort, dax: AttributePort) -> None:
        self._cxl = cxl
        self._dax = dax

    # Helpers

    def _devices(self, pattern: re.Pattern[str]) -> list[str]:
        try:
            entries = self._cxl.list_dir("devices")
        except ResourceUnavailableError:
            logger.warning("CXL bus has no devices directory")
            return []
        names = [e.name for e in entries if pattern.match(e.name)]
        return sorted(names, key=_numeric_key(pattern))

    def _read(self, path: str) -> str:
        return self._cxl.read(f"devices/{path}").strip()

    def _read_int(self, path: str) -> int:
        text = self._read(path)
        try:
            return int(text, 0)
        except ValueError as e:
            raise TopologyOperationError(f"Unexpected value '{text}' in {path}") from e

    def _write(self, port: AttributePort, path: str, value: str) -> None:
        expected = len(value) + 1
        try:
            written = port.write(path, value)
        except ResourceUnavailableError as e:
            raise TopologyOperationError(f"Failed to open {path}: {e}") from e
        if written != expected:
            raise TopologyOperationError(
                f"Failed to write '{value}' to {path}: {written}/{expected} bytes"
            )
        logger.debug(f"Wrote '{value}' to {path}")

    def _bound(self, port: AttributePort, driver: str) -> set[str]:
        try:
            return {e.name for e in port.list_dir(f"drivers/{driver}")}
        except ResourceUnavailableError:
            return set()

    def _require_region(self, region: str) -> None:
        if region not in self._devices(_REGION_PATTERN):
            raise RegionNotFoundError(f"Region {region} not found")

    # Collections

    def list_regions(self) -> list[str]:
        return self._devices(_REGION_PATTERN)

    def list_memdevs(self) -> list[str]:
        return self._devices(_MEMDEV_PATTERN)

    def root_decoder(self) -> str | None:
        roots = self._devices(_ROOT_PATTERN)
        if not roots:
            return None
        port_id = _ROOT_PATTERN.match(roots[0]).group(1)
        for decoder in self._devices(_DECODER_PATTERN):
            if _DECODER_PATTERN.match(decoder).group(1) == port_id:
                return decoder
        return None

    # Regions

    def create_ram_region(self, root_decoder: str) -> str:
        """Claim the next region name from the root decoder and create it."""
        path = f"devices/{root_decoder}/create_ram_region"
        try:
            name = self._cxl.read(path).strip()
        except ResourceUnavailableError as e:
            raise TopologyOperationError(f"Root decoder {root_decoder} cannot create regions: {e}") from e
        if not _REGION_PATTERN.match(name):
            raise TopologyOperationError(f"Unexpected region name '{name}' from {path}")
        self._write(self._cxl, path, name)
        return name

    def delete_region(self, region: str) -> None:
        root = self.root_decoder()
        if root is None:
            raise TopologyOperationError("Could not obtain root decoder")
        self._write(self._cxl, f"devices/{root}/delete_region", region)

    def region_resource(self, region: str) -> int:
        self._require_region(region)
        return self._read_int(f"{region}/resource")

    def region_size(self, region: str) -> int:
        self._require_region(region)
        return self._read_int(f"{region}/size")

    def set_region_size(self, region: str, size: int) -> None:
        self._write(self._cxl, f"devices/{region}/size", hex(size))

    def region_interleave_ways(self, region: str) -> int:
        return self._read_int(f"{region}/interleave_ways")

    def set_interleave_ways(self, region: str, ways: int) -> None:
        self._write(self._cxl, f"devices/{region}/interleave_ways", str(ways))

    def region_interleave_granularity(self, region: str) -> int:
        return self._read_int(f"{region}/interleave_granularity")

    def set_interleave_granularity(self, region: str, granularity: int) -> None:
        self._write(self._cxl, f"devices/{region}/interleave_granularity", str(granularity))

    def region_target(self, region: str, slot: int) -> str | None:
        try:
            value = self._read(f"{region}/target{slot}")
        except ResourceUnavailableError:
            return None
        return value or None

    def set_region_target(self, region: str, slot: int, decoder: str) -> None:
        self._write(self._cxl, f"devices/{region}/target{slot}", decoder)

    def commit_region(self, region: str) -> None:
        self._write(self._cxl, f"devices/{region}/commit", "1")

    def region_is_enabled(self, region: str) -> bool:
        self._require_region(region)
        return region in self._bound(self._cxl, REGION_DRIVER)

    def enable_region(self, region: str) -> None:
        self._write(self._cxl, f"drivers/{REGION_DRIVER}/bind", region)

    def disable_region(self, region: str) -> None:
        self._write(self._cxl, f"drivers/{REGION_DRIVER}/unbind", region)

    # Memdevs and decoders

    def _require_memdev(self, memdev: str) -> None:
        if memdev not in self._devices(_MEMDEV_PATTERN):
            raise MemdevNotFoundError(f"Memdev {memdev} not found")

    def memdev_ram_size(self, memdev: str) -> int:
        self._require_memdev(memdev)
        return self._read_int(f"{memdev}/ram/size")

    def memdev_is_enabled(self, memdev: str) -> bool:
        self._require_memdev(memdev)
        return memdev in self._bound(self._cxl, MEMDEV_DRIVER)

    def memdev_decoder(self, memdev: str) -> str | None:
        self._require_memdev(memdev)
        try:
            entries = self._cxl.list_dir(f"devices/{memdev}")
        except ResourceUnavailableError:
            return None
        endpoints = sorted(
            (e.name for e in entries if _ENDPOINT_PATTERN.match(e.name)),
            key=_numeric_key(_ENDPOINT_PATTERN),
        )
        if not endpoints:
            logger.info(f"Memdev {memdev} has no endpoint port")
            return None
        port_id = _ENDPOINT_PATTERN.match(endpoints[0]).group(1)
        for decoder in self._devices(_DECODER_PATTERN):
            if _DECODER_PATTERN.match(decoder).group(1) == port_id:
                return decoder
        return None

    def memdev_interleave_granularity(self, memdev: str) -> int:
        decoder = self.memdev_decoder(memdev)
        if decoder is None:
            return 0
        return self._read_int(f"{decoder}/interleave_granularity")

    def decoder_region(self, decoder: str) -> str | None:
        try:
            value = self._read(f"{decoder}/region")
        except ResourceUnavailableError:
            return None
        return value or None

    def set_decoder_mode(self, decoder: str, mode: str) -> None:
        self._write(self._cxl, f"devices/{decoder}/mode", mode)

    def set_decoder_dpa_size(self, decoder: str, size: int) -> None:
        self._write(self._cxl, f"devices/{decoder}/dpa_size", hex(size))

    # DAX

    def dax_device(self, region: str) -> str | None:
        self._require_region(region)
        try:
            entries = self._cxl.list_dir(f"devices/{region}")
        except ResourceUnavailableError:
            return None
        dax_regions = sorted(e.name for e in entries if _DAX_REGION_PATTERN.match(e.name))
        if not dax_regions:
            return None
        try:
            devices = self._cxl.list_dir(f"devices/{region}/{dax_regions[0]}")
        except ResourceUnavailableError:
            return None
        names = sorted(
            (e.name for e in devices if _DAX_PATTERN.match(e.name)),
            key=_numeric_key(_DAX_PATTERN),
        )
        return names[0] if names else None

    def _dax_driver(self, dax_dev: str) -> str | None:
        for driver in (KMEM_DRIVER, DEVDAX_DRIVER):
            if dax_dev in self._bound(self._dax, driver):
                return driver
        return None

    def dax_is_enabled(self, dax_dev: str) -> bool:
        return self._dax_driver(dax_dev) is not None

    def dax_is_ram_mode(self, dax_dev: str) -> bool:
        return self._dax_driver(dax_dev) == KMEM_DRIVER

    def disable_dax(self, dax_dev: str) -> None:
        driver = self._dax_driver(dax_dev)
        if driver is None:
            return
        self._write(self._dax, f"drivers/{driver}/unbind", dax_dev)

    def enable_devdax(self, dax_dev: str) -> None:
        self._write(self._dax, f"drivers/{DEVDAX_DRIVER}/bind", dax_dev)

    def enable_ram(self, dax_dev: str) -> None:
        self._write(self._dax, f"drivers/{KMEM_DRIVER}/bind", dax_dev)
