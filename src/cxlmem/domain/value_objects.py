# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain value objects (immutable data structures).

The kernel exposes block state, zones and the auto-online policy as text.
This module is the only place those strings are parsed; everything past the
parse helpers works with the typed enums and flags defined here.
"""

from dataclasses import dataclass
from enum import Enum, IntFlag

from cxlmem.domain.errors import InvalidGranularityError, InvalidPolicyError

U64_MASK = 0xFFFF_FFFF_FFFF_FFFF

# Region resource values the CXL driver reports before a region is sized/committed
ADDRESS_UNAVAILABLE = U64_MASK
ADDRESS_UNSET = 0

INTERLEAVE_GRANULARITIES = (256, 512, 1024, 2048, 4096, 8192)
DEFAULT_INTERLEAVE_GRANULARITY = 4096


class BlockPolicy(Enum):
    """Target state for a block, and the system-wide auto-online policy.

    The values are the exact strings the kernel accepts in a block's
    ``state`` attribute and in ``auto_online_blocks``.
    """

    OFFLINE = "offline"
    ONLINE = "online"
    ONLINE_KERNEL = "online_kernel"
    ONLINE_MOVABLE = "online_movable"

    @property
    def sysfs_value(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> "BlockPolicy":
        """Parse a policy string as read from sysfs or typed by a user.

        Raises:
            InvalidPolicyError: If the string is not a known policy.
        """
        token = text.strip()
        for policy in cls:
            if policy.value == token:
                return policy
        raise InvalidPolicyError(f"Unknown memory policy '{token}'")


class RawBlockState(Enum):
    """Contents of a block's ``state`` attribute."""

    OFFLINE = "offline"
    ONLINE = "online"
    GOING_OFFLINE = "going-offline"

    @classmethod
    def parse(cls, text: str) -> "RawBlockState | None":
        token = text.strip()
        for state in cls:
            if state.value == token:
                return state
        return None


class Zone(IntFlag):
    """Bitset of zones listed in a block's ``valid_zones`` attribute."""

    DMA = 0x01
    DMA32 = 0x02
    NORMAL = 0x04
    MOVABLE = 0x08
    NONE = 0x10


_ZONE_TOKENS: dict[str, Zone] = {
    "DMA": Zone.DMA,
    "DMA32": Zone.DMA32,
    "Normal": Zone.NORMAL,
    "Movable": Zone.MOVABLE,
    "none": Zone.NONE,
}


def parse_zones(text: str) -> Zone:
    """Parse a space-separated ``valid_zones`` string into a Zone flag set.

    Unknown tokens are ignored, matching how the kernel list is consumed.

    Example:
        >>> parse_zones("Normal Movable")
        <Zone.NORMAL|MOVABLE: 12>
    """
    zones = Zone(0)
    for token in text.split():
        zone = _ZONE_TOKENS.get(token)
        if zone is not None:
            zones |= zone
    return zones


def format_zones(zones: Zone) -> str:
    """Render a Zone flag set back to kernel token order."""
    return " ".join(token for token, zone in _ZONE_TOKENS.items() if zones & zone)


def validate_granularity(granularity: int) -> int:
    """Check an interleave granularity against the supported sizes.

    Raises:
        InvalidGranularityError: If granularity is not in INTERLEAVE_GRANULARITIES.
    """
    if granularity not in INTERLEAVE_GRANULARITIES:
        raise InvalidGranularityError(
            f"Invalid interleave granularity {granularity}, "
            f"must be one of {', '.join(str(g) for g in INTERLEAVE_GRANULARITIES)}"
        )
    return granularity


@dataclass(frozen=True)
class RegionBounds:
    """Physical address range [base, base + size) of a region.

    A zero size means the region exists but has not been sized yet; such a
    region contains no blocks.
    """

    base: int
    size: int

    @property
    def end(self) -> int:
        return (self.base + self.size) & U64_MASK

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    def contains(self, addr: int) -> bool:
        if self.is_empty:
            return False
        return self.base <= addr < self.base + self.size


@dataclass(frozen=True)
class RegionInfo:
    """Point-in-time description of a CXL region, for listing."""

    name: str
    base: int
    size: int
    interleave_ways: int
    interleave_granularity: int
    enabled: bool


@dataclass(frozen=True)
class MemdevInfo:
    """Point-in-time description of a CXL memory device.

    ``interleave_granularity`` is that of the device's first endpoint
    decoder, 0 when the device has no endpoint.
    """

    name: str
    ram_size: int
    enabled: bool
    available: bool
    interleave_granularity: int


@dataclass(frozen=True)
class CapacitySummary:
    """Block counts and byte capacities for the system or one region."""

    block_size: int
    total_blocks: int
    online_blocks: int

    @property
    def offline_blocks(self) -> int:
        return self.total_blocks - self.online_blocks

    @property
    def total(self) -> int:
        return self.block_size * self.total_blocks

    @property
    def online(self) -> int:
        return self.block_size * self.online_blocks

    @property
    def offline(self) -> int:
        return self.block_size * self.offline_blocks
