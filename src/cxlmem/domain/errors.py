# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain exception hierarchy.

All domain-level errors inherit from MemError.
This allows clean exception handling at the CLI boundary.
"""


class MemError(Exception):
    """Base exception for all domain errors."""


class ResourceUnavailableError(MemError):
    """Attribute path missing or unreadable, or topology element absent."""


class BlockNotFoundError(ResourceUnavailableError):
    """Requested memory block does not exist (or offset falls outside a region)."""


class RegionNotFoundError(ResourceUnavailableError):
    """Requested CXL region does not exist in the topology."""


class MemdevNotFoundError(ResourceUnavailableError):
    """Requested CXL memory device does not exist in the topology."""


class InvalidTransitionError(MemError):
    """Disallowed state change (online -> online, enable an enabled region, etc)."""


class PartialFailureError(MemError):
    """Bulk operation where some items succeeded and some failed.

    Only the aggregate count is reported, not which items failed.
    """

    def __init__(self, message: str, failed: int, total: int) -> None:
        super().__init__(message)
        self.failed = failed
        self.total = total


class ConfigurationInconsistencyError(MemError):
    """Sentinel base/size from the region collaborator or zero block size."""


class WriteVerificationError(MemError):
    """Attribute write returned fewer bytes than expected."""

    def __init__(self, message: str, expected: int, written: int) -> None:
        super().__init__(message)
        self.expected = expected
        self.written = written


class InvalidPolicyError(MemError):
    """Policy string unparseable or policy value out of range."""


class InvalidGranularityError(MemError):
    """Interleave granularity is not one of the supported power-of-two sizes."""


class BlockValidationError(MemError):
    """MemoryBlock validation failed (negative block_id, etc)."""


class TopologyOperationError(MemError):
    """Kernel-side CXL or DAX operation failed (bind, commit, create, delete)."""


class RegionProvisioningError(MemError):
    """A step of a multi-step region operation failed.

    Attributes:
        region: Name of the region being operated on (None if never created).
        step: Short name of the failing step (e.g. "set_dpa_size").
        rolled_back: True if the partially built region was deleted.
    """

    def __init__(
        self,
        message: str,
        region: str | None = None,
        step: str | None = None,
        rolled_back: bool = False,
    ) -> None:
        super().__init__(message)
        self.region = region
        self.step = step
        self.rolled_back = rolled_back
