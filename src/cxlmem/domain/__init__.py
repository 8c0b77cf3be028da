# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain layer for memory block and region management.

This package contains pure business logic with zero external dependencies.
All domain code uses only Python stdlib (typing, dataclasses, enum) and
internal cxlmem.domain imports.

Modules:
    entities: Domain entities (MemoryBlock)
    value_objects: Immutable value objects and kernel string parsing
        (BlockPolicy, RawBlockState, Zone, RegionBounds, RegionInfo,
        MemdevInfo, CapacitySummary)
    services: Pure domain functions (classify, block_address)
    errors: Domain exception hierarchy
"""
