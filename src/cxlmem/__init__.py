# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""cxlmem: memory block lifecycle and CXL region management.

Onlines and offlines kernel memory blocks, maps them onto CXL regions and
provisions new regions from CXL memory devices through sysfs.

Architecture: Hexagonal (Ports & Adapters)
- Domain core: Pure logic (block classification, address math, errors)
- Ports: Protocol-based interfaces (attribute files, CXL topology)
- Adapters: sysfs bindings, pydantic settings, structlog configuration
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
