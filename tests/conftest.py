# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Pytest configuration and shared fixtures.

This module defines:
- Test markers (unit, integration)
- Shared fixtures for fake port implementations
- Settings isolation from the host environment
"""

import os
from unittest.mock import MagicMock

import pytest

import cxlmem.adapters.config.settings as settings_module
from fakes import BLOCK_SIZE, FakeAttributes, FakeTopology



def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: Fast unit tests with fake or mocked ports (no sysfs access)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests against a synthetic sysfs tree on disk",
    )


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory) -> None:
    """Keep host CXLMEM_* variables, .env files and the settings singleton out of a test."""
    for name in list(os.environ):
        if name.startswith("CXLMEM_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))

    monkeypatch.setattr(settings_module, "_settings", None)


@pytest.fixture
def attributes() -> FakeAttributes:
    """Memory root with 256 MiB blocks and an online_movable policy."""
    attrs = FakeAttributes()
    attrs.set("block_size_bytes", f"{BLOCK_SIZE:x}")
    attrs.set("auto_online_blocks", "online_movable")
    return attrs


@pytest.fixture
def topology() -> FakeTopology:
    return FakeTopology()


@pytest.fixture
def mock_topology() -> MagicMock:
    """Bare CxlTopologyPort mock for call-order assertions."""
    mock = MagicMock()
    mock.list_regions.return_value = []
    mock.list_memdevs.return_value = []
    return mock
