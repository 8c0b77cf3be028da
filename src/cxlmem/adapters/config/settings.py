# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cxlmem.domain.value_objects import (
    DEFAULT_INTERLEAVE_GRANULARITY,
    INTERLEAVE_GRANULARITIES,
)


class SysfsSettings(BaseSettings):
    """Kernel filesystem roots.

    Overridable so the tool can run against a copied or synthetic tree.
    """

    model_config = SettingsConfigDict(
        env_prefix="CXLMEM_SYSFS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    memory_root: Path = Field(
        default=Path("/sys/devices/system/memory"),
        description="Memory block root (memory<id>/ directories, block_size_bytes)",
    )

    cxl_root: Path = Field(
        default=Path("/sys/bus/cxl"),
        description="CXL bus root (regions, decoders, memdevs)",
    )

    dax_root: Path = Field(
        default=Path("/sys/bus/dax"),
        description="DAX bus root (kmem and device_dax drivers)",
    )


class RegionSettings(BaseSettings):
    """Region provisioning defaults."""

    model_config = SettingsConfigDict(
        env_prefix="CXLMEM_REGION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_granularity: int = Field(
        default=DEFAULT_INTERLEAVE_GRANULARITY,
        description="Interleave granularity in bytes when none is given",
    )

    @field_validator("default_granularity")
    @classmethod
    def validate_default_granularity(cls, v: int) -> int:
        """Validate granularity is one of the sizes the CXL driver accepts."""
        if v not in INTERLEAVE_GRANULARITIES:
            raise ValueError(
                f"default_granularity must be one of {', '.join(str(g) for g in INTERLEAVE_GRANULARITIES)}"
            )
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CXLMEM_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    json_output: bool = Field(
        default=False,
        description="Render log events as JSON lines instead of console text",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """Root settings container.

    Example:
        >>> settings = Settings()
        >>> settings.sysfs.memory_root
        PosixPath('/sys/devices/system/memory')
        >>> settings.region.default_granularity
        4096
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sysfs: SysfsSettings = Field(default_factory=SysfsSettings)
    region: RegionSettings = Field(default_factory=RegionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings singleton.

    Loads configuration from environment variables and .env file.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings (for testing).

    Forces reload of configuration from environment.
    """
    global _settings
    _settings = Settings()
    return _settings
