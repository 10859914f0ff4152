"""Configuration management with Pydantic.

Process-wide knobs live in :class:`Settings` (environment / ``.env``), the
description of one packaging unit lives in :class:`BundleConfig`.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from zipjet.files.resolve import DEFAULT_CONFIG_FILES

DEFAULT_EXCLUDES = [
    ".git/**",
    ".gitignore",
    ".DS_Store",
    ".serverless/**",
    ".serverless_plugins/**",
    "npm-debug.log*",
    "yarn-error.log*",
]


class Settings(BaseSettings):
    """zipjet configuration settings.

    Precedence: CLI flag > environment variable > ``.env`` file > defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZIPJET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    concurrency: int = Field(
        default=1,
        ge=1,
        description="Packaging units built in parallel",
    )

    collapsed_bail: bool = Field(
        default=False,
        description="Fail a unit when collapsed files are detected",
    )

    dynamic_bail: bool = Field(
        default=False,
        description="Fail a traced unit when unresolved dynamic imports remain",
    )

    compression_level: int = Field(
        default=6,
        ge=0,
        le=9,
        description="DEFLATE level used for archive entries",
    )

    service_config_files: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONFIG_FILES),
        description="Service config file names, first existing one is never packaged",
    )

    default_excludes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDES),
        description="Exclude patterns applied to every unit",
    )

    log_level: str = Field(
        default="WARNING",
        description="Root logging level used by the CLI",
    )

    @field_validator("log_level")
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def max_workers(self) -> int:
        """Thread count for file-system fan-out inside one unit."""
        return max(4, min(32, (os.cpu_count() or 1) + 4))


class BundleMode(str, Enum):
    """Dependency strategy used for a unit."""

    TRACE = "trace"
    DEPENDENCY = "dependency"


class DynamicConfig(BaseModel):
    """Handling of imports that tracing cannot follow."""

    bail: bool = False
    resolutions: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Source path or package path mapped to extra specifiers it imports",
    )


class TraceConfig(BaseModel):
    """Options for the trace strategy."""

    ignores: list[str] = Field(default_factory=list)
    allow_missing: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Requiring package (or source path) mapped to modules allowed missing",
    )
    allow_missing_packages: list[str] = Field(
        default_factory=list,
        description="Modules allowed missing from any source",
    )
    include: list[str] = Field(default_factory=list, description="Extra files to trace")
    dynamic: DynamicConfig = Field(default_factory=DynamicConfig)


class PackageGraphConfig(BaseModel):
    """Options for the package-graph strategy."""

    roots: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)


class BundleConfig(BaseModel):
    """Everything needed to package one unit."""

    cwd: Path = Field(..., description="Build working directory; file paths are relative to it")
    service_path: Path | None = Field(
        None, description="Service root holding the service config file (defaults to cwd)"
    )
    base: str = Field(".", description="Highest directory searched for node_modules, from cwd")
    bundle_name: str = Field(..., description="Archive path, relative to the service path")
    roots: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    pre_include: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    trace_include: list[str] | None = Field(
        None, description="Entry file patterns; setting them selects trace mode"
    )
    trace: TraceConfig = Field(default_factory=TraceConfig)

    @model_validator(mode="after")
    def _check_strategy(self) -> BundleConfig:
        if self.trace_include is not None and self.packages:
            raise ValueError("trace_include and packages cannot be combined")
        return self

    @property
    def mode(self) -> BundleMode:
        return BundleMode.TRACE if self.trace_include is not None else BundleMode.DEPENDENCY

    @property
    def resolved_service_path(self) -> Path:
        return Path(os.path.abspath(self.service_path or self.cwd))

    @property
    def root_path(self) -> Path:
        return Path(os.path.abspath(self.resolved_service_path / self.base))

    @property
    def bundle_path(self) -> Path:
        return Path(os.path.abspath(self.resolved_service_path / self.bundle_name))

    @property
    def graph(self) -> PackageGraphConfig:
        return PackageGraphConfig(roots=self.roots, packages=self.packages)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance (useful for testing)."""
    global _settings
    _settings = settings
