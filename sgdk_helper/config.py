"""Configuration settings for sgdk_helper.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

The dependency root is the one setting with a historical environment name:
``DEP_DIR`` selects where fetched sources (``<DEP_DIR>/src``) and built
outputs (``<DEP_DIR>/out``) live.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Paths used inside the container images
CONTAINER_PROJECT_DIR = "/project"
CONTAINER_DEP_DIR = "/deps"
CONTAINER_HELPER_DIR = "/helper"


def _default_dep_dir() -> Path:
    """Return the default dependency root directory."""
    return Path.cwd() / ".deps"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SGDK_HELPER_
    prefix, except for the dependency root which also honours ``DEP_DIR``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SGDK_HELPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    dep_dir: Path = Field(
        default_factory=_default_dep_dir,
        validation_alias=AliasChoices("DEP_DIR", "SGDK_HELPER_DEP_DIR", "dep_dir"),
        description="Root directory for dependency sources and outputs",
    )

    # Containers
    container_tools: list[str] = Field(
        default_factory=lambda: ["podman", "docker"],
        description="Container engines to look for, in order of preference",
    )
    container_tag: str = Field(
        default="sgdk-helper",
        description="Tag of the project container image",
    )
    base_image: str = Field(
        default="amd64/debian:12-slim",
        description="Public base image for the toolchain container image",
    )

    # Operational modes
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    trace: bool = Field(
        default=False,
        description="Log every external command, including inside containers",
    )

    # Network
    download_timeout: int = Field(
        default=600,
        ge=10,
        description="Timeout for archive downloads (seconds)",
    )
    user_agent: str = Field(
        default="Mozilla/4.0",
        description="User-Agent header sent with archive downloads",
    )

    @property
    def toolchain_tag(self) -> str:
        """Tag of the toolchain container image."""
        return f"{self.container_tag}-toolchain"


@dataclass(frozen=True)
class HelperPaths:
    """Fixed directory layout derived from the dependency root.

    Built once at startup and passed to everything that touches the
    dependency tree.
    """

    dep_dir: Path

    @classmethod
    def from_settings(cls, settings: Settings) -> HelperPaths:
        return cls(dep_dir=Path(settings.dep_dir).absolute())

    @property
    def src_dir(self) -> Path:
        return self.dep_dir / "src"

    @property
    def out_dir(self) -> Path:
        return self.dep_dir / "out"

    @property
    def out_bin_dir(self) -> Path:
        return self.out_dir / "bin"

    @property
    def sgdk_dir(self) -> Path:
        return self.src_dir / "SGDK"

    @property
    def sgdk_bin_dir(self) -> Path:
        return self.sgdk_dir / "bin"

    @property
    def toolchain_dir(self) -> Path:
        return self.src_dir / "m68k-gcc-toolchain"


@dataclass(frozen=True)
class ExecutionContext:
    """Per-invocation execution context.

    Attributes:
        workdir: Project directory the command was run from.
        trace: Whether command tracing is active.
        mount_path: Where ``workdir`` is mounted inside a container.
        container_dep_dir: Dependency root inside a container.
    """

    workdir: Path
    trace: bool = False
    mount_path: str = CONTAINER_PROJECT_DIR
    container_dep_dir: str = CONTAINER_DEP_DIR

    @classmethod
    def current(cls, trace: bool = False) -> ExecutionContext:
        return cls(workdir=Path.cwd(), trace=trace)


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "CONTAINER_DEP_DIR",
    "CONTAINER_HELPER_DIR",
    "CONTAINER_PROJECT_DIR",
    "ExecutionContext",
    "HelperPaths",
    "Settings",
    "get_settings",
    "print_settings_json",
]
