"""Dependency registry.

Static table of the third-party tools SGDK Helper fetches and builds. The
table is resolved once at import time; descriptors are immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from sgdk_helper.types import SourceKind

if TYPE_CHECKING:
    from sgdk_helper.config import HelperPaths


class UnknownDependencyError(Exception):
    """Raised when a dependency name is not in the registry."""

    def __init__(self, name: str, code: str = "unknown_dependency") -> None:
        """Initialize UnknownDependencyError.

        Args:
            name: The name that failed to resolve.
            code: Error code for structured error handling.
        """
        super().__init__(f"Unknown dependency: {name}")
        self.name = name
        self.code = code


class DependencyId(str, Enum):
    """Identifiers of the known dependencies."""

    MACCER = "maccer"
    SJASM = "sjasm"
    SGDK = "sgdk"
    TOOLCHAIN = "toolchain"


@dataclass(frozen=True)
class DependencyDescriptor:
    """Where a dependency comes from and where it lives locally.

    Attributes:
        name: Directory name of the source checkout (or extracted archive).
        source_kind: Archive download or git repository.
        location: Archive URL or repository URL.
        ref: Git ref to check out (empty for archives).
        sparse_paths: Non-cone sparse-checkout patterns (git only).
        description: Human readable summary.
    """

    name: str
    source_kind: SourceKind
    location: str
    ref: str = ""
    sparse_paths: tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        """Validate descriptor fields."""
        if not self.location:
            raise ValueError(f"{self.name}: location must be provided")
        if self.source_kind is SourceKind.ARCHIVE:
            if self.ref:
                raise ValueError(f"{self.name}: archives have no ref")
            if self.sparse_paths:
                raise ValueError(f"{self.name}: sparse paths are git-only")
        elif not self.ref:
            raise ValueError(f"{self.name}: git dependencies need a ref")

    @property
    def archive_name(self) -> str:
        """File name of the downloaded archive."""
        return self.location.rsplit("/", 1)[-1]

    def source_dir(self, paths: HelperPaths) -> Path:
        """Directory holding this dependency's source."""
        return paths.src_dir / self.name

    def archive_path(self, paths: HelperPaths) -> Path:
        """Local path of the downloaded archive."""
        return paths.src_dir / self.archive_name


# SGDK ships Windows binaries and example resources we never use; only the
# top-level files plus these directories are materialised.
SGDK_SPARSE_PATHS: tuple[str, ...] = (
    "/*",
    "!/*/",
    "/inc",
    "/res",
    "/src",
    "/tools/bintos",
    "/tools/xgmtool",
    "/bin/*.jar",
)

REGISTRY: dict[DependencyId, DependencyDescriptor] = {
    DependencyId.MACCER: DependencyDescriptor(
        name="maccer",
        source_kind=SourceKind.ARCHIVE,
        location="https://gendev.spritesmind.net/files/maccer-026k02.zip",
        description="Macro preprocessor for the ASxxxx series of assemblers",
    ),
    DependencyId.SJASM: DependencyDescriptor(
        name="Sjasm",
        source_kind=SourceKind.GIT,
        location="https://github.com/Konamiman/Sjasm.git",
        ref="v0.39",
        description="Z80 assembler",
    ),
    DependencyId.SGDK: DependencyDescriptor(
        name="SGDK",
        source_kind=SourceKind.GIT,
        location="https://github.com/Stephane-D/SGDK.git",
        ref="master",
        sparse_paths=SGDK_SPARSE_PATHS,
        description="Development kit for the Sega Mega Drive",
    ),
    DependencyId.TOOLCHAIN: DependencyDescriptor(
        name="m68k-gcc-toolchain",
        source_kind=SourceKind.GIT,
        location="https://github.com/andwn/m68k-gcc-toolchain.git",
        ref="main",
        description="GNU cross compiler toolchain for m68k-elf",
    ),
}

# Dependencies covered by `deps`; the toolchain has its own command
DEFAULT_FETCH_ORDER: tuple[DependencyId, ...] = (
    DependencyId.MACCER,
    DependencyId.SJASM,
    DependencyId.SGDK,
)


def get_descriptor(dep: DependencyId | str) -> DependencyDescriptor:
    """Look up a dependency descriptor.

    Args:
        dep: Dependency identifier or its string value (case-insensitive).

    Returns:
        The descriptor.

    Raises:
        UnknownDependencyError: If the dependency is not registered.
    """
    try:
        dep_id = dep if isinstance(dep, DependencyId) else DependencyId(dep.lower())
    except ValueError:
        raise UnknownDependencyError(str(dep)) from None
    return REGISTRY[dep_id]


__all__ = [
    "DEFAULT_FETCH_ORDER",
    "REGISTRY",
    "SGDK_SPARSE_PATHS",
    "DependencyDescriptor",
    "DependencyId",
    "UnknownDependencyError",
    "get_descriptor",
]
