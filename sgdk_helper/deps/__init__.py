"""Dependency management module.

This module handles:
- The registry of pinned third-party tools
- Fetching sources (archive downloads, partial and sparse git clones)
- Building artifacts into the shared output tree
"""

from sgdk_helper.deps.build import ArtifactBuilder, ArtifactNotFoundError
from sgdk_helper.deps.fetch import (
    DownloadError,
    FilesystemStatusProvider,
    SourceFetcher,
    StatusProvider,
)
from sgdk_helper.deps.registry import (
    DEFAULT_FETCH_ORDER,
    REGISTRY,
    DependencyDescriptor,
    DependencyId,
    UnknownDependencyError,
    get_descriptor,
)

__all__ = [
    # Registry
    "DEFAULT_FETCH_ORDER",
    "REGISTRY",
    "DependencyDescriptor",
    "DependencyId",
    "UnknownDependencyError",
    "get_descriptor",
    # Fetch module
    "DownloadError",
    "FilesystemStatusProvider",
    "SourceFetcher",
    "StatusProvider",
    # Build module
    "ArtifactBuilder",
    "ArtifactNotFoundError",
]
