"""Shared type definitions for sgdk_helper.

This module contains enums shared across subpackages to
avoid circular imports.
"""

from enum import Enum


class SourceKind(str, Enum):
    """Where a dependency's source comes from."""

    ARCHIVE = "archive"
    GIT = "git"


class BuildVariant(str, Enum):
    """Build configuration of the SGDK library."""

    RELEASE = "release"
    DEBUG = "debug"


class FetchStatus(str, Enum):
    """Fetch state of a dependency, as observed on disk."""

    ABSENT = "absent"
    CLONED = "cloned"
    UP_TO_DATE = "up_to_date"


class ExecutionMode(str, Enum):
    """Environment a ROM build is dispatched to."""

    CONTAINER = "container"
    NATIVE = "native"
    UNAVAILABLE = "unavailable"


class PackageSet(str, Enum):
    """System package sets installed in the container images."""

    TOOLCHAIN = "toolchain"
    SGDK = "sgdk"


__all__ = [
    "BuildVariant",
    "ExecutionMode",
    "FetchStatus",
    "PackageSet",
    "SourceKind",
]
