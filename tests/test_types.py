"""Tests for shared types module."""

from sgdk_helper.types import (
    BuildVariant,
    ExecutionMode,
    FetchStatus,
    PackageSet,
    SourceKind,
)


class TestEnums:
    """Test enum definitions."""

    def test_source_kind_values(self) -> None:
        assert SourceKind.ARCHIVE.value == "archive"
        assert SourceKind.GIT.value == "git"

    def test_build_variant_values(self) -> None:
        """Variant values double as SGDK makelib targets."""
        assert [v.value for v in BuildVariant] == ["release", "debug"]

    def test_fetch_status_values(self) -> None:
        assert FetchStatus.ABSENT.value == "absent"
        assert FetchStatus.CLONED.value == "cloned"
        assert FetchStatus.UP_TO_DATE.value == "up_to_date"

    def test_execution_mode_values(self) -> None:
        assert ExecutionMode("container") is ExecutionMode.CONTAINER
        assert ExecutionMode("native") is ExecutionMode.NATIVE
        assert ExecutionMode("unavailable") is ExecutionMode.UNAVAILABLE

    def test_package_set_is_str(self) -> None:
        assert PackageSet.SGDK == "sgdk"
