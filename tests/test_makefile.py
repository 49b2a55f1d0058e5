"""Tests for the generated Makefile wrapper."""

import pytest

from sgdk_helper import __version__
from sgdk_helper.makefile import (
    DEFAULT_TARGETS,
    MakefileExistsError,
    render_makefile,
    write_makefile,
)


class TestRenderMakefile:
    """Tests for render_makefile."""

    def test_pins_version(self):
        text = render_makefile(version="1.2.3")
        assert "SGDK_HELPER_VERSION := 1.2.3" in text
        assert '"sgdk-helper==$(SGDK_HELPER_VERSION)"' in text

    def test_targets_forward_to_helper(self):
        text = render_makefile()
        for target in DEFAULT_TARGETS:
            assert f"\n{target}: $(SGDK_HELPER_STAMP)\n" in text
        assert "\t$(SGDK_HELPER) rom clean\n" in text
        assert f".PHONY: {' '.join(DEFAULT_TARGETS)}" in text

    def test_reinstall_when_makefile_changes(self):
        """The install stamp depends on the Makefile itself."""
        text = render_makefile(makefile_name="GNUmakefile")
        assert "$(SGDK_HELPER_STAMP): GNUmakefile\n" in text

    def test_recipes_use_tabs(self):
        recipe_lines = [l for l in render_makefile().splitlines() if l.startswith(("\t", "    "))]
        assert recipe_lines
        assert all(l.startswith("\t") for l in recipe_lines)

    def test_custom_targets(self):
        text = render_makefile(targets={"go": ("rom",)})
        assert "go: $(SGDK_HELPER_STAMP)" in text
        assert "romrun" not in text


class TestWriteMakefile:
    """Tests for write_makefile."""

    def test_write(self, tmp_path):
        path = write_makefile(tmp_path / "Makefile")
        assert f":= {__version__}" in path.read_text()

    def test_refuses_overwrite(self, tmp_path):
        path = tmp_path / "Makefile"
        path.write_text("all:\n")
        with pytest.raises(MakefileExistsError) as exc_info:
            write_makefile(path)
        assert exc_info.value.code == "makefile_exists"
        assert path.read_text() == "all:\n"

    def test_force(self, tmp_path):
        path = tmp_path / "Makefile"
        path.write_text("all:\n")
        write_makefile(path, force=True)
        assert "SGDK_HELPER" in path.read_text()
