"""Generated Makefile wrapper.

Writes a small GNU make file into a project so ``make rom`` (and friends)
work without installing the helper by hand: the first run installs the
pinned helper version into a project-local virtualenv, and editing the
Makefile (e.g. bumping the pin) reinstalls it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from sgdk_helper import __version__

logger = logging.getLogger(__name__)

DEFAULT_MAKEFILE = Path("Makefile")

# make target -> helper arguments
DEFAULT_TARGETS: dict[str, tuple[str, ...]] = {
    "rom": ("rom",),
    "run": ("run",),
    "romrun": ("romrun",),
    "clean": ("rom", "clean"),
    "container": ("container",),
    "shell": ("shell",),
}

HEADER = """\
# Generated by sgdk-helper {version}. Targets forward to the pinned helper.
SGDK_HELPER_VERSION := {version}
SGDK_HELPER_VENV := .sgdk-helper/venv
SGDK_HELPER := $(SGDK_HELPER_VENV)/bin/sgdk-helper
SGDK_HELPER_STAMP := $(SGDK_HELPER_VENV)/.installed-$(SGDK_HELPER_VERSION)

.PHONY: {phony}

"""

INSTALL_RULE = """\
$(SGDK_HELPER_STAMP): {makefile}
\tpython3 -m venv $(SGDK_HELPER_VENV)
\t$(SGDK_HELPER_VENV)/bin/pip install --quiet "sgdk-helper==$(SGDK_HELPER_VERSION)"
\ttouch $@
"""


class MakefileExistsError(Exception):
    """Raised when refusing to overwrite an existing Makefile."""

    def __init__(self, path: Path, code: str = "makefile_exists") -> None:
        super().__init__(f"{path} already exists (use --force to overwrite)")
        self.path = path
        self.code = code


def render_makefile(
    version: str = __version__,
    targets: Mapping[str, tuple[str, ...]] | None = None,
    makefile_name: str = DEFAULT_MAKEFILE.name,
) -> str:
    """Render the wrapper Makefile text.

    Args:
        version: Helper version to pin.
        targets: Mapping of make target to helper arguments.
        makefile_name: Name the file will be written as (the install stamp
            depends on it).

    Returns:
        Makefile contents.
    """
    targets = dict(targets or DEFAULT_TARGETS)
    parts = [HEADER.format(version=version, phony=" ".join(targets))]

    for target, helper_args in targets.items():
        parts.append(
            f"{target}: $(SGDK_HELPER_STAMP)\n"
            f"\t$(SGDK_HELPER) {' '.join(helper_args)}\n\n"
        )

    parts.append(INSTALL_RULE.format(makefile=makefile_name))
    return "".join(parts)


def write_makefile(path: Path = DEFAULT_MAKEFILE, force: bool = False) -> Path:
    """Write the wrapper Makefile.

    Raises:
        MakefileExistsError: If the file exists and ``force`` is False.
    """
    if path.exists() and not force:
        raise MakefileExistsError(path)
    path.write_text(render_makefile(makefile_name=path.name))
    logger.info("Wrote %s", path)
    return path


__all__ = [
    "DEFAULT_TARGETS",
    "MakefileExistsError",
    "render_makefile",
    "write_makefile",
]
