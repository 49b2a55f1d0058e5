"""Layered container images.

Two images are built:

- The toolchain image: a public Debian base plus the m68k-elf GCC toolchain.
  Building GCC takes a long time, so this layer is only built when missing
  or when explicitly requested.
- The project image: ``FROM`` the toolchain image, adding the SGDK build
  dependencies and the tools built by ``deps``.

Inside the images the helper runs itself (``python -m sgdk_helper``) to
install packages and build dependencies, so each build context carries a
copy of this package.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import sgdk_helper
from sgdk_helper.config import CONTAINER_DEP_DIR, CONTAINER_HELPER_DIR, CONTAINER_PROJECT_DIR

if TYPE_CHECKING:
    from sgdk_helper.config import Settings
    from sgdk_helper.container.engine import ContainerEngine

logger = logging.getLogger(__name__)

CONTAINER_USER = "helper"
CONTAINERFILE_NAME = "Containerfile"
PACKAGE_DIR_NAME = "sgdk_helper"

# Python runtime for the helper inside the images
CONTAINER_VENV = f"{CONTAINER_HELPER_DIR}/venv"
RUNTIME_REQUIREMENTS: tuple[str, ...] = (
    "httpx",
    "pydantic",
    "pydantic-settings",
    "rich",
    "typer",
)

# How the helper invokes itself inside a container
HELPER_COMMAND: tuple[str, ...] = (f"{CONTAINER_VENV}/bin/python", "-m", "sgdk_helper")


def helper_command(*args: str, trace: bool = False) -> list[str]:
    """Build an in-container helper invocation, propagating trace mode."""
    cmd = list(HELPER_COMMAND)
    if trace:
        cmd.append("--trace")
    cmd.extend(args)
    return cmd


def _run_helper(*args: str, trace: bool, dep_dir: bool = False) -> str:
    prefix = f"DEP_DIR={CONTAINER_DEP_DIR} " if dep_dir else ""
    return f"RUN {prefix}{shlex.join(helper_command(*args, trace=trace))}"


@dataclass(frozen=True)
class ContainerImage:
    """A container image and the steps that build it.

    Attributes:
        tag: Image tag.
        base_tag: Tag of the image this one is built on; None means the
            public base image.
        steps: Containerfile instructions after ``FROM``.
    """

    tag: str
    base_tag: str | None
    steps: tuple[str, ...]

    def render(self, base_image: str) -> str:
        """Render the Containerfile text."""
        lines = [f"FROM {self.base_tag or base_image}", *self.steps]
        return "\n".join(lines) + "\n"


def toolchain_image(settings: Settings, trace: bool = False) -> ContainerImage:
    """Describe the toolchain image."""
    venv_pip = f"{CONTAINER_VENV}/bin/pip"
    steps = (
        f"RUN useradd -ms /bin/sh -d {CONTAINER_HELPER_DIR} {CONTAINER_USER}",
        f"RUN mkdir {CONTAINER_DEP_DIR}"
        f" && chown {CONTAINER_USER}:{CONTAINER_USER} {CONTAINER_DEP_DIR}/",
        "RUN apt-get update"
        " && apt-get install -y python3 python3-venv"
        " && apt-get clean",
        f"RUN python3 -m venv {CONTAINER_VENV}"
        f" && {venv_pip} install --no-cache-dir {' '.join(RUNTIME_REQUIREMENTS)}",
        f"ENV PYTHONPATH={CONTAINER_HELPER_DIR}",
        f"COPY --chown={CONTAINER_USER}:{CONTAINER_USER} {PACKAGE_DIR_NAME}"
        f" {CONTAINER_HELPER_DIR}/{PACKAGE_DIR_NAME}",
        _run_helper("install-packages", "toolchain", trace=trace),
        f"USER {CONTAINER_USER}",
        _run_helper("toolchain", trace=trace, dep_dir=True),
        _run_helper("delete-toolchain-src", trace=trace, dep_dir=True),
    )
    return ContainerImage(tag=settings.toolchain_tag, base_tag=None, steps=steps)


def project_image(settings: Settings, trace: bool = False) -> ContainerImage:
    """Describe the project image, layered on the toolchain image."""
    steps = (
        "USER root",
        f"RUN mkdir {CONTAINER_PROJECT_DIR}"
        f" && chown {CONTAINER_USER}:{CONTAINER_USER} {CONTAINER_PROJECT_DIR}/",
        f"COPY --chown={CONTAINER_USER}:{CONTAINER_USER} {PACKAGE_DIR_NAME}"
        f" {CONTAINER_HELPER_DIR}/{PACKAGE_DIR_NAME}",
        _run_helper("install-packages", "sgdk", trace=trace),
        f"USER {CONTAINER_USER}",
        _run_helper("deps", trace=trace, dep_dir=True),
    )
    return ContainerImage(
        tag=settings.container_tag,
        base_tag=settings.toolchain_tag,
        steps=steps,
    )


def package_source_dir() -> Path:
    """Directory of the installed sgdk_helper package."""
    return Path(sgdk_helper.__file__).resolve().parent


class ImageLayerManager:
    """Build and reuse the toolchain and project images.

    Args:
        engine: Container engine to build with.
        settings: Settings providing tags and the base image.
        trace: Propagate trace mode into the in-image helper runs.
        package_dir: Helper package copied into each build context.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        settings: Settings,
        trace: bool = False,
        package_dir: Path | None = None,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self.trace = trace
        self.package_dir = package_dir or package_source_dir()

    @property
    def toolchain(self) -> ContainerImage:
        return toolchain_image(self.settings, self.trace)

    @property
    def project(self) -> ContainerImage:
        return project_image(self.settings, self.trace)

    def build_image(self, image: ContainerImage) -> None:
        """Build one image in a throwaway build context.

        The context holds the Containerfile and a copy of this package. It
        is removed whether or not the build succeeds.

        Raises:
            subprocess.CalledProcessError: If the engine build fails.
        """
        with tempfile.TemporaryDirectory(prefix="sgdk-helper-build-") as tmp:
            context_dir = Path(tmp)
            shutil.copytree(
                self.package_dir,
                context_dir / PACKAGE_DIR_NAME,
                ignore=shutil.ignore_patterns("__pycache__", "*.pyc"),
            )
            containerfile = context_dir / CONTAINERFILE_NAME
            containerfile.write_text(image.render(self.settings.base_image))
            logger.debug("Containerfile for %s:\n%s", image.tag, containerfile.read_text())

            self.engine.build(context_dir, containerfile, image.tag)

    def build_toolchain_image(self) -> None:
        """Build the toolchain image, even if it already exists."""
        self.build_image(self.toolchain)

    def build_project_image(self) -> None:
        """Build the project image on top of the current toolchain image."""
        self.build_image(self.project)

    def ensure_toolchain_image(self) -> bool:
        """Build the toolchain image only if it does not exist.

        Returns:
            True if it was built.
        """
        if self.engine.image_exists(self.settings.toolchain_tag):
            logger.info("Toolchain image %s exists, reusing it", self.settings.toolchain_tag)
            return False
        self.build_toolchain_image()
        return True

    def build_images(self) -> None:
        """Rebuild the project image, building the toolchain image first if missing."""
        self.ensure_toolchain_image()
        self.build_project_image()

    def ensure_runtime_image(self) -> bool:
        """Make sure the project image exists, building the chain if needed.

        Returns:
            True if any image was built.
        """
        if self.engine.image_exists(self.settings.container_tag):
            return False
        self.build_images()
        return True

    def images(self) -> Sequence[ContainerImage]:
        """Both images, base layer first."""
        return (self.toolchain, self.project)


__all__ = [
    "CONTAINERFILE_NAME",
    "HELPER_COMMAND",
    "RUNTIME_REQUIREMENTS",
    "ContainerImage",
    "ImageLayerManager",
    "helper_command",
    "package_source_dir",
    "project_image",
    "toolchain_image",
]
