"""Container engine wrapper.

Supports podman and docker through their common CLI surface. Engine
detection is a PATH lookup; image existence is asked of the engine itself.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sgdk_helper.config import ExecutionContext
    from sgdk_helper.process import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER_TOOLS: tuple[str, ...] = ("podman", "docker")


class ContainerEngineNotFoundError(Exception):
    """Raised when a command needs a container engine and none is installed."""

    def __init__(
        self,
        candidates: Sequence[str] = DEFAULT_CONTAINER_TOOLS,
        code: str = "container_engine_not_found",
    ) -> None:
        """Initialize ContainerEngineNotFoundError.

        Args:
            candidates: Engines that were looked for.
            code: Error code for structured error handling.
        """
        super().__init__(
            f"No supported container tool found (looked for: {', '.join(candidates)})"
        )
        self.candidates = tuple(candidates)
        self.code = code


class ContainerEngine:
    """A container engine CLI (podman or docker)."""

    def __init__(self, tool: str, runner: CommandRunner) -> None:
        self.tool = tool
        self.runner = runner

    def __repr__(self) -> str:
        return f"ContainerEngine({self.tool!r})"

    @classmethod
    def detect(
        cls,
        runner: CommandRunner,
        candidates: Sequence[str] = DEFAULT_CONTAINER_TOOLS,
    ) -> ContainerEngine | None:
        """Return the first available engine, or None."""
        for tool in candidates:
            if runner.which(tool):
                logger.debug("Using container tool %s", tool)
                return cls(tool, runner)
        return None

    def image_exists(self, tag: str) -> bool:
        """Ask the engine whether an image tag exists locally."""
        return self.runner.succeeds([self.tool, "image", "inspect", tag])

    def build(self, context_dir: Path, containerfile: Path, tag: str) -> None:
        """Build an image from a Containerfile.

        Raises:
            subprocess.CalledProcessError: If the build fails.
        """
        logger.info("Building container image %s", tag)
        self.runner.run(
            [self.tool, "build", str(context_dir), "-t", tag, "-f", str(containerfile)]
        )

    def user_mapping_args(self) -> list[str]:
        """Arguments that make files written in the container owned by the caller.

        Podman maps the image's ``helper`` user (uid 1000) onto the calling
        user; docker runs the container as the calling uid/gid.
        """
        if self.tool == "podman":
            return ["--uidmap", "1000:0:1", "--uidmap", "0:1:1000"]
        return ["--user", f"{os.getuid()}:{os.getgid()}"]

    def run_args(
        self,
        image: str,
        command: Sequence[str],
        context: ExecutionContext,
    ) -> list[str]:
        """Compose the ``run`` command line for an interactive container."""
        return [
            self.tool,
            "run",
            "-t",
            "-i",
            *self.user_mapping_args(),
            "--workdir",
            context.mount_path,
            "--env",
            f"DEP_DIR={context.container_dep_dir}",
            "-v",
            f"{context.workdir}:{context.mount_path}",
            image,
            *command,
        ]

    def run(
        self,
        image: str,
        command: Sequence[str],
        context: ExecutionContext,
    ) -> None:
        """Run a command in a new container with the project directory mounted.

        Raises:
            subprocess.CalledProcessError: If the command exits non-zero.
        """
        self.runner.run(self.run_args(image, command, context))


__all__ = [
    "DEFAULT_CONTAINER_TOOLS",
    "ContainerEngine",
    "ContainerEngineNotFoundError",
]
