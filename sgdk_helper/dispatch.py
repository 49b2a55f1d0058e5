"""ROM build dispatch.

A ROM build request runs in one of two environments:

1. Inside the project container image, when a container engine is installed
   (the image chain is built first if it is missing).
2. Directly on the host, when the toolchain and dependency outputs exist.

With neither available, no build is attempted and setup guidance is
returned instead. The choice is made once per invocation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from sgdk_helper.container.engine import ContainerEngineNotFoundError
from sgdk_helper.container.images import helper_command
from sgdk_helper.deps.build import CROSS_PREFIX
from sgdk_helper.process import prepend_path
from sgdk_helper.types import ExecutionMode

if TYPE_CHECKING:
    from sgdk_helper.config import ExecutionContext, HelperPaths
    from sgdk_helper.container.engine import ContainerEngine
    from sgdk_helper.container.images import ImageLayerManager
    from sgdk_helper.deps.build import ArtifactBuilder
    from sgdk_helper.process import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_ROM = "out/rom.bin"
EMULATOR = "blastem"

SETUP_GUIDANCE = """\
No ROM build environment is ready.

Container setup (recommended):
  Install podman or docker, then run:
    sgdk-helper container

Native setup:
  Install the build packages (see `sgdk-helper install-packages --help`), then run:
    sgdk-helper toolchain
    sgdk-helper deps
"""


@dataclass(frozen=True)
class BuildRequest:
    """A ROM build request.

    Attributes:
        args: Arguments passed through to ``make`` unchanged.
        trace: Whether command tracing is active.
    """

    args: tuple[str, ...] = ()
    trace: bool = False


@dataclass
class DispatchResult:
    """Outcome of dispatching a build request."""

    mode: ExecutionMode
    exit_code: int = 0
    guidance: str | None = None


class Executor(Protocol):
    """Something that can carry out a build request."""

    def execute(self, request: BuildRequest) -> int: ...


class ContainerExecutor:
    """Run the ROM build inside the project image.

    The helper re-invokes itself in the container with the same arguments;
    in there no engine is available, so it takes the native path.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        images: ImageLayerManager,
        context: ExecutionContext,
    ) -> None:
        self.engine = engine
        self.images = images
        self.context = context

    def execute(self, request: BuildRequest) -> int:
        self.images.ensure_runtime_image()
        self.engine.run(
            self.images.settings.container_tag,
            helper_command("rom", *request.args, trace=request.trace),
            self.context,
        )
        return 0


class NativeExecutor:
    """Run the ROM build on the host with SGDK's makefile."""

    def __init__(
        self,
        paths: HelperPaths,
        runner: CommandRunner,
        builder: ArtifactBuilder,
    ) -> None:
        self.paths = paths
        self.runner = runner
        self.builder = builder

    def is_ready(self) -> bool:
        """Whether both SGDK's tools and the dependency outputs exist."""
        return self.paths.sgdk_bin_dir.is_dir() and self.paths.out_bin_dir.is_dir()

    def command(self, request: BuildRequest) -> list[str]:
        return [
            "make",
            "-f",
            str(self.paths.sgdk_dir / "makefile.gen"),
            f"LTO_PLUGIN=--plugin={self.builder.lto_plugin_path()}",
            f"PREFIX={CROSS_PREFIX}",
            *request.args,
        ]

    def execute(self, request: BuildRequest) -> int:
        self.runner.run(
            self.command(request),
            env={"PATH": prepend_path([self.paths.sgdk_bin_dir, self.paths.out_bin_dir])},
        )
        return 0


class Dispatcher:
    """Route build requests to the container or the host.

    Args:
        engine: Detected container engine, or None.
        container: Executor for the container path (required with an engine).
        native: Executor for the host path.
    """

    def __init__(
        self,
        engine: ContainerEngine | None,
        container: Executor | None,
        native: NativeExecutor,
    ) -> None:
        self.engine = engine
        self.container = container
        self.native = native

    def select(self) -> ExecutionMode:
        """Decide where a build would run right now."""
        if self.engine is not None:
            return ExecutionMode.CONTAINER
        if self.native.is_ready():
            return ExecutionMode.NATIVE
        return ExecutionMode.UNAVAILABLE

    def dispatch(self, request: BuildRequest) -> DispatchResult:
        """Carry out a build request in the selected environment.

        Raises:
            subprocess.CalledProcessError: If the build (or an image build
                it triggers) fails.
        """
        mode = self.select()
        logger.debug("Dispatching ROM build to %s", mode.value)

        if mode is ExecutionMode.CONTAINER:
            if self.container is None:
                raise ContainerEngineNotFoundError()
            return DispatchResult(mode=mode, exit_code=self.container.execute(request))

        if mode is ExecutionMode.NATIVE:
            return DispatchResult(mode=mode, exit_code=self.native.execute(request))

        return DispatchResult(mode=mode, guidance=SETUP_GUIDANCE)


def open_shell(
    engine: ContainerEngine | None,
    images: ImageLayerManager | None,
    context: ExecutionContext,
) -> None:
    """Start an interactive shell in the project image.

    Raises:
        ContainerEngineNotFoundError: If no container engine is installed.
    """
    if engine is None or images is None:
        raise ContainerEngineNotFoundError()
    images.ensure_runtime_image()
    engine.run(images.settings.container_tag, ["/bin/bash"], context)


def run_rom(runner: CommandRunner, rom: str = DEFAULT_ROM) -> None:
    """Run a ROM in the emulator."""
    runner.run([EMULATOR, rom])


__all__ = [
    "DEFAULT_ROM",
    "SETUP_GUIDANCE",
    "BuildRequest",
    "ContainerExecutor",
    "DispatchResult",
    "Dispatcher",
    "Executor",
    "NativeExecutor",
    "open_shell",
    "run_rom",
]
