"""Tests for ROM build dispatch."""

import os
import subprocess
from pathlib import Path

import pytest

from sgdk_helper.config import ExecutionContext
from sgdk_helper.container.engine import ContainerEngine, ContainerEngineNotFoundError
from sgdk_helper.container.images import HELPER_COMMAND, ImageLayerManager
from sgdk_helper.deps.build import ArtifactBuilder
from sgdk_helper.dispatch import (
    SETUP_GUIDANCE,
    BuildRequest,
    ContainerExecutor,
    Dispatcher,
    NativeExecutor,
    open_shell,
    run_rom,
)
from sgdk_helper.types import ExecutionMode

PROJECT_TAG = "sgdk-helper"


@pytest.fixture
def context(tmp_path):
    return ExecutionContext(workdir=tmp_path / "game")


@pytest.fixture
def native(paths, runner):
    return NativeExecutor(paths, runner, ArtifactBuilder(paths, runner))


@pytest.fixture
def native_ready(paths):
    """Create the native output directories and the LTO plugin."""
    paths.sgdk_bin_dir.mkdir(parents=True)
    paths.out_bin_dir.mkdir(parents=True)
    plugin = paths.out_dir / "lib" / "liblto_plugin.so"
    plugin.parent.mkdir(parents=True)
    plugin.write_bytes(b"")
    return plugin


def container_dispatcher(runner, settings, context, native):
    engine = ContainerEngine("podman", runner)
    images = ImageLayerManager(engine, settings)
    return Dispatcher(engine, ContainerExecutor(engine, images, context), native)


class RecordingExecutor:
    """Executor that remembers the requests it received."""

    def __init__(self, exit_code=0):
        self.requests = []
        self.exit_code = exit_code

    def execute(self, request):
        self.requests.append(request)
        return self.exit_code


class TestSelect:
    """Tests for environment selection."""

    def test_container_when_engine_present(self, runner, settings, context, native):
        dispatcher = container_dispatcher(runner, settings, context, native)
        assert dispatcher.select() is ExecutionMode.CONTAINER

    def test_native_when_outputs_present(self, native, native_ready):
        assert Dispatcher(None, None, native).select() is ExecutionMode.NATIVE

    def test_native_needs_both_directories(self, native, paths):
        paths.out_bin_dir.mkdir(parents=True)
        assert Dispatcher(None, None, native).select() is ExecutionMode.UNAVAILABLE

    def test_unavailable(self, native):
        assert Dispatcher(None, None, native).select() is ExecutionMode.UNAVAILABLE


class TestDispatch:
    """Tests for routing build requests."""

    def test_container_route(self, runner, settings, context, native):
        """With an engine and a ready image, the helper re-runs itself in the container."""
        runner.probe_results[("podman", "image", "inspect", PROJECT_TAG)] = True
        dispatcher = container_dispatcher(runner, settings, context, native)

        result = dispatcher.dispatch(BuildRequest(args=("clean",), trace=True))

        assert result.mode is ExecutionMode.CONTAINER
        assert result.exit_code == 0
        assert not runner.commands_starting("podman", "build")
        (run,) = runner.commands_starting("podman", "run")
        assert f"{context.workdir}:/project" in run
        tail = run[run.index(PROJECT_TAG) + 1 :]
        assert tail == [*HELPER_COMMAND, "--trace", "rom", "clean"]

    def test_container_route_builds_missing_images(self, runner, settings, context, native):
        dispatcher = container_dispatcher(runner, settings, context, native)

        dispatcher.dispatch(BuildRequest())

        builds = runner.commands_starting("podman", "build")
        assert len(builds) == 2
        assert runner.commands[-1][:2] == ["podman", "run"]

    def test_container_preferred_over_native(self, runner, settings, context, native, native_ready):
        runner.probe_results[("podman", "image", "inspect", PROJECT_TAG)] = True
        dispatcher = container_dispatcher(runner, settings, context, native)

        assert dispatcher.dispatch(BuildRequest()).mode is ExecutionMode.CONTAINER
        assert not runner.commands_starting("make")

    def test_native_route(self, native, native_ready, runner, paths):
        """Without an engine the build runs on the host with tools on PATH."""
        result = Dispatcher(None, None, native).dispatch(BuildRequest(args=("-j4",)))

        assert result.mode is ExecutionMode.NATIVE
        (make,) = runner.commands
        assert make[:3] == ["make", "-f", str(paths.sgdk_dir / "makefile.gen")]
        assert f"LTO_PLUGIN=--plugin={native_ready}" in make
        assert "PREFIX=m68k-elf-" in make
        assert make[-1] == "-j4"
        path_dirs = runner.envs[0]["PATH"].split(os.pathsep)
        assert path_dirs[:2] == [str(paths.sgdk_bin_dir), str(paths.out_bin_dir)]

    def test_unavailable_runs_nothing(self, native, runner):
        result = Dispatcher(None, None, native).dispatch(BuildRequest(args=("clean",)))

        assert result.mode is ExecutionMode.UNAVAILABLE
        assert result.exit_code == 0
        assert result.guidance == SETUP_GUIDANCE
        assert runner.commands == []

    def test_guidance_names_both_setups(self):
        assert "Container setup" in SETUP_GUIDANCE
        assert "Native setup" in SETUP_GUIDANCE
        assert "sgdk-helper container" in SETUP_GUIDANCE
        assert "sgdk-helper toolchain" in SETUP_GUIDANCE

    def test_native_failure_propagates(self, native, native_ready, runner):
        runner.fail_when = lambda cmd: 2
        with pytest.raises(subprocess.CalledProcessError) as exc_info:
            Dispatcher(None, None, native).dispatch(BuildRequest())
        assert exc_info.value.returncode == 2

    def test_custom_executor(self, native):
        """Any executor can stand in for the container path."""
        executor = RecordingExecutor(exit_code=3)
        dispatcher = Dispatcher(ContainerEngine("docker", None), executor, native)

        result = dispatcher.dispatch(BuildRequest(args=("a",)))

        assert result.exit_code == 3
        assert executor.requests == [BuildRequest(args=("a",))]

    def test_engine_without_container_executor(self, native):
        dispatcher = Dispatcher(ContainerEngine("docker", None), None, native)
        with pytest.raises(ContainerEngineNotFoundError):
            dispatcher.dispatch(BuildRequest())


class TestShellAndRun:
    """Tests for the interactive shell and emulator helpers."""

    def test_shell_requires_engine(self, context):
        with pytest.raises(ContainerEngineNotFoundError):
            open_shell(None, None, context)

    def test_shell(self, runner, settings, context):
        runner.probe_results[("podman", "image", "inspect", PROJECT_TAG)] = True
        engine = ContainerEngine("podman", runner)

        open_shell(engine, ImageLayerManager(engine, settings), context)

        (run,) = runner.commands_starting("podman", "run")
        assert run[-2:] == [PROJECT_TAG, "/bin/bash"]

    def test_run_rom(self, runner):
        run_rom(runner, "out/rom.bin")
        assert runner.commands == [["blastem", "out/rom.bin"]]

    def test_default_rom(self, runner):
        run_rom(runner)
        assert runner.commands[0][1] == str(Path("out") / "rom.bin")
