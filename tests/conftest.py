"""Shared fixtures for sgdk_helper tests.

External tools are never run: a recording command runner stands in for
subprocess and lets tests decide which commands fail and which executables
exist.
"""

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from sgdk_helper.config import HelperPaths, Settings
from sgdk_helper.process import CommandRunner


class RecordingRunner(CommandRunner):
    """Command runner that records commands instead of executing them."""

    def __init__(self) -> None:
        super().__init__(trace=False)
        self.commands: list[list[str]] = []
        self.envs: list[dict[str, str] | None] = []
        self.available: set[str] = set()
        self.probe_results: dict[tuple[str, ...], bool] = {}
        self.fail_when: Callable[[list[str]], int] | None = None
        self.on_run: Callable[[list[str]], None] | None = None

    def run(self, cmd: Sequence, cwd=None, env=None):
        args = [str(c) for c in cmd]
        self.commands.append(args)
        self.envs.append(dict(env) if env else None)
        if self.on_run is not None:
            self.on_run(args)
        if self.fail_when is not None:
            code = self.fail_when(args)
            if code:
                raise subprocess.CalledProcessError(code, args)
        return subprocess.CompletedProcess(args, 0)

    def capture(self, cmd: Sequence, cwd=None) -> str:
        self.run(cmd, cwd=cwd)
        return ""

    def succeeds(self, cmd: Sequence) -> bool:
        args = tuple(str(c) for c in cmd)
        self.commands.append(list(args))
        return self.probe_results.get(args, False)

    def which(self, tool: str) -> str | None:
        return f"/usr/bin/{tool}" if tool in self.available else None

    def commands_starting(self, *prefix: str) -> list[list[str]]:
        """Recorded commands beginning with the given arguments."""
        return [c for c in self.commands if c[: len(prefix)] == list(prefix)]


@pytest.fixture
def runner() -> RecordingRunner:
    """A fresh recording runner."""
    return RecordingRunner()


@pytest.fixture
def paths(tmp_path: Path) -> HelperPaths:
    """Dependency layout rooted in a temporary directory."""
    return HelperPaths(dep_dir=tmp_path / ".deps")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary dependency directory."""
    return Settings(dep_dir=tmp_path / ".deps")
