"""Smoke tests for the CLI.

These tests verify CLI wiring without network access, git, compilers or a
container engine.
"""

import json
import re
import subprocess

import pytest
from typer.testing import CliRunner

from sgdk_helper import __version__
from sgdk_helper.cli import app
from sgdk_helper.container.engine import ContainerEngine
from sgdk_helper.deps.build import ArtifactBuilder
from sgdk_helper.deps.fetch import SourceFetcher

runner = CliRunner()


@pytest.fixture
def no_engine(monkeypatch):
    """Pretend no container engine is installed."""
    monkeypatch.setattr(ContainerEngine, "detect", classmethod(lambda cls, *a, **k: None))


@pytest.fixture
def env(tmp_path):
    return {"DEP_DIR": str(tmp_path / "deps")}


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "SGDK Helper" in result.stdout

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self, env) -> None:
        result = runner.invoke(app, ["config"], env=env)
        assert result.exit_code == 0
        assert "Dependency directory" in result.stdout
        assert "Toolchain image" in result.stdout

    def test_config_json(self, env) -> None:
        result = runner.invoke(app, ["config", "--json"], env=env)
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dep_dir"] == env["DEP_DIR"]

    def test_config_reports_trace_flag(self, env, no_engine) -> None:
        """-x should show up as the effective trace setting."""
        result = runner.invoke(app, ["-x", "config"], env=env)
        assert result.exit_code == 0
        assert re.search(r"Trace:\s+True", result.stdout)


class TestCLIRom:
    """Test ROM build dispatch through the CLI."""

    def test_guidance_when_nothing_ready(self, env, no_engine) -> None:
        """With no engine and no native outputs, guidance is shown and nothing fails."""
        result = runner.invoke(app, ["rom", "clean"], env=env)
        assert result.exit_code == 0
        assert "Container setup" in result.stdout
        assert "Native setup" in result.stdout

    def test_romrun_skips_emulator_when_not_ready(self, env, no_engine, monkeypatch) -> None:
        calls = []
        monkeypatch.setattr("sgdk_helper.cli.run_rom", lambda *a, **k: calls.append(a))

        result = runner.invoke(app, ["romrun"], env=env)

        assert result.exit_code == 0
        assert calls == []

    def test_passthrough_options(self, env, no_engine, monkeypatch) -> None:
        """Unknown options after `rom` go to make untouched."""
        seen = []

        def fake_dispatch(self, request):
            seen.append(request)
            from sgdk_helper.dispatch import DispatchResult
            from sgdk_helper.types import ExecutionMode

            return DispatchResult(mode=ExecutionMode.NATIVE)

        monkeypatch.setattr("sgdk_helper.dispatch.Dispatcher.dispatch", fake_dispatch)

        result = runner.invoke(app, ["-x", "rom", "-j4", "clean"], env=env)

        assert result.exit_code == 0
        assert seen[0].args == ("-j4", "clean")
        assert seen[0].trace is True

    def test_tool_exit_code_propagates(self, env, no_engine, monkeypatch) -> None:
        def failing(self, request):
            raise subprocess.CalledProcessError(2, ["make"])

        monkeypatch.setattr("sgdk_helper.dispatch.Dispatcher.dispatch", failing)

        result = runner.invoke(app, ["rom"], env=env)
        assert result.exit_code == 2


class TestCLIDeps:
    """Test fetch/build commands."""

    def test_fetch_unknown_dependency(self, env, no_engine) -> None:
        result = runner.invoke(app, ["fetch", "zlib"], env=env)
        assert result.exit_code == 1
        assert "Unknown dependency" in result.stdout

    def test_fetch_accepts_names(self, env, no_engine, monkeypatch) -> None:
        fetched = []
        monkeypatch.setattr(SourceFetcher, "fetch_all", lambda self, deps: fetched.extend(deps))

        result = runner.invoke(app, ["fetch", "SGDK", "sjasm"], env=env)

        assert result.exit_code == 0
        assert [d.value for d in fetched] == ["sgdk", "sjasm"]

    def test_build_unknown_step(self, env, no_engine) -> None:
        result = runner.invoke(app, ["build", "nope"], env=env)
        assert result.exit_code == 1
        assert "Unknown build step" in result.stdout

    def test_build_variant(self, env, no_engine, monkeypatch) -> None:
        variants = []
        monkeypatch.setattr(
            ArtifactBuilder, "build_sgdk_lib_variant", lambda self, v: variants.append(v)
        )

        result = runner.invoke(app, ["build", "sgdk-lib", "--variant", "debug"], env=env)

        assert result.exit_code == 0
        assert [v.value for v in variants] == ["debug"]

    def test_lto_plugin_missing(self, env, no_engine) -> None:
        result = runner.invoke(app, ["lto-plugin-path"], env=env)
        assert result.exit_code == 1
        assert "liblto_plugin.so" in result.stdout

    def test_delete_toolchain_src_nothing(self, env, no_engine) -> None:
        result = runner.invoke(app, ["delete-toolchain-src"], env=env)
        assert result.exit_code == 0
        assert "No toolchain source" in result.stdout


class TestCLIContainer:
    """Test container commands."""

    def test_container_without_engine(self, env, no_engine) -> None:
        result = runner.invoke(app, ["container"], env=env)
        assert result.exit_code == 1
        assert "No supported container tool" in result.stdout

    def test_shell_without_engine(self, env, no_engine) -> None:
        result = runner.invoke(app, ["shell"], env=env)
        assert result.exit_code == 1


class TestCLIStatus:
    """Test status command."""

    def test_status_json(self, env, no_engine) -> None:
        result = runner.invoke(app, ["status", "--json"], env=env)
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["mode"] == "unavailable"
        assert data["container_tool"] is None
        assert data["dependencies"]["sgdk"] == "absent"


class TestCLIMakefile:
    """Test makefile command."""

    def test_writes_and_refuses_overwrite(self, tmp_path, env) -> None:
        target = tmp_path / "Makefile"

        first = runner.invoke(app, ["makefile", "--path", str(target)], env=env)
        second = runner.invoke(app, ["makefile", "--path", str(target)], env=env)

        assert first.exit_code == 0
        assert target.exists()
        assert second.exit_code == 1
        assert "--force" in second.stdout
