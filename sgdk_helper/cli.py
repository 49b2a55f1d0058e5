"""Thin CLI wrapper for sgdk_helper.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import subprocess
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from sgdk_helper import __version__
from sgdk_helper.config import (
    ExecutionContext,
    HelperPaths,
    Settings,
    get_settings,
    print_settings_json,
)
from sgdk_helper.container.engine import ContainerEngine, ContainerEngineNotFoundError
from sgdk_helper.container.images import ImageLayerManager
from sgdk_helper.deps.build import ArtifactBuilder, ArtifactNotFoundError
from sgdk_helper.deps.fetch import DownloadError, FilesystemStatusProvider, SourceFetcher
from sgdk_helper.deps.registry import (
    DEFAULT_FETCH_ORDER,
    REGISTRY,
    DependencyId,
    UnknownDependencyError,
)
from sgdk_helper.dispatch import (
    DEFAULT_ROM,
    BuildRequest,
    ContainerExecutor,
    Dispatcher,
    NativeExecutor,
    open_shell,
    run_rom,
)
from sgdk_helper.log import setup_logging
from sgdk_helper.makefile import MakefileExistsError, write_makefile
from sgdk_helper.packages import install_packages
from sgdk_helper.process import CommandRunner
from sgdk_helper.types import BuildVariant, ExecutionMode, PackageSet

app = typer.Typer(
    name="sgdk-helper",
    help="SGDK Helper - build Mega Drive ROMs in a container or natively",
    no_args_is_help=True,
)
console = Console()

PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}


@dataclass
class Services:
    """Collaborators for one invocation, built from the settings."""

    settings: Settings
    context: ExecutionContext
    paths: HelperPaths
    runner: CommandRunner
    fetcher: SourceFetcher
    builder: ArtifactBuilder
    engine: ContainerEngine | None
    images: ImageLayerManager | None

    @classmethod
    def create(cls, settings: Settings, trace: bool) -> "Services":
        paths = HelperPaths.from_settings(settings)
        runner = CommandRunner(trace=trace)
        engine = ContainerEngine.detect(runner, settings.container_tools)
        return cls(
            settings=settings,
            context=ExecutionContext.current(trace=trace),
            paths=paths,
            runner=runner,
            fetcher=SourceFetcher(
                paths,
                runner,
                user_agent=settings.user_agent,
                download_timeout=settings.download_timeout,
            ),
            builder=ArtifactBuilder(paths, runner),
            engine=engine,
            images=ImageLayerManager(engine, settings, trace) if engine else None,
        )

    @property
    def trace(self) -> bool:
        return self.context.trace

    def dispatcher(self) -> Dispatcher:
        container = None
        if self.engine is not None and self.images is not None:
            container = ContainerExecutor(self.engine, self.images, self.context)
        return Dispatcher(
            engine=self.engine,
            container=container,
            native=NativeExecutor(self.paths, self.runner, self.builder),
        )

    def require_images(self) -> ImageLayerManager:
        if self.images is None:
            raise ContainerEngineNotFoundError(self.settings.container_tools)
        return self.images


def _services(ctx: typer.Context) -> Services:
    services: Services = ctx.obj
    return services


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Turn orchestrator failures into exit codes.

    External command failures exit with the command's own exit code; the
    command has already printed its diagnostics.
    """
    try:
        yield
    except subprocess.CalledProcessError as e:
        console.print(f"[red]Command failed with exit code {e.returncode}[/red]")
        raise typer.Exit(code=e.returncode or 1) from None
    except ContainerEngineNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        console.print("Install podman or docker, or use the native setup instead.")
        raise typer.Exit(code=1) from None
    except (DownloadError, ArtifactNotFoundError, UnknownDependencyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"sgdk-helper version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    trace: Annotated[
        bool,
        typer.Option(
            "--trace",
            "-x",
            help="Show every external command (propagated into containers)",
        ),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """SGDK Helper - build Mega Drive ROMs in a container or natively."""
    settings = get_settings()
    trace = trace or settings.trace
    setup_logging(settings.log_level, trace)
    ctx.obj = Services.create(settings, trace)


@app.command()
def config(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    services = _services(ctx)
    # -x overrides the configured trace setting
    settings = services.settings.model_copy(update={"trace": services.trace})
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True)
        return

    paths = services.paths
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Dependency directory: {paths.dep_dir}")
    console.print(f"  Source directory:     {paths.src_dir}")
    console.print(f"  Output directory:     {paths.out_dir}")
    console.print()
    console.print("[bold]Containers:[/bold]")
    console.print(f"  Container tools:      {', '.join(settings.container_tools)}")
    console.print(f"  Project image:        {settings.container_tag}")
    console.print(f"  Toolchain image:      {settings.toolchain_tag}")
    console.print(f"  Base image:           {settings.base_image}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:            {settings.log_level}")
    console.print(f"  Trace:                {settings.trace}")
    console.print(f"  Download timeout:     {settings.download_timeout}")


@app.command()
def status(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show which build environment is ready and what has been fetched."""
    services = _services(ctx)
    provider = FilesystemStatusProvider(services.paths)
    mode = services.dispatcher().select()

    images: dict[str, bool] = {}
    if services.engine is not None and services.images is not None:
        images = {
            image.tag: services.engine.image_exists(image.tag)
            for image in services.images.images()
        }

    fetched = {
        dep.value: provider.fetch_status(descriptor).value
        for dep, descriptor in REGISTRY.items()
    }

    if json_output:
        output = {
            "mode": mode.value,
            "container_tool": services.engine.tool if services.engine else None,
            "images": images,
            "dependencies": fetched,
        }
        console.print(json.dumps(output, indent=2), soft_wrap=True)
        return

    console.print(f"[bold]ROM builds run:[/bold] {mode.value}")
    if services.engine is not None:
        console.print(f"  Container tool: {services.engine.tool}")
        for tag, exists in images.items():
            state = "[green]present[/green]" if exists else "[yellow]missing[/yellow]"
            console.print(f"  Image {tag}: {state}")
    console.print()
    console.print("[bold]Dependencies:[/bold]")
    for name, state in fetched.items():
        console.print(f"  {name}: {state}")


# Accept the upstream directory names as well as the ids
REGISTRY_NAME_LOOKUP = {d.name.lower(): dep for dep, d in REGISTRY.items()}


def _parse_deps(names: list[str] | None) -> list[DependencyId]:
    if not names:
        return list(DEFAULT_FETCH_ORDER)
    deps = []
    for name in names:
        key = name.lower()
        if key in REGISTRY_NAME_LOOKUP:
            deps.append(REGISTRY_NAME_LOOKUP[key])
            continue
        try:
            deps.append(DependencyId(key))
        except ValueError:
            raise UnknownDependencyError(name) from None
    return deps


@app.command()
def fetch(
    ctx: typer.Context,
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Dependencies to fetch (default: maccer sjasm sgdk)"),
    ] = None,
) -> None:
    """Fetch dependency sources."""
    services = _services(ctx)
    with _handle_errors():
        services.fetcher.fetch_all(_parse_deps(names))


BUILD_STEPS: dict[str, Callable[[ArtifactBuilder], object]] = {
    "maccer": ArtifactBuilder.build_maccer,
    "sjasm": ArtifactBuilder.build_sjasm,
    "xgmtool": ArtifactBuilder.build_xgmtool,
    "bintos": ArtifactBuilder.build_bintos,
    "sgdk-lib": ArtifactBuilder.build_sgdk_lib,
    "sgdk": ArtifactBuilder.build_sgdk,
    "toolchain": ArtifactBuilder.build_toolchain,
}


@app.command()
def build(
    ctx: typer.Context,
    names: Annotated[
        list[str] | None,
        typer.Argument(
            help=f"Artifacts to build, in order ({', '.join(BUILD_STEPS)}); "
            "default: maccer sjasm sgdk"
        ),
    ] = None,
    variant: Annotated[
        BuildVariant | None,
        typer.Option("--variant", help="Only build this SGDK library variant"),
    ] = None,
) -> None:
    """Build fetched dependencies."""
    services = _services(ctx)
    steps = names or ["maccer", "sjasm", "sgdk"]
    unknown = [s for s in steps if s not in BUILD_STEPS]
    if unknown:
        console.print(f"[red]Unknown build step(s): {', '.join(unknown)}[/red]")
        raise typer.Exit(code=1)

    with _handle_errors():
        for step in steps:
            if step == "sgdk-lib" and variant is not None:
                services.builder.build_sgdk_lib_variant(variant)
            else:
                BUILD_STEPS[step](services.builder)


@app.command()
def deps(ctx: typer.Context) -> None:
    """Fetch and build maccer, Sjasm and SGDK."""
    services = _services(ctx)
    with _handle_errors():
        services.fetcher.fetch_all(DEFAULT_FETCH_ORDER)
        services.builder.build_all()


@app.command()
def toolchain(ctx: typer.Context) -> None:
    """Fetch and build the m68k-elf toolchain (takes a long time)."""
    services = _services(ctx)
    with _handle_errors():
        services.fetcher.fetch(DependencyId.TOOLCHAIN)
        services.builder.build_toolchain()


@app.command("delete-toolchain-src")
def delete_toolchain_src(ctx: typer.Context) -> None:
    """Delete the toolchain source tree after it has been built."""
    services = _services(ctx)
    if not services.fetcher.delete_source(DependencyId.TOOLCHAIN):
        console.print("[yellow]No toolchain source to delete[/yellow]")


@app.command("lto-plugin-path")
def lto_plugin_path(ctx: typer.Context) -> None:
    """Print the path of the toolchain's LTO plugin."""
    services = _services(ctx)
    with _handle_errors():
        typer.echo(str(services.builder.lto_plugin_path()))


@app.command("install-packages")
def install_packages_cmd(
    ctx: typer.Context,
    package_set: Annotated[
        PackageSet,
        typer.Argument(help="Package set to install with apt-get"),
    ],
) -> None:
    """Install Debian packages (used while building the container images)."""
    services = _services(ctx)
    with _handle_errors():
        install_packages(package_set, services.runner)


@app.command()
def container(ctx: typer.Context) -> None:
    """Build the project image, and the toolchain image if it is missing."""
    services = _services(ctx)
    with _handle_errors():
        services.require_images().build_images()


@app.command("container-toolchain")
def container_toolchain(ctx: typer.Context) -> None:
    """Rebuild the toolchain image, even if it exists."""
    services = _services(ctx)
    with _handle_errors():
        services.require_images().build_toolchain_image()


@app.command("container-project")
def container_project(ctx: typer.Context) -> None:
    """Rebuild the project image on the existing toolchain image."""
    services = _services(ctx)
    with _handle_errors():
        services.require_images().build_project_image()


def _dispatch_rom(services: Services, args: list[str] | None) -> ExecutionMode:
    request = BuildRequest(args=tuple(args or ()), trace=services.trace)
    with _handle_errors():
        result = services.dispatcher().dispatch(request)

    if result.mode is ExecutionMode.UNAVAILABLE:
        console.print(result.guidance)
    elif result.exit_code:
        raise typer.Exit(code=result.exit_code)
    return result.mode


@app.command(context_settings=PASSTHROUGH)
def rom(
    ctx: typer.Context,
    args: Annotated[
        list[str] | None,
        typer.Argument(help="Arguments passed to make (e.g. clean)"),
    ] = None,
) -> None:
    """Build the ROM for the project in the current directory."""
    _dispatch_rom(_services(ctx), [*(args or ()), *ctx.args])


@app.command()
def shell(ctx: typer.Context) -> None:
    """Open a shell in the ROM build container."""
    services = _services(ctx)
    with _handle_errors():
        open_shell(services.engine, services.images, services.context)


@app.command()
def run(
    ctx: typer.Context,
    rom_path: Annotated[
        str,
        typer.Argument(help="ROM image to run"),
    ] = DEFAULT_ROM,
) -> None:
    """Run the ROM in the BlastEm emulator."""
    services = _services(ctx)
    with _handle_errors():
        run_rom(services.runner, rom_path)


@app.command(context_settings=PASSTHROUGH)
def romrun(
    ctx: typer.Context,
    args: Annotated[
        list[str] | None,
        typer.Argument(help="Arguments passed to make"),
    ] = None,
) -> None:
    """Build the ROM, then run it."""
    services = _services(ctx)
    if _dispatch_rom(services, [*(args or ()), *ctx.args]) is ExecutionMode.UNAVAILABLE:
        return
    with _handle_errors():
        run_rom(services.runner)


@app.command()
def makefile(
    path: Annotated[
        Path,
        typer.Option("--path", "-o", help="Where to write the Makefile"),
    ] = Path("Makefile"),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file"),
    ] = False,
) -> None:
    """Write a Makefile that forwards make targets to a pinned sgdk-helper."""
    try:
        written = write_makefile(path, force=force)
    except MakefileExistsError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    console.print(f"[green]Wrote {written}[/green]")


if __name__ == "__main__":
    app()
