"""Dependency artifact builds.

Each dependency is built with its own build files; the results land in the
shared output tree (``<DEP_DIR>/out``) or SGDK's own ``bin`` directory.

Builds run sequentially in declared order: later builds find earlier
artifacts on PATH (the SGDK library build runs ``xgmtool``, ``bintos`` and the
cross compiler).
"""

from __future__ import annotations

import logging
import os
import shutil
import time
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from sgdk_helper.deps.registry import DependencyId, get_descriptor
from sgdk_helper.process import prepend_path
from sgdk_helper.types import BuildVariant

if TYPE_CHECKING:
    from sgdk_helper.config import HelperPaths
    from sgdk_helper.process import CommandRunner

logger = logging.getLogger(__name__)

CROSS_PREFIX = "m68k-elf-"
LTO_PLUGIN_NAME = "liblto_plugin.so"
MACCER_VERSION = "0.26"

# Files each build step produces, relative to the output tree (`out`) or the
# SGDK checkout (`sgdk`).
ARTIFACT_OUTPUTS: dict[str, tuple[str, ...]] = {
    "maccer": ("out/bin/mac68k",),
    "sjasm": ("out/bin/sjasm",),
    "xgmtool": ("sgdk/bin/xgmtool",),
    "bintos": ("sgdk/bin/bintos",),
    "sgdk-lib-release": ("sgdk/lib/libmd.a",),
    "sgdk-lib-debug": ("sgdk/lib/libmd_debug.a",),
}

# Tools the SGDK library build invokes from PATH
SGDK_LIB_PREREQUISITES = ("xgmtool", "bintos", f"{CROSS_PREFIX}gcc")


class ArtifactNotFoundError(Exception):
    """Raised when a required build artifact cannot be found."""

    def __init__(self, message: str, code: str = "artifact_not_found") -> None:
        """Initialize ArtifactNotFoundError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def find_on_path(tool: str, search_path: list[Path]) -> Path | None:
    """Find an executable with ``search_path`` searched before PATH."""
    found = shutil.which(tool, path=prepend_path(search_path))
    return Path(found) if found else None


def extract_zip(archive: Path, dest_dir: Path) -> list[Path]:
    """Extract a zip archive, only replacing files that are older.

    Mirrors ``unzip -u``: existing files at least as new as the archive
    entry are left alone, and extracted files get the entry's timestamp so
    a later, newer archive replaces them.

    Returns:
        Paths that were written.
    """
    written: list[Path] = []
    dest_dir.mkdir(parents=True, exist_ok=True)
    root = dest_dir.resolve()

    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            target = (dest_dir / info.filename).resolve()
            # Security: prevent path traversal
            if not target.is_relative_to(root):
                raise ValueError(f"Refusing to extract {info.filename}: path traversal")
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            entry_mtime = _zip_mtime(info)
            if target.exists() and target.stat().st_mtime >= entry_mtime:
                continue
            zf.extract(info, dest_dir)
            os.utime(target, (entry_mtime, entry_mtime))
            written.append(target)

    return written


def _zip_mtime(info: zipfile.ZipInfo) -> float:
    return time.mktime((*info.date_time, 0, 0, -1))


class ArtifactBuilder:
    """Build fetched dependencies into the shared output tree.

    Args:
        paths: Dependency directory layout.
        runner: Command runner for compilers and make.
        strip: Strip debug symbols from built binaries.
    """

    def __init__(
        self,
        paths: HelperPaths,
        runner: CommandRunner,
        strip: bool = True,
    ) -> None:
        self.paths = paths
        self.runner = runner
        self.strip = strip

    @property
    def tool_search_path(self) -> list[Path]:
        """Directories searched for previously built tools, in order."""
        return [self.paths.sgdk_bin_dir, self.paths.out_bin_dir]

    def _install(self, binary: Path, dest_dir: Path, name: str | None = None) -> Path:
        if self.strip:
            self.runner.run(["strip", str(binary)])
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / (name or binary.name)
        shutil.copy2(binary, dest)
        logger.info("Installed %s", dest)
        return dest

    def _announce(self, title: str) -> None:
        logger.info("Building %s", title)

    def output_paths(self, step: str) -> list[Path]:
        """Absolute paths of the files a build step produces."""
        roots = {"out": self.paths.out_dir, "sgdk": self.paths.sgdk_dir}
        outputs = []
        for relative in ARTIFACT_OUTPUTS[step]:
            root, _, rest = relative.partition("/")
            outputs.append(roots[root] / rest)
        return outputs

    def verify_outputs(self, step: str) -> list[Path]:
        """Check that a finished build step left all its output files.

        Raises:
            ArtifactNotFoundError: Naming the first missing output.
        """
        outputs = self.output_paths(step)
        for output in outputs:
            if not output.is_file():
                raise ArtifactNotFoundError(f"{step} did not produce {output}")
        return outputs

    def build_maccer(self) -> Path:
        """Unpack and compile maccer, installed as ``mac68k``."""
        self._announce("maccer")
        descriptor = get_descriptor(DependencyId.MACCER)
        archive = descriptor.archive_path(self.paths)
        if not archive.exists():
            raise ArtifactNotFoundError(f"maccer archive not fetched: {archive}")

        maccer_dir = descriptor.source_dir(self.paths)
        extract_zip(archive, maccer_dir)

        binary = maccer_dir / "maccer"
        self.runner.run(
            [
                "gcc",
                str(maccer_dir / "main.c"),
                "-Wall",
                "-O2",
                f'-DVERSION_STRING="{MACCER_VERSION}"',
                f'-DKMOD_VERSION="{MACCER_VERSION}"',
                "-lm",
                "-o",
                str(binary),
            ]
        )
        installed = self._install(binary, self.paths.out_bin_dir, "mac68k")
        self.verify_outputs("maccer")
        return installed

    def build_sjasm(self) -> Path:
        """Build the Sjasm Z80 assembler with its own Makefile."""
        self._announce("Sjasm")
        source_dir = get_descriptor(DependencyId.SJASM).source_dir(self.paths) / "Sjasm"
        self.runner.run(["make", "-C", str(source_dir)])
        installed = self._install(source_dir / "sjasm", self.paths.out_bin_dir)
        self.verify_outputs("sjasm")
        return installed

    def build_xgmtool(self) -> Path:
        """Compile SGDK's xgmtool into SGDK's bin directory."""
        self._announce("xgmtool")
        tool_dir = self.paths.sgdk_dir / "tools" / "xgmtool"
        sources = sorted((tool_dir / "src").glob("*.c"))
        if not sources:
            raise ArtifactNotFoundError(f"No xgmtool sources in {tool_dir / 'src'}")
        binary = tool_dir / "xgmtool"
        self.runner.run(
            ["gcc", *map(str, sources), "-Wall", "-O2", "-lm", "-o", str(binary)]
        )
        installed = self._install(binary, self.paths.sgdk_bin_dir)
        self.verify_outputs("xgmtool")
        return installed

    def build_bintos(self) -> Path:
        """Compile SGDK's bintos into SGDK's bin directory."""
        self._announce("bintos")
        tool_dir = self.paths.sgdk_dir / "tools" / "bintos"
        binary = tool_dir / "bintos"
        self.runner.run(
            [
                "gcc",
                str(tool_dir / "src" / "bintos.c"),
                "-Wall",
                "-O2",
                "-o",
                str(binary),
            ]
        )
        installed = self._install(binary, self.paths.sgdk_bin_dir)
        self.verify_outputs("bintos")
        return installed

    def lto_plugin_path(self) -> Path:
        """Locate the toolchain's link-time optimisation plugin.

        Raises:
            ArtifactNotFoundError: If the toolchain has not been installed.
        """
        if self.paths.out_dir.is_dir():
            for candidate in sorted(self.paths.out_dir.rglob(LTO_PLUGIN_NAME)):
                return candidate
        raise ArtifactNotFoundError(
            f"{LTO_PLUGIN_NAME} not found under {self.paths.out_dir}; "
            "build the toolchain first"
        )

    def require_on_path(self, tools: tuple[str, ...], search_path: list[Path]) -> None:
        """Check that prerequisite tools are discoverable before a build.

        Raises:
            ArtifactNotFoundError: Naming the first missing tool.
        """
        for tool in tools:
            if find_on_path(tool, search_path) is None:
                raise ArtifactNotFoundError(
                    f"{tool} not found in {', '.join(map(str, search_path))}"
                )

    def make_flags(self) -> list[str]:
        """Flags passed to SGDK's makefiles for the m68k toolchain."""
        return [f"LTO_PLUGIN=--plugin={self.lto_plugin_path()}", f"PREFIX={CROSS_PREFIX}"]

    def build_sgdk_lib_variant(self, variant: BuildVariant | str) -> None:
        """Build one variant of SGDK's libmd.

        The variant's own clean target runs first; other variants' outputs
        are left in place.
        """
        variant = BuildVariant(variant)
        self._announce(f"SGDK library ({variant.value})")
        sgdk_dir = self.paths.sgdk_dir

        self.require_on_path(SGDK_LIB_PREREQUISITES, self.tool_search_path)

        flags = self.make_flags()
        (sgdk_dir / "lib").mkdir(parents=True, exist_ok=True)
        self.runner.run(
            ["make", "-C", str(sgdk_dir), "-f", "makelib.gen", f"clean{variant.value}"]
        )
        self.runner.run(
            [
                "make",
                "-C",
                str(sgdk_dir),
                "-f",
                "makelib.gen",
                *flags,
                variant.value,
            ],
            env={"PATH": prepend_path(self.tool_search_path)},
        )
        self.verify_outputs(f"sgdk-lib-{variant.value}")

    def build_sgdk_lib(self) -> None:
        """Build both SGDK library variants."""
        for variant in (BuildVariant.RELEASE, BuildVariant.DEBUG):
            self.build_sgdk_lib_variant(variant)

    def build_sgdk(self) -> None:
        """Build SGDK's tools, then its library."""
        self.build_xgmtool()
        self.build_bintos()
        self.build_sgdk_lib()

    def build_all(self) -> None:
        """Build every dependency covered by ``deps``, in order."""
        self.build_maccer()
        self.build_sjasm()
        self.build_sgdk()

    def build_toolchain(self) -> None:
        """Build the m68k-elf toolchain and install it into the output tree."""
        self._announce("m68k-elf toolchain")
        toolchain_dir = self.paths.toolchain_dir
        self.runner.run(["make", "-C", str(toolchain_dir), "without-newlib"])
        self.runner.run(
            [
                "make",
                "-C",
                str(toolchain_dir),
                "install",
                f"INSTALL_DIR={self.paths.out_dir}",
            ]
        )


__all__ = [
    "ARTIFACT_OUTPUTS",
    "CROSS_PREFIX",
    "SGDK_LIB_PREREQUISITES",
    "ArtifactBuilder",
    "ArtifactNotFoundError",
    "extract_zip",
    "find_on_path",
]
