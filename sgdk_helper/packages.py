"""System packages installed into the container images.

The lists are Debian package names; ``install_packages`` is run as root
inside the image build, via the helper's own ``install-packages`` command.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sgdk_helper.types import PackageSet

if TYPE_CHECKING:
    from sgdk_helper.process import CommandRunner

# Needed to build the m68k-elf toolchain
TOOLCHAIN_PACKAGES: tuple[str, ...] = (
    "bison",
    "bzip2",
    "flex",
    "g++",
    "gcc",
    "git",
    "libzstd-dev",
    "make",
    "texinfo",
    "wget",
    "xz-utils",
)

# Needed to build SGDK and ROMs. ca-certificates-java has to be configured
# before the JRE, so it is installed in its own step.
SGDK_PACKAGE_STEPS: tuple[tuple[str, ...], ...] = (
    ("ca-certificates-java",),
    ("default-jre-headless", "libpng-dev", "unzip"),
)

PACKAGE_STEPS: dict[PackageSet, tuple[tuple[str, ...], ...]] = {
    PackageSet.TOOLCHAIN: (TOOLCHAIN_PACKAGES,),
    PackageSet.SGDK: SGDK_PACKAGE_STEPS,
}


def apt_commands(package_set: PackageSet | str) -> list[list[str]]:
    """Return the apt-get commands that install a package set."""
    steps = PACKAGE_STEPS[PackageSet(package_set)]
    commands = [["apt-get", "update"]]
    commands.extend(["apt-get", "install", "-y", *step] for step in steps)
    commands.append(["apt-get", "clean"])
    return commands


def install_packages(package_set: PackageSet | str, runner: CommandRunner) -> None:
    """Install a package set with apt-get.

    Raises:
        subprocess.CalledProcessError: If any apt-get call fails.
    """
    for cmd in apt_commands(package_set):
        runner.run(cmd)


__all__ = [
    "PACKAGE_STEPS",
    "SGDK_PACKAGE_STEPS",
    "TOOLCHAIN_PACKAGES",
    "apt_commands",
    "install_packages",
]
