"""External command execution.

Every fetch, build and container step is a blocking call to an external
tool. Failures are not caught here: a non-zero exit raises
``subprocess.CalledProcessError`` and aborts the invocation.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


def prepend_path(
    dirs: Sequence[Path | str],
    env: Mapping[str, str] | None = None,
) -> str:
    """Build a PATH value with ``dirs`` searched first, in the given order.

    Args:
        dirs: Directories to put in front of the existing search path.
        env: Environment to take the existing PATH from (os.environ if None).

    Returns:
        The new PATH string.
    """
    base = (env if env is not None else os.environ).get("PATH", "")
    parts = [str(d) for d in dirs]
    if base:
        parts.append(base)
    return os.pathsep.join(parts)


class CommandRunner:
    """Run external commands with logging.

    Args:
        trace: Log commands in shell-trace form (``+ cmd``) at DEBUG level
            instead of the default ``$ cmd`` at INFO.
    """

    def __init__(self, trace: bool = False) -> None:
        self.trace = trace

    def _log(self, cmd: Sequence[str], cwd: Path | str | None) -> None:
        cmd_str = shlex.join(str(c) for c in cmd)
        if self.trace:
            logger.debug("+ %s%s", cmd_str, f"  (in {cwd})" if cwd else "")
        else:
            logger.info("$ %s", cmd_str)

    @staticmethod
    def _merge_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
        if not env:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def run(
        self,
        cmd: Sequence[str | Path],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[bytes]:
        """Run a command, raising on non-zero exit.

        Args:
            cmd: Command and arguments.
            cwd: Working directory.
            env: Environment overrides merged over os.environ.

        Returns:
            The completed process.

        Raises:
            subprocess.CalledProcessError: If the command fails.
        """
        args = [str(c) for c in cmd]
        self._log(args, cwd)
        return subprocess.run(args, cwd=cwd, env=self._merge_env(env), check=True)

    def capture(
        self,
        cmd: Sequence[str | Path],
        cwd: Path | str | None = None,
    ) -> str:
        """Run a command and return its stdout, raising on non-zero exit."""
        args = [str(c) for c in cmd]
        self._log(args, cwd)
        result = subprocess.run(
            args, cwd=cwd, capture_output=True, text=True, check=True
        )
        return result.stdout

    def succeeds(self, cmd: Sequence[str | Path]) -> bool:
        """Run a probe command quietly and report whether it exited zero."""
        args = [str(c) for c in cmd]
        if self.trace:
            logger.debug("+ %s", shlex.join(args))
        result = subprocess.run(
            args,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        return result.returncode == 0

    def which(self, tool: str) -> str | None:
        """Locate an executable on PATH."""
        return shutil.which(tool)


__all__ = ["CommandRunner", "prepend_path"]
