"""
Command runner — the SINGLE PLACE where ``subprocess.run`` is called.

Every backend goes through ``CommandRunner.run``.  Privilege
elevation, environment merging, timeouts and error mapping are
centralised here so the backends only deal in argument lists.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass

from picolayer.core.errors import BackendExecutionFailed

logger = logging.getLogger(__name__)

# Keep this much of stderr for diagnostics
_TAIL_CHARS = 2000


@dataclass
class CommandResult:
    """Exit status and captured output of one command."""

    args: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs external commands synchronously.

    Args:
        timeout: Default seconds before a command is killed.
        use_sudo: Prefix ``sudo -n`` for root-only commands when the
            process is not root.  ``None`` decides from the effective uid.
    """

    def __init__(self, timeout: int = 3600, use_sudo: bool | None = None):
        self.timeout = timeout
        self._use_sudo = use_sudo

    @property
    def is_root(self) -> bool:
        return os.geteuid() == 0

    def which(self, name: str) -> str | None:
        """Resolve ``name`` on PATH."""
        return shutil.which(name)

    def _needs_sudo(self) -> bool:
        if self._use_sudo is not None:
            return self._use_sudo
        return not self.is_root

    def run(
        self,
        cmd: list[str],
        *,
        needs_root: bool = False,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        timeout: int | None = None,
        check: bool = True,
        capture: bool = True,
    ) -> CommandResult:
        """Run ``cmd`` and return its result.

        Args:
            cmd: Argument list (never a shell string).
            needs_root: Elevate through ``sudo -n`` when not root.
            env: Extra environment variables merged over ``os.environ``.
            cwd: Working directory.
            timeout: Override the default timeout.
            check: Raise ``BackendExecutionFailed`` on non-zero exit.
            capture: Capture stdout/stderr.  When False, output streams
                straight to the console.

        Raises:
            BackendExecutionFailed: On timeout, a missing executable,
                or (with ``check``) a non-zero exit.
        """
        argv = list(cmd)
        if needs_root and self._needs_sudo():
            extra = sorted(env) if env else []
            preserve = [f"--preserve-env={','.join(extra)}"] if extra else []
            argv = ["sudo", "-n", *preserve, *argv]

        full_env = os.environ.copy()
        if env:
            full_env.update(env)

        limit = timeout or self.timeout
        logger.debug("Running: %s", " ".join(argv))
        start = time.monotonic()

        try:
            proc = subprocess.run(
                argv,
                capture_output=capture,
                text=True,
                timeout=limit,
                env=full_env,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired as e:
            raise BackendExecutionFailed(
                f"{argv[0]} timed out after {limit}s"
            ) from e
        except FileNotFoundError as e:
            raise BackendExecutionFailed(
                f"Command not found: {argv[0]}", exit_code=127
            ) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = CommandResult(
            args=argv,
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=(proc.stderr or "")[-_TAIL_CHARS:],
            elapsed_ms=elapsed_ms,
        )
        logger.debug("%s exited %d in %dms", argv[0], result.exit_code, elapsed_ms)

        if check and not result.ok:
            raise BackendExecutionFailed(
                f"Command failed: {' '.join(cmd)}",
                exit_code=result.exit_code,
                stderr_tail=result.stderr,
            )
        return result
