"""
Run ``gt``/``bd``/``tmux`` commands without blocking the event loop.

Every command runs from the fleet root by default, with the configured
``binPaths`` prepended to PATH so user-installed tools win over system ones,
and with a hard timeout after which the process is killed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
from collections.abc import Sequence

from .constants import DEFAULT_COMMAND_TIMEOUT, MISSING_BINARY_EXIT_CODE
from .errors import ExecutionFailure, ExecutionTimeout
from .models import CommandResult
from .root_resolver import RootResolver

logger = logging.getLogger(__name__)


class CommandRunner:
    """Executes external commands relative to the resolved fleet root."""

    def __init__(self, resolver: RootResolver | None = None):
        self.resolver = resolver or RootResolver()

    def search_path(self) -> str:
        """PATH with configured bin directories first."""
        inherited = self.resolver.env.get("PATH", "")
        parts = [*self.resolver.config().bin_paths]
        if inherited:
            parts.append(inherited)
        return os.pathsep.join(parts)

    def which(self, name: str) -> str | None:
        return shutil.which(name, path=self.search_path())

    async def execute(
        self,
        argv: Sequence[str],
        *,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run ``argv`` and return its decoded output.

        Raises ExecutionTimeout if the command runs past ``timeout`` seconds
        and ExecutionFailure if it exits non-zero or cannot be started.
        """
        command = shlex.join(argv)
        env = dict(self.resolver.env)
        env["PATH"] = self.search_path()
        workdir = cwd or self.resolver.resolve()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=workdir,
                env=env,
            )
        except OSError as e:
            logger.warning("Could not start %s in %s: %s", command, workdir, e)
            raise ExecutionFailure(command, MISSING_BINARY_EXIT_CODE, stderr=str(e)) from e

        try:
            raw_out, raw_err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %ss; killing PID %s", command, timeout, proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise ExecutionTimeout(command, timeout) from None

        stdout = raw_out.decode("utf-8", errors="replace")
        stderr = raw_err.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            logger.debug("%s exited with %s", command, proc.returncode)
            raise ExecutionFailure(command, proc.returncode, stdout, stderr)
        return CommandResult(stdout=stdout, stderr=stderr)
