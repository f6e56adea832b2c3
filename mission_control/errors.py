"""Exceptions raised by the Mission Control backend."""

from __future__ import annotations


class MissionControlError(Exception):
    """Base exception for Mission Control errors."""


class ResolutionFailure(MissionControlError):
    """The fleet root could not be determined from a given source.

    Raised and handled inside the resolver only; callers always get a path.
    """


class ExecutionError(MissionControlError):
    """Base class for failures running an external command."""

    def __init__(self, message: str, command: str = "", stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stdout = stdout
        self.stderr = stderr

    @property
    def output(self) -> str:
        """Everything the command printed, stdout first."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class ExecutionTimeout(ExecutionError):
    """The command did not finish in time and was killed."""

    def __init__(self, command: str, timeout: float, stdout: str = "", stderr: str = ""):
        super().__init__(f"{command!r} timed out after {timeout}s", command, stdout, stderr)
        self.timeout = timeout


class ExecutionFailure(ExecutionError):
    """The command exited non-zero.

    Some tools exit non-zero on purpose while printing a useful explanation,
    so the captured output is kept on the exception.
    """

    def __init__(self, command: str, returncode: int, stdout: str = "", stderr: str = ""):
        detail = (stderr or stdout).strip()
        message = f"{command!r} exited with code {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message, command, stdout, stderr)
        self.returncode = returncode


class ParseFailure(MissionControlError):
    """Malformed input. Parsers catch this and return their empty default."""


class CoalescedFetchFailure(MissionControlError):
    """A shared fetch failed; every waiter sees ``None`` instead."""


class InvalidName(MissionControlError, ValueError):
    """A rig, worker, or session name contains characters unsafe for a command."""


class SafetyCheckRefused(MissionControlError):
    """A guarded destructive command refused to proceed.

    The caller may retry with ``force``.
    """

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details
