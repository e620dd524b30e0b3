"""Custom exceptions for irbuild."""

from __future__ import annotations

import shlex


class IRBuildError(Exception):
    """Base exception for all adapter errors."""


class ConfigurationError(IRBuildError):
    """Raised when a command or the engine configuration is malformed."""


class ProcessError(IRBuildError):
    """Raised when a child process cannot be spawned or exits nonzero."""

    def __init__(
        self,
        argv: list[str],
        returncode: int | None = None,
        stdout: bytes | None = None,
        stderr: bytes | None = None,
        reason: str | None = None,
    ):
        self.argv = argv
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if reason is None:
            reason = f"exit code: {returncode}"
        message = f"process didn't exit successfully: `{shlex.join(argv)}` ({reason})"
        if stdout:
            message += "\n--- stdout\n" + stdout.decode(errors="replace")
        if stderr:
            message += "\n--- stderr\n" + stderr.decode(errors="replace")
        super().__init__(message)

    @property
    def spawn_failed(self) -> bool:
        return self.returncode is None


class RepairError(IRBuildError):
    """Raised when an IR file cannot be read, streamed or written back."""


class SetupError(IRBuildError):
    """Raised when the optimizer plugin cannot be fetched or built."""
