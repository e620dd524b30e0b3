"""Process runner — spawns compiler and tool commands."""

from __future__ import annotations

import subprocess

import structlog

from irbuild.exceptions import ProcessError
from irbuild.models.command import CompileCommand
from irbuild.models.result import ProcessOutput

log = structlog.get_logger("irbuild.process")


class ProcessRunner:
    """Execute a command once, surfacing failures as ``ProcessError``.

    Without ``capture`` the child inherits stdout/stderr and ``None`` is
    returned. With ``capture`` both streams are collected as bytes.
    """

    def run(self, command: CompileCommand, capture: bool = False) -> ProcessOutput | None:
        argv = command.argv
        log.debug("process.spawn", argv=argv, cwd=str(command.cwd) if command.cwd else None)
        try:
            result = subprocess.run(
                argv,
                cwd=command.cwd,
                env=command.process_env(),
                capture_output=capture,
            )
        except OSError as e:
            log.error("process.spawn_failed", program=command.program, error=str(e))
            raise ProcessError(argv, reason=f"could not execute process: {e}") from e

        if result.returncode != 0:
            log.debug("process.failed", program=command.program, returncode=result.returncode)
            raise ProcessError(
                argv,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        if not capture:
            return None
        return ProcessOutput(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
