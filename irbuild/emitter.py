"""Downstream emitter — hands repaired IR to emcc for web artifacts."""

from __future__ import annotations

import structlog

from irbuild.exceptions import ConfigurationError
from irbuild.models.command import CommandKind, CompileCommand
from irbuild.models.config import EmitKind, EngineConfig
from irbuild.models.result import Classification, ProcessOutput
from irbuild.process import ProcessRunner

log = structlog.get_logger("irbuild.emitter")

# Runtime libraries every emscripten artifact links against
LINK_FLAGS = ("-lGL", "-lSDL", "-s", "USE_SDL=2")


class DownstreamEmitter:
    """Compile ``<out_dir>/<crate>.ll`` into ``<out_dir>/<crate>.<ext>`` with emcc."""

    def __init__(self, config: EngineConfig, runner: ProcessRunner | None = None) -> None:
        self._config = config
        self._runner = runner or ProcessRunner()

    def command_for(self, classification: Classification, emit: EmitKind) -> CompileCommand:
        if not emit.needs_web_emitter:
            raise ConfigurationError(f"emit kind {emit.value} has no web artifact")
        output = classification.artifact_path(emit.extension)
        return CompileCommand(
            program=self._config.emcc_program,
            args=(str(classification.ir_path), *LINK_FLAGS, "-o", str(output)),
            kind=CommandKind.TOOL,
        )

    def emit(
        self,
        classification: Classification,
        emit: EmitKind,
        capture: bool = False,
    ) -> ProcessOutput | None:
        command = self.command_for(classification, emit)
        log.info(
            "emitter.run",
            crate=classification.crate_name,
            emit=emit.value,
            output=command.args[-1],
        )
        return self._runner.run(command, capture=capture)
