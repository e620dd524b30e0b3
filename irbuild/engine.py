"""Build engine — the execution hook the orchestrator drives per command.

Workflow for a compiler invocation:
    classify -> rewrite -> run rustc
        -> [emit needs repair] IRRepairPipeline.repair(<out_dir>/<crate>.ll)
        -> [web emit kind] DownstreamEmitter (its result replaces rustc's)

Tool invocations are executed unchanged.
"""

from __future__ import annotations

import structlog

from irbuild.classifier import classify
from irbuild.emitter import DownstreamEmitter
from irbuild.exceptions import IRBuildError
from irbuild.ir_repair import IRRepairPipeline
from irbuild.models.command import CommandKind, CompileCommand
from irbuild.models.config import EngineConfig
from irbuild.models.result import ProcessOutput
from irbuild.process import ProcessRunner
from irbuild.rewriter import rewrite

log = structlog.get_logger("irbuild.engine")


class BuildEngine:
    """Stateless apart from its read-only collaborators; safe to share across threads."""

    def __init__(
        self,
        config: EngineConfig,
        runner: ProcessRunner | None = None,
        repairer: IRRepairPipeline | None = None,
        emitter: DownstreamEmitter | None = None,
    ) -> None:
        self.config = config
        self._runner = runner or ProcessRunner()
        self._repairer = repairer or IRRepairPipeline(config)
        self._emitter = emitter or DownstreamEmitter(config, self._runner)

    def exec(self, command: CompileCommand) -> None:
        self._exec(command, capture=False)

    def exec_with_output(self, command: CompileCommand) -> ProcessOutput:
        output = self._exec(command, capture=True)
        if output is None:
            raise IRBuildError(f"no output captured for `{command.program}`")
        return output

    def _exec(self, command: CompileCommand, capture: bool) -> ProcessOutput | None:
        if command.kind is not CommandKind.COMPILER:
            return self._runner.run(command, capture=capture)

        classification = classify(command, self.config)
        plan = rewrite(command, classification, self.config)
        log.debug(
            "engine.classified",
            crate=classification.crate_name,
            final_binary=classification.is_final_binary,
            build_helper=classification.is_build_helper,
            emit=plan.emit.value if plan.emit else None,
        )

        output = self._runner.run(plan.command, capture=capture)

        if plan.repair:
            log.info("engine.repair", crate=classification.crate_name, path=str(classification.ir_path))
            self._repairer.repair(classification.ir_path)

        if plan.emit is not None and plan.emit.needs_web_emitter:
            return self._emitter.emit(classification, plan.emit, capture=capture)
        return output
