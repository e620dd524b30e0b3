"""Command rewriter — turns a final-binary compile into an IR-producing one."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from irbuild.models.command import CompileCommand
from irbuild.models.config import EmitKind, EngineConfig
from irbuild.models.result import Classification

_EMIT = "--emit"


@dataclass(frozen=True)
class RewritePlan:
    """The command to run plus what must happen to its output afterwards."""

    command: CompileCommand
    emit: EmitKind | None = None  # configured emit kind in effect for this command
    repair: bool = False


def strip_emit(args: Sequence[str]) -> list[str]:
    """Drop every ``--emit X`` pair and ``--emit=X`` token."""
    out: list[str] = []
    skip_next = False
    for arg in args:
        if skip_next:
            skip_next = False
            continue
        if arg == _EMIT:
            skip_next = True
            continue
        if arg.startswith(_EMIT + "="):
            continue
        out.append(arg)
    return out


def rewrite(
    command: CompileCommand,
    classification: Classification,
    config: EngineConfig,
) -> RewritePlan:
    """Build the command the compiler should actually receive.

    Library and build-helper compiles are returned untouched. Final binaries
    get the configured ``--emit`` (plain ``llvm-ir`` plus LTO when the output
    needs repair) and the configured sysroot.
    """
    if not classification.targets_final_artifact:
        return RewritePlan(command=command)

    emit = config.emit
    args = list(command.args)

    if emit is not None:
        args = strip_emit(args)
        args += [_EMIT, f"dep-info,{emit.compiler_emit}"]
        if emit.needs_repair:
            args += ["-C", "lto"]

    if config.sysroot is not None:
        args += ["--sysroot", str(config.sysroot)]

    return RewritePlan(
        command=command.with_args(args),
        emit=emit,
        repair=emit is not None and emit.needs_repair,
    )
