"""Data models for compiler and tool invocations."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType


class CommandKind(str, Enum):
    COMPILER = "compiler"  # rustc invocation, subject to classification
    TOOL = "tool"  # anything else, executed as-is


@dataclass(frozen=True)
class CompileCommand:
    """A ready-to-run command handed over by the build orchestrator.

    Instances are immutable: rewriting produces a new command via
    ``with_args`` instead of editing this one.
    """

    program: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str | None] = field(default_factory=dict)  # None = inherit
    cwd: Path | None = None
    kind: CommandKind = CommandKind.COMPILER

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        if self.cwd is not None:
            object.__setattr__(self, "cwd", Path(self.cwd))

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def with_args(self, args: Iterable[str]) -> CompileCommand:
        return CompileCommand(
            program=self.program,
            args=tuple(args),
            env=self.env,
            cwd=self.cwd,
            kind=self.kind,
        )

    def process_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Environment for the child process: ``base`` plus non-inherited overrides."""
        env = dict(os.environ if base is None else base)
        for key, value in self.env.items():
            if value is not None:
                env[key] = value
        return env
