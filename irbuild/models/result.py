"""Derived per-invocation results."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class ProcessOutput:
    """Captured result of a finished child process."""

    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""


@dataclass(frozen=True)
class Classification:
    """What a single compiler invocation is building.

    Computed fresh for every command; never cached.
    """

    is_final_binary: bool
    is_build_helper: bool
    crate_name: str
    out_dir: Path
    has_explicit_target: bool

    @property
    def targets_final_artifact(self) -> bool:
        return self.is_final_binary and not self.is_build_helper

    @property
    def ir_path(self) -> Path:
        return self.out_dir / f"{self.crate_name}.ll"

    def artifact_path(self, extension: str) -> Path:
        return self.out_dir / f"{self.crate_name}.{extension}"
