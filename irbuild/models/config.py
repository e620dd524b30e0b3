"""Engine configuration and the closed set of emit kinds."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from irbuild.exceptions import ConfigurationError

PLUGIN_NAME = "RemoveAssume.so"

# Environment variables shared between the front-end and the wrapper
ENV_TARGET = "IRBUILD_TARGET"
ENV_SYSROOT = "IRBUILD_SYSROOT"
ENV_EMCC = "IRBUILD_EMCC"
ENV_OPT = "IRBUILD_OPT"
ENV_EMIT = "IRBUILD_EMIT"
ENV_PASSES_DIR = "IRBUILD_PASSES_DIR"


class EmitKind(str, Enum):
    LINK = "link"
    LLVM_IR = "llvm-ir"
    LLVM_BC = "llvm-bc"
    LLVM35_IR = "llvm35-ir"
    EM_HTML = "em-html"
    EM_JS = "em-js"

    @classmethod
    def parse(cls, value: str) -> EmitKind:
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(k.value for k in cls)
            raise ConfigurationError(f"unknown emit kind {value!r} (expected one of: {choices})")

    @property
    def needs_repair(self) -> bool:
        """IR must be rewritten for the LLVM 3.5 era consumer."""
        return self in _REPAIR_KINDS

    @property
    def needs_web_emitter(self) -> bool:
        return self in _WEB_EXTENSIONS

    @property
    def compiler_emit(self) -> str:
        """The ``--emit`` value rustc actually receives."""
        if self.needs_repair:
            return EmitKind.LLVM_IR.value
        return self.value

    @property
    def extension(self) -> str:
        try:
            return _WEB_EXTENSIONS[self]
        except KeyError:
            raise ConfigurationError(f"unsupported emscripten emit type: {self.value}")


_REPAIR_KINDS = frozenset({EmitKind.LLVM35_IR, EmitKind.EM_HTML, EmitKind.EM_JS})

_WEB_EXTENSIONS: dict[EmitKind, str] = {
    EmitKind.EM_HTML: "html",
    EmitKind.EM_JS: "js",
}


@dataclass(frozen=True)
class EngineConfig:
    """Adapter configuration, built once per process and shared read-only."""

    target: str | None = None  # cross-compile triple
    sysroot: Path | None = None
    emcc: Path | None = None
    opt: Path | None = None
    emit: EmitKind | None = None
    passes_dir: Path | None = None  # where RemoveAssume.so lives

    @property
    def is_cross_compiling(self) -> bool:
        return self.target is not None

    @property
    def opt_program(self) -> str:
        return str(self.opt) if self.opt else "opt"

    @property
    def emcc_program(self) -> str:
        return str(self.emcc) if self.emcc else "emcc"

    @property
    def plugin_path(self) -> Path:
        if self.passes_dir is None:
            raise ConfigurationError(f"passes_dir is not configured; cannot locate {PLUGIN_NAME}")
        return self.passes_dir / PLUGIN_NAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """Build a config from ``IRBUILD_*`` variables; empty values count as unset."""
        environ = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return environ.get(name) or None

        def get_path(name: str) -> Path | None:
            value = get(name)
            return Path(value) if value else None

        emit = get(ENV_EMIT)
        return cls(
            target=get(ENV_TARGET),
            sysroot=get_path(ENV_SYSROOT),
            emcc=get_path(ENV_EMCC),
            opt=get_path(ENV_OPT),
            emit=EmitKind.parse(emit) if emit else None,
            passes_dir=get_path(ENV_PASSES_DIR),
        )

    def to_env(self) -> dict[str, str]:
        values = {
            ENV_TARGET: self.target,
            ENV_SYSROOT: self.sysroot,
            ENV_EMCC: self.emcc,
            ENV_OPT: self.opt,
            ENV_EMIT: self.emit.value if self.emit else None,
            ENV_PASSES_DIR: self.passes_dir,
        }
        return {k: str(v) for k, v in values.items() if v is not None}
