"""Invocation classifier — decides what a rustc command is building."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

from irbuild.exceptions import ConfigurationError
from irbuild.models.command import CompileCommand
from irbuild.models.config import EngineConfig
from irbuild.models.result import Classification

# Crate names cargo gives to compiled build scripts (current and pre-1.0 spelling)
BUILD_HELPER_CRATE = "build_script_build"
BUILD_HELPER_CRATES = frozenset({BUILD_HELPER_CRATE, "build-script-build"})

_CRATE_TYPE = "--crate-type"
_CRATE_NAME = "--crate-name"
_OUT_DIR = "--out-dir"
_TARGET = "--target"


def flag_values(args: Sequence[str], flag: str) -> Iterator[str]:
    """Yield every value given to ``flag``, as ``flag value`` or ``flag=value``."""
    prefix = flag + "="
    for i, arg in enumerate(args):
        if arg == flag and i + 1 < len(args):
            yield args[i + 1]
        elif arg.startswith(prefix):
            yield arg[len(prefix):]


def _required(args: Sequence[str], flag: str) -> str:
    value = next(flag_values(args, flag), None)
    if value is None:
        raise ConfigurationError(f"compiler invocation is missing required `{flag}` argument")
    return value


def classify(command: CompileCommand, config: EngineConfig) -> Classification:
    """Classify a compiler invocation.

    A command without an explicit ``--target`` while the engine cross-compiles
    is compiled for the build host (build scripts, proc macros) and counts as a
    build helper, as does cargo's build script crate itself.
    """
    args = command.args

    is_final_binary = "bin" in flag_values(args, _CRATE_TYPE)
    crate_name = _required(args, _CRATE_NAME)
    out_dir = _required(args, _OUT_DIR)
    has_target = any(arg == _TARGET or arg.startswith(_TARGET + "=") for arg in args)

    is_build_helper = crate_name in BUILD_HELPER_CRATES or (
        not has_target and config.is_cross_compiling
    )

    return Classification(
        is_final_binary=is_final_binary,
        is_build_helper=is_build_helper,
        crate_name=crate_name,
        out_dir=Path(out_dir),
        has_explicit_target=has_target,
    )
