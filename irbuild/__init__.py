"""irbuild: rustc invocation adapter emitting LLVM 3.5 compatible IR and emscripten artifacts."""

__version__ = "0.1.0"

from irbuild.classifier import BUILD_HELPER_CRATE, BUILD_HELPER_CRATES, classify
from irbuild.emitter import DownstreamEmitter
from irbuild.engine import BuildEngine
from irbuild.exceptions import (
    ConfigurationError,
    IRBuildError,
    ProcessError,
    RepairError,
    SetupError,
)
from irbuild.ir_repair import IRRepairPipeline, rewrite_metadata_line
from irbuild.models.command import CommandKind, CompileCommand
from irbuild.models.config import EmitKind, EngineConfig
from irbuild.models.result import Classification, ProcessOutput
from irbuild.process import ProcessRunner
from irbuild.rewriter import RewritePlan, rewrite

__all__ = [
    "BUILD_HELPER_CRATE",
    "BUILD_HELPER_CRATES",
    "BuildEngine",
    "Classification",
    "CommandKind",
    "CompileCommand",
    "ConfigurationError",
    "DownstreamEmitter",
    "EmitKind",
    "EngineConfig",
    "IRBuildError",
    "IRRepairPipeline",
    "ProcessError",
    "ProcessOutput",
    "ProcessRunner",
    "RepairError",
    "RewritePlan",
    "SetupError",
    "classify",
    "rewrite",
    "rewrite_metadata_line",
]
