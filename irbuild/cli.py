"""CLI entry points: irbuild and irbuild-rustc.

Subcommands:
    irbuild build --emit em-html --target asmjs-unknown-emscripten
                                      # cargo build through the adapter
    irbuild setup-passes --llvm-prefix /opt/llvm-3.5
                                      # fetch + build RemoveAssume.so

    irbuild-rustc rustc <args...>     # RUSTC_WRAPPER entry point, called by cargo
"""

from __future__ import annotations

import dataclasses
import os
import shutil
import sys
from pathlib import Path

import click
import structlog

from irbuild.classifier import flag_values
from irbuild.engine import BuildEngine
from irbuild.exceptions import ConfigurationError, IRBuildError, ProcessError
from irbuild.logging import setup_logging
from irbuild.models.command import CommandKind, CompileCommand
from irbuild.models.config import EmitKind, EngineConfig
from irbuild.process import ProcessRunner
from irbuild.setup_passes import fetch_passes

log = structlog.get_logger("irbuild.cli")

WRAPPER_NAME = "irbuild-rustc"

# Exit code cargo uses for its own failures
_EXIT_FAILURE = 101


def _exe_dir() -> Path:
    """Directory holding the running executable; the plugin is installed next to it."""
    return Path(sys.argv[0]).resolve().parent


def _wrapper_path() -> str:
    sibling = _exe_dir() / WRAPPER_NAME
    if sibling.is_file():
        return str(sibling)
    found = shutil.which(WRAPPER_NAME)
    if not found:
        raise ConfigurationError(f"{WRAPPER_NAME} not found next to {sys.argv[0]} or on PATH")
    return found


def _fail(err: IRBuildError) -> None:
    click.echo(f"error: {err}", err=True)
    if isinstance(err, ProcessError):
        # None: spawn failure; negative: killed by a signal
        sys.exit(err.returncode if err.returncode and err.returncode > 0 else _EXIT_FAILURE)
    sys.exit(1)


def _is_compiler_invocation(args: tuple[str, ...]) -> bool:
    # cargo also calls the wrapper for queries such as `rustc -vV` and
    # `rustc - --crate-name ___ --print=file-names ...`; those write no artifacts
    if any(a == "--print" or a.startswith("--print=") for a in args):
        return False
    return all(
        next(flag_values(args, flag), None) is not None
        for flag in ("--crate-name", "--out-dir")
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """irbuild: compile cargo packages to LLVM IR and emscripten artifacts."""
    setup_logging("DEBUG" if verbose else None)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command("build")
@click.option("-p", "--package", default=None, help="Package to build")
@click.option("-j", "--jobs", type=int, default=None, help="Number of parallel jobs")
@click.option("--lib", is_flag=True, help="Build only lib (if present in package)")
@click.option("--release", is_flag=True, help="Build artifacts in release mode")
@click.option("--features", default=None, help="Space-separated list of features")
@click.option("--no-default-features", is_flag=True, help="Do not build the `default` feature")
@click.option("--target", default=None, help="Build for the target triple")
@click.option("--manifest-path", default=None, help="Path to the manifest to compile")
@click.option("--sysroot", type=click.Path(), default=None, help="rustc sysroot path")
@click.option(
    "--emit",
    type=click.Choice([k.value for k in EmitKind]),
    default=None,
    help="Output kind (default: link)",
)
@click.option("--opt", type=click.Path(), default=None, help="Path to LLVM `opt` executable")
@click.option("--emcc", type=click.Path(), default=None, help="Path to the `emcc` executable")
@click.option(
    "--passes-dir",
    type=click.Path(),
    default=None,
    help="Directory containing RemoveAssume.so (default: next to irbuild)",
)
@click.pass_context
def build(
    ctx: click.Context,
    package: str | None,
    jobs: int | None,
    lib: bool,
    release: bool,
    features: str | None,
    no_default_features: bool,
    target: str | None,
    manifest_path: str | None,
    sysroot: str | None,
    emit: str | None,
    opt: str | None,
    emcc: str | None,
    passes_dir: str | None,
) -> None:
    """Compile a local package and all of its dependencies."""
    config = EngineConfig(
        target=target,
        sysroot=Path(sysroot) if sysroot else None,
        emcc=Path(emcc) if emcc else None,
        opt=Path(opt) if opt else None,
        emit=EmitKind(emit) if emit else None,
        passes_dir=Path(passes_dir) if passes_dir else _exe_dir(),
    )

    args = ["build"]
    # The plugin passes expect optimized IR
    if release or (config.emit is not None and config.emit.needs_repair):
        args.append("--release")
    if package:
        args += ["--package", package]
    if jobs:
        args += ["--jobs", str(jobs)]
    if lib:
        args.append("--lib")
    if features:
        args += ["--features", features]
    if no_default_features:
        args.append("--no-default-features")
    if target:
        args += ["--target", target]
    if manifest_path:
        args += ["--manifest-path", manifest_path]
    if ctx.obj["verbose"]:
        args.append("--verbose")

    try:
        env = {"RUSTC_WRAPPER": _wrapper_path(), **config.to_env()}
        if ctx.obj["verbose"]:
            env["IRBUILD_LOG_LEVEL"] = "DEBUG"
        command = CompileCommand(
            program=os.environ.get("CARGO", "cargo"),
            args=args,
            env=env,
            kind=CommandKind.TOOL,
        )
        log.info("cli.build", argv=command.argv, emit=emit, target=target)
        ProcessRunner().run(command)
    except IRBuildError as e:
        _fail(e)


@main.command("setup-passes")
@click.option("--llvm-prefix", default=None, help="LLVM 3.5 install prefix (default: $LLVM_PREFIX)")
@click.option(
    "--dest",
    type=click.Path(file_okay=False),
    default=None,
    help="Install directory (default: next to irbuild)",
)
@click.option("--workdir", type=click.Path(file_okay=False), default=None, help="Checkout directory")
def setup_passes(llvm_prefix: str | None, dest: str | None, workdir: str | None) -> None:
    """Fetch and build the optimizer plugin used for IR repair."""
    try:
        installed = fetch_passes(dest or _exe_dir(), llvm_prefix=llvm_prefix, workdir=workdir)
    except IRBuildError as e:
        _fail(e)
        return
    if not installed:
        click.echo("No LLVM_PREFIX specified, LLVM 3.5 and emscripten output will fail")
        return
    for path in installed:
        click.echo(f"Installed {path}")


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": [],
    }
)
@click.argument("program")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def rustc_main(program: str, args: tuple[str, ...]) -> None:
    """RUSTC_WRAPPER entry point: irbuild-rustc <rustc> <args...>."""
    setup_logging()
    try:
        config = EngineConfig.from_env()
        if config.passes_dir is None:
            config = dataclasses.replace(config, passes_dir=_exe_dir())
        kind = CommandKind.COMPILER if _is_compiler_invocation(args) else CommandKind.TOOL
        command = CompileCommand(program=program, args=args, cwd=Path.cwd(), kind=kind)
        BuildEngine(config).exec(command)
    except IRBuildError as e:
        _fail(e)


if __name__ == "__main__":
    main()
