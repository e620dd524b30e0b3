"""IR repair — makes rustc's LLVM IR text readable by an LLVM 3.5 toolchain.

Two steps run over one ``.ll`` file:

1. A line-level rewrite restores the old metadata syntax, where every
   metadata reference carries an explicit ``metadata`` type keyword and
   ``distinct`` nodes do not exist.
2. The rewritten text is streamed through ``opt`` with the RemoveAssume
   plugin loaded, running ``-remove-assume`` and ``-globaldce``.

The optimizer output replaces the original file only once ``opt`` has
exited successfully; on any failure the original is left as it was.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO

import structlog

from irbuild.exceptions import ProcessError, RepairError
from irbuild.models.config import EngineConfig

log = structlog.get_logger("irbuild.ir_repair")

METADATA_SIGIL = "!"
LEGACY_METADATA_PREFIX = "metadata "
# The sigil of the node's own name also gains the prefix; cutting exactly
# that many characters from the line start restores "!N = ...".
PREFIX_OFFSET = len(LEGACY_METADATA_PREFIX)

_DISTINCT_FORM = "distinct " + LEGACY_METADATA_PREFIX.rstrip()
_LEGACY_FORM = LEGACY_METADATA_PREFIX.rstrip()

OPTIMIZER_PASSES = ("-remove-assume", "-globaldce")


def rewrite_metadata_line(line: str) -> str:
    """Rewrite one IR line (without its newline) into the old metadata syntax.

    >>> rewrite_metadata_line("!0 = !{i32 1, !1}")
    '!0 = metadata !{i32 1, metadata !1}'
    """
    if not line.startswith(METADATA_SIGIL):
        return line
    line = line.replace(METADATA_SIGIL, LEGACY_METADATA_PREFIX + METADATA_SIGIL)
    line = line.replace(_DISTINCT_FORM, _LEGACY_FORM)
    return line[PREFIX_OFFSET:]


def optimizer_argv(config: EngineConfig) -> list[str]:
    return [
        config.opt_program,
        f"-load={config.plugin_path}",
        *OPTIMIZER_PASSES,
        "-S",
    ]


def _strip_newline(raw: bytes) -> bytes:
    line = raw[:-1] if raw.endswith(b"\n") else raw
    if line.endswith(b"\r"):
        line = line[:-1]
    return line


def _feed(source: BinaryIO, sink: BinaryIO, errors: list[BaseException]) -> None:
    """Writer thread body: stream rewritten lines into ``sink`` and close it."""
    try:
        with sink:
            for raw in source:
                text = _strip_newline(raw).decode("utf-8", "surrogateescape")
                sink.write(rewrite_metadata_line(text).encode("utf-8", "surrogateescape"))
                sink.write(b"\n")
    except (OSError, ValueError) as e:
        errors.append(e)


class IRRepairPipeline:
    """Rewrite and re-optimize a ``.ll`` file in place."""

    def __init__(self, config: EngineConfig) -> None:
        self._config = config

    def repair(self, path: str | Path) -> None:
        path = Path(path)
        try:
            source = open(path, "rb")
        except OSError as e:
            raise RepairError(f"cannot open IR file {path}: {e}") from e

        with source:
            try:
                fd, tmp_name = tempfile.mkstemp(
                    dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
                )
            except OSError as e:
                raise RepairError(f"cannot create output next to {path}: {e}") from e

            try:
                try:
                    with os.fdopen(fd, "wb") as out:
                        written = self._run_optimizer(source, out, path)
                    shutil.copymode(path, tmp_name)
                    os.replace(tmp_name, path)
                except OSError as e:
                    raise RepairError(f"cannot write repaired IR to {path}: {e}") from e
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise

        log.info("ir_repair.done", path=str(path), bytes=written)

    def _run_optimizer(self, source: BinaryIO, out: BinaryIO, path: Path) -> int:
        argv = optimizer_argv(self._config)
        log.debug("ir_repair.spawn", argv=argv, path=str(path))
        try:
            proc = subprocess.Popen(argv, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
        except OSError as e:
            raise ProcessError(argv, reason=f"could not execute process: {e}") from e

        # Writing and reading overlap so neither pipe buffer can fill up
        # while the other side waits.
        errors: list[BaseException] = []
        writer = threading.Thread(
            target=_feed,
            args=(source, proc.stdin, errors),
            name=f"ir-repair-{path.name}",
            daemon=True,
        )
        writer.start()

        written = 0
        copy_error: OSError | None = None
        try:
            while chunk := proc.stdout.read(64 * 1024):
                out.write(chunk)
                written += len(chunk)
        except OSError as e:
            copy_error = e
        finally:
            proc.stdout.close()
            writer.join()
            returncode = proc.wait()

        # opt's own exit status is meaningless once its stdout was closed early
        if copy_error is not None:
            raise RepairError(f"cannot write repaired IR for {path}: {copy_error}") from copy_error
        if returncode != 0:
            raise ProcessError(argv, returncode=returncode)
        if errors:
            raise RepairError(f"cannot stream {path} to the optimizer: {errors[0]}") from errors[0]
        return written
