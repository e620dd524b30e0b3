"""One-time setup: fetch and build the RemoveAssume optimizer plugin."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path

import structlog

from irbuild.exceptions import SetupError
from irbuild.models.config import PLUGIN_NAME

log = structlog.get_logger("irbuild.setup")

PASSES_NAME = "rust-emscripten-passes"
PASSES_URL = "https://github.com/epdtry/rust-emscripten-passes.git"
PASSES = (PLUGIN_NAME,)


def _run(cmd: list[str], cwd: Path | None = None) -> None:
    log.info("setup.run", cmd=cmd)
    try:
        subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise SetupError(f"{cmd[0]} not found: {e}") from e
    except subprocess.CalledProcessError as e:
        raise SetupError(
            f"`{' '.join(cmd)}` failed (rc={e.returncode}): {e.stderr[-1000:]}"
        ) from e


def _clone(url: str, path: Path) -> None:
    """Clone ``url`` into ``path``, reusing a non-empty existing checkout."""
    if path.exists():
        if (path / ".git").is_dir() and any(p.name != ".git" for p in path.iterdir()):
            log.info("setup.reuse_checkout", path=str(path))
            return
        shutil.rmtree(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _run(["git", "clone", url, str(path)])


def fetch_passes(
    dest: str | Path,
    llvm_prefix: str | None = None,
    workdir: str | Path | None = None,
) -> list[Path]:
    """Build the optimizer plugin(s) and move them into ``dest``.

    Without an LLVM prefix (argument or ``LLVM_PREFIX``) nothing is built and
    an empty list is returned; IR repair will then fail at optimizer start.
    """
    llvm_prefix = llvm_prefix or os.environ.get("LLVM_PREFIX")
    if not llvm_prefix:
        log.warning("setup.no_llvm_prefix", detail="LLVM 3.5 and emscripten output will fail")
        return []

    dest = Path(dest)
    work = Path(workdir) if workdir else Path(tempfile.mkdtemp(prefix="irbuild-passes-"))
    passes_dir = work / PASSES_NAME

    log.info("setup.clone", name=PASSES_NAME, url=PASSES_URL)
    _clone(PASSES_URL, passes_dir)

    log.info("setup.compile", llvm_prefix=llvm_prefix)
    _run(["make", *PASSES, f"LLVM_PREFIX={llvm_prefix}"], cwd=passes_dir)

    dest.mkdir(parents=True, exist_ok=True)
    installed = []
    for name in PASSES:
        built = passes_dir / name
        if not built.is_file():
            raise SetupError(f"make did not produce {built}")
        target = dest / name
        shutil.move(str(built), target)
        installed.append(target)
        log.info("setup.installed", path=str(target))
    return installed
