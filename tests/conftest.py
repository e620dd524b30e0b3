"""Shared pytest fixtures for irbuild tests.

The fake toolchain scripts run under the current interpreter, so the
subprocess plumbing is exercised for real without rustc, LLVM or emscripten.
"""

import sys
from pathlib import Path

import pytest

from irbuild.models.command import CompileCommand

_FAKE_OPT = """\
import json, os, sys
log = os.environ.get("FAKE_OPT_LOG")
if log:
    with open(log, "w") as f:
        json.dump(sys.argv[1:], f)
out = sys.stdout.buffer
out.write(b"; optimized\\n")
for chunk in iter(lambda: sys.stdin.buffer.read1(65536), b""):
    out.write(chunk)
    out.flush()
sys.exit(int(os.environ.get("FAKE_OPT_EXIT", "0")))
"""

_FAKE_RUSTC = """\
import json, os, sys
args = sys.argv[1:]
def value(flag):
    return args[args.index(flag) + 1] if flag in args else None
log = os.environ.get("FAKE_RUSTC_LOG")
if log:
    with open(log, "a") as f:
        f.write(json.dumps(args) + "\\n")
if "llvm-ir" in (value("--emit") or ""):
    path = os.path.join(value("--out-dir"), value("--crate-name") + ".ll")
    with open(path, "w") as f:
        f.write(IR)
sys.stdout.write("rustc done\\n")
sys.exit(int(os.environ.get("FAKE_RUSTC_EXIT", "0")))
"""

_FAKE_EMCC = """\
import json, os, sys
args = sys.argv[1:]
log = os.environ.get("FAKE_EMCC_LOG")
if log:
    with open(log, "w") as f:
        json.dump(args, f)
with open(args[args.index("-o") + 1], "w") as f:
    f.write("<html></html>")
sys.stdout.write("emcc done\\n")
"""

SAMPLE_IR = """\
; ModuleID = 'demo.0.rs'
define internal void @_ZN4main20h3b0c4f1aE() unnamed_addr {
entry-block:
  ret void, !dbg !12
}

!llvm.module.flags = !{!0}
!0 = !{i32 2, !"Debug Info Version", i32 3}
!12 = distinct !{i32 1}
"""


def _script(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return path


@pytest.fixture
def fake_opt(tmp_path: Path) -> Path:
    return _script(tmp_path / "opt", _FAKE_OPT)


@pytest.fixture
def fake_rustc(tmp_path: Path) -> Path:
    return _script(tmp_path / "rustc", f"IR = {SAMPLE_IR!r}\n" + _FAKE_RUSTC)


@pytest.fixture
def fake_emcc(tmp_path: Path) -> Path:
    return _script(tmp_path / "emcc", _FAKE_EMCC)


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    d = tmp_path / "out"
    d.mkdir()
    return d


def rustc_command(
    crate_name: str = "demo",
    out_dir: str = "/tmp/out",
    crate_type: str = "bin",
    target: str | None = None,
    extra: tuple[str, ...] = (),
    program: str = "rustc",
) -> CompileCommand:
    """A compiler invocation shaped like the ones cargo produces."""
    args = [
        "src/main.rs",
        "--crate-name", crate_name,
        "--crate-type", crate_type,
        "--emit=dep-info,link",
        "-C", "opt-level=3",
        "--out-dir", out_dir,
    ]
    if target:
        args += ["--target", target]
    args += list(extra)
    return CompileCommand(program=program, args=args, env={"CARGO_PKG_NAME": crate_name})


@pytest.fixture
def make_command():
    return rustc_command
