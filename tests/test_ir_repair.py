"""Tests for IR repair — line rewrite rules plus the opt pipe pipeline.

The pipeline tests use a fake ``opt`` (see conftest) that prepends a marker
line and echoes its input, so the file contents are fully predictable.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

from irbuild.exceptions import ConfigurationError, ProcessError, RepairError
from irbuild.ir_repair import (
    LEGACY_METADATA_PREFIX,
    METADATA_SIGIL,
    PREFIX_OFFSET,
    IRRepairPipeline,
    optimizer_argv,
    rewrite_metadata_line,
)
from irbuild.models.config import EngineConfig


class TestRewriteMetadataLine:
    @pytest.mark.parametrize(
        "line,expected",
        [
            # plain metadata nodes
            ("!0 = !{i32 1, !1}", "!0 = metadata !{i32 1, metadata !1}"),
            ('!1 = !{!"clang version"}', '!1 = metadata !{metadata !"clang version"}'),
            ("!llvm.module.flags = !{!0}", "!llvm.module.flags = metadata !{metadata !0}"),
            ("!2 = !{}", "!2 = metadata !{}"),
            # distinct metadata nodes
            ("!42 = distinct !{i32 1}", "!42 = metadata !{i32 1}"),
            ("!42 = distinct metadata !{i32 1}", "!42 = metadata metadata !{i32 1}"),
            ("!7 = distinct !{!7, !8}", "!7 = metadata !{metadata !7, metadata !8}"),
            ("!", "!"),
        ],
    )
    def test_sigil_lines(self, line, expected):
        assert rewrite_metadata_line(line) == expected

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "; ModuleID = 'demo.0.rs'",
            "define void @main() {",
            "  ret void, !dbg !12",
            "  call void @llvm.dbg.value(metadata i32 %x, metadata !12)",
            " !0 = !{i32 1}",
            'attributes #0 = { "no-frame-pointer-elim"="true" }',
        ],
    )
    def test_other_lines_untouched(self, line):
        assert rewrite_metadata_line(line) == line

    @pytest.mark.parametrize("line", ["  ret void, !dbg !12", "define void @f() {"])
    def test_other_lines_stable_across_passes(self, line):
        once = rewrite_metadata_line(line)
        assert rewrite_metadata_line(rewrite_metadata_line(once)) == line

    def test_prefix_offset_matches_keyword(self):
        assert PREFIX_OFFSET == len(LEGACY_METADATA_PREFIX)
        assert LEGACY_METADATA_PREFIX.rstrip() == "metadata"
        # the node's own name comes back intact
        assert rewrite_metadata_line(METADATA_SIGIL + "5 = !{}").startswith("!5 = ")


class TestOptimizerArgv:
    def test_argv(self, tmp_path: Path):
        config = EngineConfig(opt=Path("/llvm/bin/opt"), passes_dir=tmp_path)
        assert optimizer_argv(config) == [
            "/llvm/bin/opt",
            f"-load={tmp_path / 'RemoveAssume.so'}",
            "-remove-assume",
            "-globaldce",
            "-S",
        ]

    def test_default_opt(self, tmp_path: Path):
        assert optimizer_argv(EngineConfig(passes_dir=tmp_path))[0] == "opt"

    def test_unconfigured_passes_dir(self):
        with pytest.raises(ConfigurationError, match="passes_dir"):
            optimizer_argv(EngineConfig())


class TestIRRepairPipeline:
    def _pipeline(self, opt: Path, passes_dir: Path) -> IRRepairPipeline:
        return IRRepairPipeline(EngineConfig(opt=opt, passes_dir=passes_dir))

    def test_repair_overwrites_file(self, tmp_path: Path, fake_opt: Path, monkeypatch):
        log_file = tmp_path / "opt-args.json"
        monkeypatch.setenv("FAKE_OPT_LOG", str(log_file))
        ll = tmp_path / "demo.ll"
        ll.write_text("define void @main() {\n  ret void\n}\n!0 = distinct !{!0}\n")

        self._pipeline(fake_opt, tmp_path).repair(ll)

        assert ll.read_text() == (
            "; optimized\n"
            "define void @main() {\n"
            "  ret void\n"
            "}\n"
            "!0 = metadata !{metadata !0}\n"
        )
        assert json.loads(log_file.read_text()) == [
            f"-load={tmp_path / 'RemoveAssume.so'}",
            "-remove-assume",
            "-globaldce",
            "-S",
        ]

    def test_crlf_and_missing_final_newline(self, tmp_path: Path, fake_opt: Path):
        ll = tmp_path / "demo.ll"
        ll.write_bytes(b"!1 = !{}\r\n; tail")
        self._pipeline(fake_opt, tmp_path).repair(ll)
        assert ll.read_bytes() == b"; optimized\n!1 = metadata !{}\n; tail\n"

    def test_non_utf8_bytes_survive(self, tmp_path: Path, fake_opt: Path):
        ll = tmp_path / "demo.ll"
        ll.write_bytes(b'@s = constant [2 x i8] c"\xff\xfe"\n')
        self._pipeline(fake_opt, tmp_path).repair(ll)
        assert ll.read_bytes() == b'; optimized\n@s = constant [2 x i8] c"\xff\xfe"\n'

    def test_large_file_does_not_deadlock(self, tmp_path: Path, fake_opt: Path):
        ll = tmp_path / "big.ll"
        lines = [f"!{i} = !{{i32 {i}}}" for i in range(100_000)]
        ll.write_text("\n".join(lines) + "\n")

        self._pipeline(fake_opt, tmp_path).repair(ll)

        out = ll.read_text().splitlines()
        assert len(out) == len(lines) + 1
        assert out[1] == "!0 = metadata !{i32 0}"
        assert out[-1] == "!99999 = metadata !{i32 99999}"

    def test_preserves_file_mode(self, tmp_path: Path, fake_opt: Path):
        ll = tmp_path / "demo.ll"
        ll.write_text("; x\n")
        ll.chmod(0o640)
        self._pipeline(fake_opt, tmp_path).repair(ll)
        assert (ll.stat().st_mode & 0o777) == 0o640

    def test_optimizer_failure_leaves_original(self, tmp_path: Path, fake_opt: Path, monkeypatch):
        monkeypatch.setenv("FAKE_OPT_EXIT", "3")
        ll = tmp_path / "demo.ll"
        ll.write_text("!0 = !{}\n")

        with pytest.raises(ProcessError) as exc_info:
            self._pipeline(fake_opt, tmp_path).repair(ll)

        assert exc_info.value.returncode == 3
        assert ll.read_text() == "!0 = !{}\n"
        assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []

    def test_missing_optimizer(self, tmp_path: Path):
        ll = tmp_path / "demo.ll"
        ll.write_text("!0 = !{}\n")

        with pytest.raises(ProcessError) as exc_info:
            self._pipeline(tmp_path / "no-such-opt", tmp_path).repair(ll)

        assert exc_info.value.spawn_failed
        assert ll.read_text() == "!0 = !{}\n"
        assert sorted(os.listdir(tmp_path)) == ["demo.ll"]

    def test_missing_ir_file(self, tmp_path: Path, fake_opt: Path):
        with pytest.raises(RepairError, match="cannot open IR file") as exc_info:
            self._pipeline(fake_opt, tmp_path).repair(tmp_path / "absent.ll")
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_optimizer_not_reading_input(self, tmp_path: Path):
        opt = tmp_path / "opt"
        opt.write_text(f"#!{sys.executable}\nimport sys\nsys.exit(0)\n")
        opt.chmod(0o755)
        ll = tmp_path / "demo.ll"
        original = "".join(f"!{i} = !{{i32 {i}}}\n" for i in range(100_000))
        ll.write_text(original)

        with pytest.raises(RepairError, match="cannot stream"):
            self._pipeline(opt, tmp_path).repair(ll)

        assert ll.read_text() == original
        assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []

    def test_output_write_failure(self, tmp_path: Path):
        opt = tmp_path / "opt"
        opt.write_text(
            f"#!{sys.executable}\nimport sys\nsys.stdin.buffer.read()\nsys.stdout.write('; done\\n')\n"
        )
        opt.chmod(0o755)
        ll = tmp_path / "demo.ll"
        ll.write_text("!0 = !{}\n")

        class FullDisk:
            def write(self, data):
                raise OSError(28, "No space left on device")

        with open(ll, "rb") as source, pytest.raises(RepairError, match="cannot write repaired IR"):
            self._pipeline(opt, tmp_path)._run_optimizer(source, FullDisk(), ll)
