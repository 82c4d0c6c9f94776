# noqa: D104
"""Tests for the CuraEngine process engine and its output parsers."""

from __future__ import annotations

import stat
import sys
import textwrap
from pathlib import Path

import pytest

from cura_runtime.arguments import generate_arguments
from cura_runtime.engine import (
    METADATA_HOOK,
    PROGRESS_HOOK,
    CuraEngineProcess,
    parse_gcode_header,
    parse_progress_line,
)
from cura_runtime.errors import EngineFailure

ULTIGCODE_HEADER = b""";FLAVOR:UltiGCode
;TIME:9061
;MATERIAL:11172
;MATERIAL2:0
;NOZZLE_DIAMETER:0.4
;MINX:78.628
;MINY:95.565
;MINZ:0.3
;MAXX:142.112
;MAXY:127.435
;MAXZ:48
G28
"""

FAKE_ENGINE = textwrap.dedent(
    """\
    import sys

    args = sys.argv[1:]
    print("Loading model")
    if args.count("-p") > 1:
        print("Duplicate -p flag", file=sys.stderr)
        sys.exit(4)
    if "-p" in args:
        for percent in (0, 25, 50, 100):
            print(f"Progress: {percent}%", flush=True)
    if "--fail" in args:
        print("Failed to load model", file=sys.stderr)
        sys.exit(3)
    with open(args[args.index("-o") + 1], "wb") as handle:
        handle.write(HEADER)
    """
)


@pytest.fixture
def fake_engine_bin(tmp_path: Path) -> Path:
    """Executable standing in for CuraEngine."""
    path = tmp_path / "CuraEngine"
    path.write_text(
        f"#!{sys.executable}\nHEADER = {ULTIGCODE_HEADER!r}\n" + FAKE_ENGINE
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class TestParseProgressLine:
    """Tests for parse_progress_line."""

    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("Progress: 50%", 0.5),
            ("[info] Progress: 12.5%", 0.125),
            ("Progress:inset+skin:3:10 \t0.42", 0.42),
            ("Progress: 150%", 1.0),
        ],
    )
    def test_progress_lines(self, line: str, expected: float) -> None:
        """Test progress formats CuraEngine prints."""
        assert parse_progress_line(line) == pytest.approx(expected)

    def test_non_progress_line(self) -> None:
        """Test other lines carry no progress."""
        assert parse_progress_line("Loading model") is None


class TestParseGcodeHeader:
    """Tests for parse_gcode_header."""

    def test_ultigcode_header(self) -> None:
        """Test UltiGCode headers map onto the 12 metadata values."""
        assert parse_gcode_header(ULTIGCODE_HEADER) == (
            "UltiGCode",
            9061,
            11172,
            0,
            0.4,
            11172,
            78.628,
            95.565,
            0.3,
            142.112,
            127.435,
            48,
        )

    def test_marlin_filament_in_metres(self) -> None:
        """Test Marlin filament usage is converted to millimetres."""
        values = parse_gcode_header(
            b";FLAVOR:Marlin\n;TIME:600\n;Filament used: 1.5m\n;Layer height: 0.2\n"
        )
        assert values is not None
        assert values[0] == "Marlin"
        assert values[1] == 600
        assert values[2] == pytest.approx(1500)
        assert values[5] == pytest.approx(1500)

    def test_griffin_header(self) -> None:
        """Test Griffin-style dotted keys."""
        values = parse_gcode_header(
            b";START_OF_HEADER\n"
            b";FLAVOR:Griffin\n"
            b";PRINT.TIME:1234\n"
            b";EXTRUDER_TRAIN.0.MATERIAL.VOLUME_USED:567\n"
            b";EXTRUDER_TRAIN.0.NOZZLE.DIAMETER:0.4\n"
            b";PRINT.SIZE.MIN.X:10\n"
            b";PRINT.SIZE.MAX.Z:20.5\n"
            b";END_OF_HEADER\n"
        )
        assert values is not None
        assert values[:5] == ("Griffin", 1234, 567, 0, 0.4)
        assert values[6] == 10
        assert values[11] == 20.5

    def test_no_header(self) -> None:
        """Test G-code without a flavor has no metadata."""
        assert parse_gcode_header(b"G28\nG1 X0\n") is None


class TestCuraEngineProcess:
    """Tests for CuraEngineProcess."""

    def test_missing_binary(self, tmp_path: Path) -> None:
        """Test an unknown binary fails at construction."""
        with pytest.raises(EngineFailure, match="CuraEngine not found"):
            CuraEngineProcess(tmp_path / "no-such-engine")

    def test_call_main(self, fake_engine_bin: Path, tmp_path: Path) -> None:
        """Test a run requests progress, streams it and reports header metadata."""
        engine = CuraEngineProcess(fake_engine_bin, work_dir=tmp_path / "work")
        progress: list[float] = []
        metadata: list[tuple] = []
        engine.register_hook(PROGRESS_HOOK, progress.append)
        engine.register_hook(METADATA_HOOK, lambda *values: metadata.append(values))

        engine.fs.write_file("Model.stl", b"solid cube\nendsolid cube\n")
        engine.call_main(["slice", "-l", "Model.stl", "-o", "Model.gcode"])

        assert progress == [0.0, 0.25, 0.5, 1.0]
        assert len(metadata) == 1
        assert metadata[0][0] == "UltiGCode"
        assert engine.fs.read_file("Model.gcode") == ULTIGCODE_HEADER

        root = engine.fs.root
        assert root.parent == tmp_path / "work"
        engine.dispose()
        assert not root.exists()

    def test_synthesized_arguments_report_progress(
        self, fake_engine_bin: Path, tmp_path: Path
    ) -> None:
        """Test generated arguments request progress exactly once."""
        engine = CuraEngineProcess(fake_engine_bin, work_dir=tmp_path)
        progress: list[float] = []
        engine.register_hook(PROGRESS_HOOK, progress.append)

        engine.call_main(generate_arguments(None, False))

        assert progress == [0.0, 0.25, 0.5, 1.0]
        engine.dispose()

    def test_non_zero_exit(self, fake_engine_bin: Path, tmp_path: Path) -> None:
        """Test a failing engine raises with its exit code and output tail."""
        engine = CuraEngineProcess(fake_engine_bin, work_dir=tmp_path)
        with pytest.raises(EngineFailure, match="Failed to load model") as exc_info:
            engine.call_main(["slice", "--fail", "-o", "Model.gcode"])
        assert exc_info.value.exit_code == 3
        engine.dispose()

    def test_unknown_hook_rejected(self, fake_engine_bin: Path, tmp_path: Path) -> None:
        """Test hooks can only use the engine's fixed names."""
        engine = CuraEngineProcess(fake_engine_bin, work_dir=tmp_path)
        with pytest.raises(ValueError):
            engine.register_hook("progress", lambda _value: None)
        engine.dispose()
