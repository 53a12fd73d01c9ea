import struct

import pytest
from PIL import Image

from canvas import PixelCanvas
from color import Color
from export import save_bmp, save_png
from penplot import run_cli

TRIANGLE = "\n".join([
    "RGB 255 0 0",
    "LOOP side 3",
    "HALT",
    "WALK 8 @side",
    "TURN 120",
    "RTRN",
])

LSYSTEM = "seed { RGB 0 0 0 WALK 2 } WALK 2 { WALK 2 TURN 90 WALK 2 }"


def write(tmp_path, name: str, text: str) -> str:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestExport:
    def test_png_round_trip(self, tmp_path) -> None:
        canvas = PixelCanvas(3, 2)
        canvas.set_color(Color(10, 20, 30, 255))
        canvas.blot(2.0, 1.0)
        path = str(tmp_path / "out.png")
        save_png(path, canvas)
        with Image.open(path) as im:
            assert im.mode == "RGBA"
            assert im.size == (3, 2)
            assert im.getpixel((2, 1)) == (10, 20, 30, 255)
            assert im.getpixel((0, 0)) == (0, 0, 0, 0)

    def test_bmp_header_and_row_order(self, tmp_path) -> None:
        canvas = PixelCanvas(2, 2)
        canvas.set_color(Color(1, 2, 3, 255))
        canvas.blot(0.0, 0.0)
        path = tmp_path / "out.bmp"
        save_bmp(str(path), canvas)
        data = path.read_bytes()
        assert data[:2] == b"BM"
        assert struct.unpack("<I", data[2:6])[0] == len(data) == 54 + 16
        assert struct.unpack("<II", data[18:26]) == (2, 2)
        # rows are stored bottom-up as BGRA
        assert data[54 + 8:54 + 12] == bytes([3, 2, 1, 255])
        assert data[54:58] == bytes(4)


class TestRunCommand:
    def test_renders_png(self, tmp_path) -> None:
        source = write(tmp_path, "tri.pen", TRIANGLE)
        output = str(tmp_path / "tri.png")
        assert run_cli(["run", "-i", source, "-o", output]) == 0
        with Image.open(output) as im:
            assert im.mode == "RGBA"
            assert any(pixel[3] == 255 for pixel in im.getdata())

    def test_pinned_size(self, tmp_path) -> None:
        source = write(tmp_path, "tri.pen", TRIANGLE)
        output = str(tmp_path / "tri.png")
        args = ["run", "-i", source, "-o", output, "--width", "20", "--height", "12", "--offset-x", "1", "--offset-y", "1"]
        assert run_cli(args) == 0
        with Image.open(output) as im:
            assert im.size == (20, 12)

    def test_single_offset_axis_keeps_auto_offset_for_other(self, tmp_path) -> None:
        source = write(tmp_path, "bar.pen", "MOVE -3 -5\nRGB 255 0 0\nMOVE -3 0\n")
        output = str(tmp_path / "bar.png")
        assert run_cli(["run", "-i", source, "-o", output, "--offset-x", "3"]) == 0
        with Image.open(output) as im:
            assert im.size == (4, 6)
            assert [im.getpixel((0, y))[3] for y in range(6)] == [255] * 6

    def test_canvas_too_large(self, tmp_path, capsys, monkeypatch) -> None:
        def refuse(*_args, **_kwargs):
            raise MemoryError

        monkeypatch.setattr("interpreter.PixelCanvas", refuse)
        source = write(tmp_path, "far.pen", "MOVE 100000 100000\n")
        output = tmp_path / "far.png"
        assert run_cli(["run", "-i", source, "-o", str(output)]) == 1
        assert "canvas too large" in capsys.readouterr().err
        assert not output.exists()

    def test_renders_bmp(self, tmp_path) -> None:
        source = write(tmp_path, "tri.pen", TRIANGLE)
        output = tmp_path / "tri.bmp"
        assert run_cli(["run", "-i", source, "-o", str(output)]) == 0
        assert output.read_bytes()[:2] == b"BM"

    def test_parse_error(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "bad.pen", "WALK 1\nFLY 2\n")
        assert run_cli(["run", "-i", source, "-o", str(tmp_path / "x.png")]) == 1
        assert "ParseError" in capsys.readouterr().err
        assert not (tmp_path / "x.png").exists()

    def test_step_budget_prints_traceback(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "spin.pen", "TURN 1\nJUMP -2\n")
        output = tmp_path / "spin.png"
        assert run_cli(["run", "-i", source, "-o", str(output), "--max-steps", "50"]) == 1
        err = capsys.readouterr().err
        assert "Traceback (most recent call last):" in err
        assert "StepBudgetExceeded: Step budget of 50 exhausted" in err
        assert not output.exists()

    def test_runtime_error_json_traceback(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "bad.pen", "RTRN\n")
        assert run_cli(["run", "-i", source, "-o", str(tmp_path / "x.png"), "--traceback-json"]) == 1
        err = capsys.readouterr().err
        assert "RuntimeControlError" in err
        assert '"type": "RuntimeControlError"' in err

    def test_trace_goes_to_stderr(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "one.pen", "BLOT\n")
        assert run_cli(["run", "-i", source, "-o", str(tmp_path / "one.png"), "--trace"]) == 0
        assert "0: BLOT" in capsys.readouterr().err

    def test_non_positive_step_budget(self, tmp_path) -> None:
        source = write(tmp_path, "one.pen", "BLOT\n")
        assert run_cli(["run", "-i", source, "-o", str(tmp_path / "one.png"), "--max-steps", "0"]) == 1

    def test_missing_input(self, tmp_path) -> None:
        assert run_cli(["run", "-i", str(tmp_path / "nope.pen"), "-o", str(tmp_path / "x.png")]) == 1

    def test_output_is_required(self) -> None:
        with pytest.raises(SystemExit):
            run_cli(["run"])


class TestFractalCommand:
    def test_prints_program(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "grow.lsys", LSYSTEM)
        assert run_cli(["fractal", "-i", source, "-c", "1"]) == 0
        assert capsys.readouterr().out == "RGBA 0 0 0 255\nWALK 2\nTURN 90\nWALK 2\n"

    def test_writes_program_file(self, tmp_path) -> None:
        source = write(tmp_path, "grow.lsys", LSYSTEM)
        output = tmp_path / "grow.pen"
        assert run_cli(["fractal", "-i", source, "-o", str(output), "-c", "2"]) == 0
        lines = output.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "RGBA 0 0 0 255"
        assert lines.count("WALK 2") == 4

    def test_render_option(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "grow.lsys", LSYSTEM)
        image = tmp_path / "grow.png"
        assert run_cli(["fractal", "-i", source, "-c", "3", "--render", str(image)]) == 0
        assert capsys.readouterr().out == ""
        with Image.open(str(image)) as im:
            assert any(pixel[3] == 255 for pixel in im.getdata())

    def test_bad_lsystem(self, tmp_path, capsys) -> None:
        source = write(tmp_path, "bad.lsys", "seed { WALK 1 }")
        assert run_cli(["fractal", "-i", source, "-c", "1"]) == 1
        assert "L system could not be parsed" in capsys.readouterr().err

    def test_negative_count(self, tmp_path) -> None:
        source = write(tmp_path, "grow.lsys", LSYSTEM)
        assert run_cli(["fractal", "-i", source, "-c", "-1"]) == 1
