"""Tests for the command line entry point.

The Taichi runtime is initialized once per session by conftest, so every
test replaces ``init_backend`` with a no-op.

Tests cover:
- Rendering a scene file or standard input to PPM and PNG
- Exit codes for usage, scene, render and I/O errors
"""

import io
import sys

import pytest
from PIL import Image as PILImage

from src.nfftrace import cli

SCENE = """\
v
from 0 0 5
at 0 0 0
up 0 1 0
angle 45
hither 1
resolution 12 8
b 0.2 0.2 0.2
l 0 5 5
f 1 0 0 0.8 0.2 20 0 1
s 0 0 0 1
"""


@pytest.fixture(autouse=True)
def no_backend_init(monkeypatch):
    monkeypatch.setattr(cli, "init_backend", lambda arch: None)


@pytest.fixture
def scene_file(tmp_path):
    path = tmp_path / "scene.nff"
    path.write_text(SCENE)
    return path


class TestRender:
    def test_renders_file_to_ppm(self, scene_file, tmp_path):
        output = tmp_path / "out.ppm"
        code = cli.main(["--input", str(scene_file), "--output", str(output), "--quiet"])
        assert code == cli.EXIT_OK
        assert output.read_bytes().startswith(b"P6\n12 8\n255\n")

    def test_renders_stdin_to_png(self, monkeypatch, tmp_path):
        monkeypatch.setattr(sys, "stdin", io.StringIO(SCENE))
        output = tmp_path / "out.png"
        assert cli.main(["-o", str(output), "--blinn-phong", "-q"]) == cli.EXIT_OK
        with PILImage.open(output) as image:
            assert image.format == "PNG"
            assert image.size == (12, 8)
            # Centre pixel shows the red sphere, the corner the grey background
            center = image.getpixel((6, 4))
            assert center[0] > center[1]
            assert image.getpixel((0, 0)) == (51, 51, 51)

    def test_render_options(self, scene_file, tmp_path):
        output = tmp_path / "out.ppm"
        argv = [
            "-i",
            str(scene_file),
            "-o",
            str(output),
            "--max-depth",
            "0",
            "--band-height",
            "3",
            "--split-method",
            "sah",
            "--leaf-size",
            "1",
            "--verbose",
        ]
        assert cli.main(argv) == cli.EXIT_OK
        assert output.exists()


class TestSettings:
    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        settings = cli.settings_from_args(args)
        assert settings.max_depth == 5
        assert settings.shading_model == cli.ShadingModel.PHONG
        assert args.output == "trace.ppm"
        assert args.input is None

    def test_blinn_phong_flag(self):
        args = cli.build_parser().parse_args(["--blinn-phong", "--max-depth", "2"])
        settings = cli.settings_from_args(args)
        assert settings.shading_model == cli.ShadingModel.BLINN_PHONG
        assert settings.max_depth == 2


class TestExitCodes:
    @pytest.mark.parametrize(
        "argv",
        [
            ["--no-such-flag"],
            ["--phong", "--blinn-phong"],
            ["--max-depth", "many"],
            ["--split-method", "octree"],
            ["--quiet", "--verbose"],
        ],
    )
    def test_usage_errors(self, argv):
        assert cli.main(argv) == cli.EXIT_USAGE

    @pytest.mark.parametrize("argv", [["--max-depth", "-1"], ["--band-height", "0"]])
    def test_invalid_settings(self, argv):
        assert cli.main(argv) == cli.EXIT_USAGE

    def test_version(self, capsys):
        assert cli.main(["--version"]) == cli.EXIT_OK
        assert "0.1.0" in capsys.readouterr().out

    def test_parse_error(self, tmp_path):
        path = tmp_path / "bad.nff"
        path.write_text(SCENE + "x 1 2 3\n")
        output = tmp_path / "out.ppm"
        code = cli.main(["-i", str(path), "-o", str(output), "-q"])
        assert code == cli.EXIT_SCENE_ERROR
        assert not output.exists()

    def test_missing_view(self, tmp_path):
        path = tmp_path / "noview.nff"
        path.write_text("f 1 1 1 1 0 0 0 1\ns 0 0 0 1\n")
        assert cli.main(["-i", str(path), "-o", str(tmp_path / "o.ppm"), "-q"]) == 2

    def test_render_error(self, tmp_path):
        path = tmp_path / "huge.nff"
        path.write_text(SCENE.replace("resolution 12 8", "resolution 4096 8"))
        code = cli.main(["-i", str(path), "-o", str(tmp_path / "o.ppm"), "-q"])
        assert code == cli.EXIT_RENDER_ERROR

    def test_missing_input_file(self, tmp_path):
        code = cli.main(["-i", str(tmp_path / "nope.nff"), "-o", str(tmp_path / "o.ppm")])
        assert code == cli.EXIT_IO_ERROR

    def test_undecodable_input(self, tmp_path):
        path = tmp_path / "binary.nff"
        path.write_bytes(b"\xff\xfe\x00garbage")
        code = cli.main(["-i", str(path), "-o", str(tmp_path / "o.ppm"), "-q"])
        assert code == cli.EXIT_IO_ERROR

    def test_unwritable_output(self, scene_file, tmp_path):
        output = tmp_path / "missing" / "out.ppm"
        code = cli.main(["-i", str(scene_file), "-o", str(output), "-q"])
        assert code == cli.EXIT_IO_ERROR
