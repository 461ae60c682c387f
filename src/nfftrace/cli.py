"""Command line entry point: render an NFF scene to an image file.

Usage:
    nfftrace [--input SCENE.nff] [--output trace.ppm] [options]
    python -m src.nfftrace < scene.nff

The scene is read from standard input unless ``--input`` is given. The image
is written as a binary PPM, or as a PNG when the output path ends in
``.png``.

Exit codes:
    0   success
    2   the scene could not be parsed or is invalid
    3   rendering failed
    4   the input could not be read or the output could not be written
    64  bad command line arguments

Example:
    nfftrace --input examples/scenes/balls.nff --output balls.png --blinn-phong
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Sequence
from typing import NoReturn

import taichi as ti

from src.nfftrace import __version__
from src.nfftrace.core.settings import (
    MAX_SUPPORTED_DEPTH,
    SPLIT_METHODS,
    RenderSettings,
)
from src.nfftrace.errors import NFFParseError, OutputError, RenderError, SceneError
from src.nfftrace.materials.phong import ShadingModel

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SCENE_ERROR = 2
EXIT_RENDER_ERROR = 3
EXIT_IO_ERROR = 4
EXIT_USAGE = 64

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with EX_USAGE instead of 2."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    """Create the command line parser."""
    parser = _ArgumentParser(
        prog="nfftrace",
        description="Render an NFF scene with a Whitted ray tracer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--input",
        "-i",
        type=str,
        default=None,
        help="NFF scene file (default: read standard input)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default="trace.ppm",
        help="Output image path; .png writes PNG, anything else PPM (default: trace.ppm)",
    )

    shading = parser.add_mutually_exclusive_group()
    shading.add_argument(
        "--phong",
        dest="shading_model",
        action="store_const",
        const=ShadingModel.PHONG,
        help="Phong specular highlights (default)",
    )
    shading.add_argument(
        "--blinn-phong",
        dest="shading_model",
        action="store_const",
        const=ShadingModel.BLINN_PHONG,
        help="Blinn-Phong specular highlights",
    )
    parser.set_defaults(shading_model=ShadingModel.PHONG)

    parser.add_argument(
        "--max-depth",
        type=int,
        default=5,
        help=f"Maximum reflection/refraction depth, 0-{MAX_SUPPORTED_DEPTH} (default: 5)",
    )
    parser.add_argument(
        "--band-height",
        type=int,
        default=16,
        help="Image rows traced per kernel launch (default: 16)",
    )
    parser.add_argument(
        "--split-method",
        choices=SPLIT_METHODS,
        default="median",
        help="BVH split heuristic (default: median)",
    )
    parser.add_argument(
        "--leaf-size",
        type=int,
        default=4,
        help="Maximum primitives per BVH leaf (default: 4)",
    )
    parser.add_argument(
        "--arch",
        choices=("cpu", "gpu"),
        default="cpu",
        help="Taichi backend; gpu falls back to cpu when unavailable (default: cpu)",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Only log warnings")
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Log debug details")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def init_backend(arch: str) -> None:
    """Initialize the Taichi runtime; must run before any field module is imported."""
    ti.init(arch=ti.gpu if arch == "gpu" else ti.cpu)


def settings_from_args(args: argparse.Namespace) -> RenderSettings:
    return RenderSettings(
        max_depth=args.max_depth,
        shading_model=args.shading_model,
        band_height=args.band_height,
        leaf_size=args.leaf_size,
        split_method=args.split_method,
    )


def _read_scene_text(path: str | None) -> str:
    if path is None:
        return sys.stdin.read()
    with open(path, encoding="utf-8") as handle:
        return handle.read()


def run(args: argparse.Namespace, settings: RenderSettings) -> None:
    """Parse, render and save one scene.

    Raises:
        OSError: If the scene file cannot be read.
        NFFParseError: If the scene is malformed.
        SceneError: If the parsed scene is invalid as a whole.
        RenderError: If the renderer cannot trace the scene.
        OutputError: If the image cannot be written.
    """
    # Lazy imports so Taichi is initialized before any fields are created
    from src.nfftrace.core.renderer import Renderer
    from src.nfftrace.output.export import save_image
    from src.nfftrace.scene.nff import load_scene

    text = _read_scene_text(args.input)
    scene = load_scene(text, settings)

    renderer = Renderer(scene, settings)
    show_progress = not args.quiet and sys.stderr.isatty()
    start_time = time.perf_counter()

    def progress_callback(rows_done: int, total_rows: int) -> None:
        elapsed = time.perf_counter() - start_time
        print(
            f"\r  Progress: {rows_done}/{total_rows} rows "
            f"({100.0 * rows_done / total_rows:.1f}%) - {elapsed:.1f}s",
            end="",
            file=sys.stderr,
            flush=True,
        )

    image = renderer.render(callback=progress_callback if show_progress else None)
    if show_progress:
        print(file=sys.stderr)

    save_image(image, args.output)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_USAGE

    configure_logging(quiet=args.quiet, verbose=args.verbose)

    try:
        settings = settings_from_args(args)
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return EXIT_USAGE

    init_backend(args.arch)

    try:
        run(args, settings)
    except (NFFParseError, SceneError) as exc:
        logger.error("Scene error: %s", exc)
        return EXIT_SCENE_ERROR
    except RenderError as exc:
        logger.error("Render error: %s", exc)
        return EXIT_RENDER_ERROR
    except (OutputError, OSError, UnicodeDecodeError) as exc:
        logger.error("I/O error: %s", exc)
        return EXIT_IO_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
