"""Neutral File Format (NFF) scene parser.

NFF is a line-oriented text format. Each directive starts a line; some
directives consume a fixed number of following lines:

    v                         viewpoint block, followed by the lines
        from x y z              eye position
        at x y z                look-at point
        up x y z                up vector
        angle deg               vertical field of view
        hither d                near clipping distance (optional)
        resolution w h          image size in pixels
    b r g b                   background color
    l x y z [r g b]           point light (white unless a color is given)
    f r g b Kd Ks shine T ior material for the primitives that follow
                              (a ninth value after the color is Ka)
    s cx cy cz r              sphere
    c                         cone, followed by the lines
        bx by bz br             base center and radius
        ax ay az ar             apex center and radius
    p n                       polygon, followed by n lines "x y z"
    pp n                      polygon patch, followed by n lines "x y z nx ny nz"

Lines starting with ``#`` and blank lines are ignored. Every problem is
reported as an NFFParseError naming the directive and line; nothing is
rendered from a scene that fails to parse.

Example:
    >>> from src.nfftrace.scene.nff import parse_nff
    >>> manager = parse_nff(open("scene.nff"))
    >>> scene = manager.build()
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import TextIO

from src.nfftrace.camera.view import View
from src.nfftrace.core.settings import RenderSettings
from src.nfftrace.errors import NFFParseError, SceneError
from src.nfftrace.materials.phong import Material
from src.nfftrace.scene.manager import Scene, SceneManager

logger = logging.getLogger(__name__)

_VIEW_KEYWORDS = ("from", "at", "up", "angle", "hither", "resolution")
_REQUIRED_VIEW_KEYWORDS = ("from", "at", "up", "angle", "resolution")


class _NFFReader:
    """Walks the lines of one NFF document, tracking line numbers."""

    def __init__(self, lines: Iterator[str]) -> None:
        self._lines = lines
        self._pushed_back: tuple[int, list[str]] | None = None
        self.line_number = 0
        self.manager = SceneManager()
        self.current_material: int | None = None
        self._handlers = {
            "v": self._parse_view,
            "b": self._parse_background,
            "l": self._parse_light,
            "f": self._parse_material,
            "s": self._parse_sphere,
            "c": self._parse_cone,
            "p": self._parse_polygon,
            "pp": self._parse_polygon_patch,
        }

    # =========================================================================
    # Line handling
    # =========================================================================

    def _next_tokens(self) -> tuple[int, list[str]] | None:
        """Next non-blank, non-comment line as (line_number, tokens)."""
        if self._pushed_back is not None:
            pending, self._pushed_back = self._pushed_back, None
            return pending
        for line in self._lines:
            self.line_number += 1
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            return self.line_number, stripped.split()
        return None

    def _push_back(self, entry: tuple[int, list[str]]) -> None:
        self._pushed_back = entry

    def _require_line(self, directive: str, what: str) -> tuple[int, list[str]]:
        entry = self._next_tokens()
        if entry is None:
            raise NFFParseError(
                directive, f"unexpected end of input, expected {what}", self.line_number
            )
        return entry

    @staticmethod
    def _floats(directive: str, tokens: list[str], count: int, line_number: int) -> list[float]:
        if len(tokens) != count:
            raise NFFParseError(
                directive, f"expected {count} values, got {len(tokens)}", line_number
            )
        try:
            return [float(token) for token in tokens]
        except ValueError as exc:
            raise NFFParseError(directive, f"invalid number: {exc}", line_number) from exc

    @staticmethod
    def _count(directive: str, tokens: list[str], line_number: int) -> int:
        if len(tokens) != 1:
            raise NFFParseError(directive, "expected a vertex count", line_number)
        try:
            count = int(tokens[0])
        except ValueError as exc:
            raise NFFParseError(
                directive, f"invalid vertex count {tokens[0]!r}", line_number
            ) from exc
        if count < 3:
            raise NFFParseError(directive, f"insufficient vertex count {count}", line_number)
        return count

    # =========================================================================
    # Directives
    # =========================================================================

    def parse(self) -> SceneManager:
        while True:
            entry = self._next_tokens()
            if entry is None:
                break
            line_number, tokens = entry
            directive, args = tokens[0], tokens[1:]
            handler = self._handlers.get(directive)
            if handler is None:
                raise NFFParseError(directive, "unknown directive", line_number)
            try:
                handler(args, line_number)
            except NFFParseError:
                raise
            except SceneError as exc:
                raise NFFParseError(directive, str(exc), line_number) from exc

        if self.manager.view is None:
            raise NFFParseError("v", "missing view block")
        return self.manager

    def _parse_view(self, args: list[str], line_number: int) -> None:
        if args:
            raise NFFParseError("v", "takes no arguments", line_number)

        values: dict[str, list[float]] = {}
        while True:
            entry = self._next_tokens()
            if entry is None:
                break
            keyword = entry[1][0]
            if keyword not in _VIEW_KEYWORDS:
                self._push_back(entry)
                break
            sub_line, tokens = entry
            if keyword == "resolution":
                if len(tokens) != 3:
                    raise NFFParseError("v", "resolution needs width and height", sub_line)
                try:
                    values[keyword] = [int(tokens[1]), int(tokens[2])]
                except ValueError as exc:
                    raise NFFParseError("v", f"invalid resolution: {exc}", sub_line) from exc
            else:
                count = 3 if keyword in ("from", "at", "up") else 1
                values[keyword] = self._floats("v", tokens[1:], count, sub_line)

        missing = [k for k in _REQUIRED_VIEW_KEYWORDS if k not in values]
        if missing:
            raise NFFParseError("v", f"missing {', '.join(missing)} in view block", line_number)

        self.manager.set_view(
            View(
                eye=tuple(values["from"]),
                lookat=tuple(values["at"]),
                up=tuple(values["up"]),
                fov=values["angle"][0],
                width=values["resolution"][0],
                height=values["resolution"][1],
                hither=values.get("hither", [0.0])[0],
            )
        )

    def _parse_background(self, args: list[str], line_number: int) -> None:
        self.manager.set_background(self._floats("b", args, 3, line_number))

    def _parse_light(self, args: list[str], line_number: int) -> None:
        if len(args) not in (3, 6):
            raise NFFParseError("l", f"expected 3 or 6 values, got {len(args)}", line_number)
        values = self._floats("l", args, len(args), line_number)
        if len(values) == 6:
            self.manager.add_light(values[:3], values[3:])
        else:
            self.manager.add_light(values)

    def _parse_material(self, args: list[str], line_number: int) -> None:
        if len(args) not in (8, 9):
            raise NFFParseError("f", f"expected 8 or 9 values, got {len(args)}", line_number)
        material = Material.from_nff(self._floats("f", args, len(args), line_number))
        self.current_material = self.manager.add_material(material)

    def _material_for(self, directive: str, line_number: int) -> int:
        if self.current_material is None:
            raise NFFParseError(
                directive, "primitive defined before any material ('f')", line_number
            )
        return self.current_material

    def _parse_sphere(self, args: list[str], line_number: int) -> None:
        material_id = self._material_for("s", line_number)
        cx, cy, cz, r = self._floats("s", args, 4, line_number)
        self.manager.add_sphere((cx, cy, cz), r, material_id)

    def _parse_cone(self, args: list[str], line_number: int) -> None:
        if args:
            raise NFFParseError("c", "takes no arguments", line_number)
        material_id = self._material_for("c", line_number)
        base_line, base_tokens = self._require_line("c", "base center and radius")
        bx, by, bz, br = self._floats("c", base_tokens, 4, base_line)
        apex_line, apex_tokens = self._require_line("c", "apex center and radius")
        ax, ay, az, ar = self._floats("c", apex_tokens, 4, apex_line)
        self.manager.add_cone((bx, by, bz), br, (ax, ay, az), ar, material_id)

    def _parse_polygon(self, args: list[str], line_number: int) -> None:
        material_id = self._material_for("p", line_number)
        count = self._count("p", args, line_number)
        points = []
        for _ in range(count):
            vertex_line, tokens = self._require_line("p", "a polygon vertex")
            points.append(tuple(self._floats("p", tokens, 3, vertex_line)))
        self.manager.add_polygon(points, material_id)

    def _parse_polygon_patch(self, args: list[str], line_number: int) -> None:
        material_id = self._material_for("pp", line_number)
        count = self._count("pp", args, line_number)
        points = []
        normals = []
        for _ in range(count):
            vertex_line, tokens = self._require_line("pp", "a polygon patch vertex")
            values = self._floats("pp", tokens, 6, vertex_line)
            points.append(tuple(values[:3]))
            normals.append(tuple(values[3:]))
        self.manager.add_polygon(points, material_id, normals)


def parse_nff(source: str | TextIO) -> SceneManager:
    """Parse an NFF document into a SceneManager.

    Args:
        source: The document text or a readable text stream.

    Returns:
        A SceneManager holding the parsed scene, ready to build.

    Raises:
        NFFParseError: If any directive is malformed or unknown, a primitive
            has degenerate geometry, or the view block is missing.
    """
    stream = io.StringIO(source) if isinstance(source, str) else source
    reader = _NFFReader(iter(stream))
    manager = reader.parse()
    logger.debug(
        "Parsed %d lines: %d primitives, %d lights, %d materials",
        reader.line_number,
        len(manager.primitives),
        len(manager.lights),
        len(manager.materials),
    )
    return manager


def load_scene(source: str | TextIO, settings: RenderSettings | None = None) -> Scene:
    """Parse an NFF document and build the Scene.

    Args:
        source: The document text or a readable text stream.
        settings: Controls how the BVH is built.

    Returns:
        The immutable Scene.
    """
    return parse_nff(source).build(settings)
