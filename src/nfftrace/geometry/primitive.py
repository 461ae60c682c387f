"""Host-side primitive descriptions.

The set of primitives is closed: a ``Primitive`` is exactly one of
``SpherePrimitive``, ``ConePrimitive`` (which also represents cylinders) or
``PolygonPrimitive``. Every variant

- validates its geometry when constructed and raises ``GeometryError`` for
  degenerate input (zero radius, coincident cone ends, fewer than three
  polygon vertices, non-planar or non-convex polygons),
- reports its ``PrimitiveKind`` so the device tables can dispatch on it,
- exposes ``bounding_box()``, a box that contains every point the device
  intersection routine can report.

These values are immutable; the scene tables in ``scene/intersection.py``
copy them into Taichi fields once the scene is built.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Union

import numpy as np
import numpy.typing as npt

from src.nfftrace.errors import GeometryError
from src.nfftrace.geometry.aabb import AABB, Vec3Tuple

# Flat polygons get zero-thickness boxes; pad them so slab tests stay robust
BOX_PADDING = 1e-4

# Relative tolerance for the planarity and convexity checks
PLANARITY_TOLERANCE = 1e-4


class PrimitiveKind(IntEnum):
    """Enumeration of primitive variants, used for dispatch in kernels."""

    SPHERE = 0
    CONE = 1
    CYLINDER = 2
    POLYGON = 3


def _as_vec3(values: Sequence[float], what: str) -> Vec3Tuple:
    if len(values) != 3:
        raise GeometryError(f"{what} must have 3 components, got {len(values)}")
    v = np.asarray(values, dtype=np.float64)
    if not np.all(np.isfinite(v)):
        raise GeometryError(f"{what} has non-finite components: {tuple(v.tolist())}")
    return _to_tuple(v)


def _to_tuple(v: npt.NDArray[np.float64]) -> Vec3Tuple:
    x, y, z = v.tolist()
    return (x, y, z)


def _normalized(v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    return v / np.linalg.norm(v)


@dataclass(frozen=True)
class SpherePrimitive:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center of the sphere.
        radius: The radius of the sphere (must be positive).
        material_id: Index of the material in the scene's material table.
    """

    center: Vec3Tuple
    radius: float
    material_id: int = 0

    kind: ClassVar[PrimitiveKind] = PrimitiveKind.SPHERE

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _as_vec3(self.center, "Sphere center"))
        radius = float(self.radius)
        if not math.isfinite(radius) or radius <= 0.0:
            raise GeometryError(f"Sphere radius must be positive, got {self.radius}")
        object.__setattr__(self, "radius", radius)

    def bounding_box(self) -> AABB:
        r = self.radius
        cx, cy, cz = self.center
        return AABB((cx - r, cy - r, cz - r), (cx + r, cy + r, cz + r))


@dataclass(frozen=True)
class ConePrimitive:
    """A capped cone, frustum or cylinder.

    Attributes:
        base: Center of the base disk.
        base_radius: Radius at the base (>= 0).
        apex: Center of the apex disk.
        apex_radius: Radius at the apex (>= 0).
        material_id: Index of the material in the scene's material table.
    """

    base: Vec3Tuple
    base_radius: float
    apex: Vec3Tuple
    apex_radius: float
    material_id: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", _as_vec3(self.base, "Cone base"))
        object.__setattr__(self, "apex", _as_vec3(self.apex, "Cone apex"))
        base_radius = float(self.base_radius)
        apex_radius = float(self.apex_radius)
        if not (math.isfinite(base_radius) and math.isfinite(apex_radius)):
            raise GeometryError("Cone radii must be finite")
        if base_radius < 0.0 or apex_radius < 0.0:
            raise GeometryError(
                f"Cone radii must be non-negative, got {base_radius} and {apex_radius}"
            )
        if base_radius == 0.0 and apex_radius == 0.0:
            raise GeometryError("Cone must have at least one positive radius")
        if np.linalg.norm(np.subtract(self.apex, self.base)) <= 1e-9:
            raise GeometryError("Cone apex and base centers coincide (zero-length axis)")
        object.__setattr__(self, "base_radius", base_radius)
        object.__setattr__(self, "apex_radius", apex_radius)

    @property
    def kind(self) -> PrimitiveKind:
        if math.isclose(self.base_radius, self.apex_radius):
            return PrimitiveKind.CYLINDER
        return PrimitiveKind.CONE

    @property
    def height(self) -> float:
        return float(np.linalg.norm(np.subtract(self.apex, self.base)))

    @property
    def axis(self) -> Vec3Tuple:
        return _to_tuple(_normalized(np.subtract(self.apex, self.base)))

    def bounding_box(self) -> AABB:
        # The solid is the convex hull of its two end disks. A disk of radius r
        # with unit normal w extends r * sqrt(1 - w_i^2) along axis i.
        w = np.asarray(self.axis)
        spread = np.sqrt(np.maximum(0.0, 1.0 - w * w))
        centers = np.array([self.base, self.apex])
        reach = np.outer([self.base_radius, self.apex_radius], spread)
        return AABB.from_points(np.vstack([centers - reach, centers + reach])).padded(
            BOX_PADDING
        )


def make_cylinder(
    base: Sequence[float], apex: Sequence[float], radius: float, material_id: int = 0
) -> ConePrimitive:
    """Create a cylinder as a cone with equal end radii."""
    return ConePrimitive(
        base=_as_vec3(base, "Cylinder base"),
        base_radius=radius,
        apex=_as_vec3(apex, "Cylinder apex"),
        apex_radius=radius,
        material_id=material_id,
    )


def newell_normal(vertices: Sequence[Vec3Tuple]) -> Vec3Tuple:
    """Polygon normal by Newell's method (length is twice the polygon area)."""
    current = np.asarray(vertices, dtype=np.float64)
    following = np.roll(current, -1, axis=0)
    # Newell's per-axis sums telescope to the sum of consecutive cross products
    return _to_tuple(np.cross(current, following).sum(axis=0))


@dataclass(frozen=True)
class PolygonPrimitive:
    """A planar convex polygon, optionally with per-vertex normals.

    Attributes:
        vertices: The corners in order (at least three).
        material_id: Index of the material in the scene's material table.
        vertex_normals: One normal per vertex for smooth-shaded polygon
            patches, or None for flat polygons.
    """

    vertices: tuple[Vec3Tuple, ...]
    material_id: int = 0
    vertex_normals: tuple[Vec3Tuple, ...] | None = None
    normal: Vec3Tuple = field(init=False)

    kind: ClassVar[PrimitiveKind] = PrimitiveKind.POLYGON

    def __post_init__(self) -> None:
        vertices = tuple(_as_vec3(v, "Polygon vertex") for v in self.vertices)
        if len(vertices) < 3:
            raise GeometryError(f"Polygon needs at least 3 vertices, got {len(vertices)}")
        object.__setattr__(self, "vertices", vertices)

        points = np.asarray(vertices, dtype=np.float64)
        raw_normal = np.asarray(newell_normal(vertices))
        area2 = np.linalg.norm(raw_normal)
        scale = max(float(np.ptp(points, axis=0).max()), 1e-12)
        if area2 <= 1e-12 * scale * scale:
            raise GeometryError("Polygon is degenerate (zero area or collinear vertices)")
        normal = _normalized(raw_normal)
        object.__setattr__(self, "normal", _to_tuple(normal))

        offsets = np.abs((points[1:] - points[0]) @ normal)
        if np.any(offsets > PLANARITY_TOLERANCE * max(scale, 1.0)):
            raise GeometryError("Polygon vertices are not coplanar")

        self._check_convex(points, normal)

        if self.vertex_normals is not None:
            normals = tuple(_as_vec3(n, "Polygon vertex normal") for n in self.vertex_normals)
            if len(normals) != len(vertices):
                raise GeometryError(
                    f"Polygon patch has {len(vertices)} vertices but {len(normals)} normals"
                )
            normal_array = np.asarray(normals, dtype=np.float64)
            lengths = np.linalg.norm(normal_array, axis=1)
            if np.any(lengths <= 1e-12):
                raise GeometryError("Polygon patch has a zero-length vertex normal")
            unit = normal_array / lengths[:, np.newaxis]
            object.__setattr__(self, "vertex_normals", tuple(_to_tuple(n) for n in unit))

    @staticmethod
    def _check_convex(
        points: npt.NDArray[np.float64], normal: npt.NDArray[np.float64]
    ) -> None:
        edges = np.roll(points, -1, axis=0) - points
        following = np.roll(edges, -1, axis=0)
        turns = np.cross(edges, following) @ normal
        lengths = np.linalg.norm(edges, axis=1) * np.linalg.norm(following, axis=1)
        if np.any(turns < -PLANARITY_TOLERANCE * lengths):
            raise GeometryError("Polygon is not convex")
        total_turn = np.arctan2(turns, np.einsum("ij,ij->i", edges, following)).sum()
        # A star polygon turns the same way at every corner but winds twice
        if abs(total_turn - 2.0 * np.pi) > 1e-3:
            raise GeometryError("Polygon is self-intersecting")

    @property
    def smooth(self) -> bool:
        return self.vertex_normals is not None

    def bounding_box(self) -> AABB:
        return AABB.from_points(self.vertices).padded(BOX_PADDING)


Primitive = Union[SpherePrimitive, ConePrimitive, PolygonPrimitive]
