"""Axis-aligned bounding boxes.

Boxes exist on both sides of the host/device boundary:

- ``AABB`` is an immutable host-side value used while building the scene and
  the bounding volume hierarchy. It also offers a numpy slab test so tests can
  check the "box is a superset of the primitive" property without launching a
  kernel.
- ``hit_aabb`` is the Taichi slab test used during traversal. It returns the
  parametric entry distance so the traversal can visit children front to back.

The slab test treats the box as the intersection of three slabs. The ray
crosses each slab at a near and a far plane; the box is missed when the
nearest far crossing comes before the farthest near crossing. A direction
component of zero means the ray never crosses that slab, so it must already
lie between the two planes.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

Vec3Tuple = tuple[float, float, float]


def _vec(values: Iterable[float]) -> Vec3Tuple:
    x, y, z = np.asarray(values, dtype=np.float64).reshape(3)
    return (float(x), float(y), float(z))


# Direction components below this magnitude are treated as parallel to a slab
PARALLEL_EPSILON = 1e-12


@dataclass(frozen=True)
class AABB:
    """An axis-aligned box given by its minimum and maximum corners.

    Attributes:
        minimum: The (x, y, z) corner with the smallest coordinates.
        maximum: The (x, y, z) corner with the largest coordinates.
    """

    minimum: Vec3Tuple
    maximum: Vec3Tuple

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "AABB":
        """Build the smallest box containing all points."""
        pts = np.asarray(list(points), dtype=np.float64)
        if pts.size == 0:
            raise ValueError("Cannot build a bounding box from zero points")
        pts = pts.reshape(-1, 3)
        return cls(_vec(pts.min(axis=0)), _vec(pts.max(axis=0)))

    def as_arrays(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """The corners as float64 arrays."""
        return (
            np.asarray(self.minimum, dtype=np.float64),
            np.asarray(self.maximum, dtype=np.float64),
        )

    def union(self, other: "AABB") -> "AABB":
        """Return the smallest box containing both boxes."""
        lo_a, hi_a = self.as_arrays()
        lo_b, hi_b = other.as_arrays()
        return AABB(_vec(np.minimum(lo_a, lo_b)), _vec(np.maximum(hi_a, hi_b)))

    def padded(self, amount: float) -> "AABB":
        """Return the box grown by amount on every side."""
        lo, hi = self.as_arrays()
        return AABB(_vec(lo - amount), _vec(hi + amount))

    @property
    def extent(self) -> Vec3Tuple:
        lo, hi = self.as_arrays()
        return _vec(hi - lo)

    @property
    def centroid(self) -> Vec3Tuple:
        lo, hi = self.as_arrays()
        return _vec(0.5 * (lo + hi))

    def surface_area(self) -> float:
        dx, dy, dz = self.extent
        return 2.0 * (dx * dy + dy * dz + dx * dz)

    def largest_axis(self) -> int:
        """Index of the axis with the greatest extent (ties favour x, then y)."""
        return int(np.argmax(self.extent))

    def contains_point(self, point: Sequence[float], tolerance: float = 0.0) -> bool:
        lo, hi = self.as_arrays()
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= lo - tolerance) and np.all(p <= hi + tolerance))

    def intersect_ray(
        self,
        origin: Sequence[float],
        direction: Sequence[float],
        t_min: float = 0.0,
        t_max: float = math.inf,
    ) -> tuple[bool, float]:
        """Host-side slab test.

        Args:
            origin: Ray origin.
            direction: Ray direction (need not be normalized).
            t_min: Start of the valid parametric interval.
            t_max: End of the valid parametric interval.

        Returns:
            Tuple (hit, t_enter) where t_enter is the distance at which the ray
            enters the box, clipped to t_min.
        """
        lo, hi = self.as_arrays()
        o = np.asarray(origin, dtype=np.float64)
        d = np.asarray(direction, dtype=np.float64)

        parallel = np.abs(d) < PARALLEL_EPSILON
        if np.any(parallel & ((o < lo) | (o > hi))):
            return False, float(t_min)

        crossing = ~parallel
        safe_d = np.where(crossing, d, 1.0)
        ta = (lo - o) / safe_d
        tb = (hi - o) / safe_d
        t_near = float(np.max(np.append(np.minimum(ta, tb)[crossing], t_min)))
        t_far = float(np.min(np.append(np.maximum(ta, tb)[crossing], t_max)))
        return t_far >= t_near, t_near


@ti.func
def hit_aabb(
    box_min: vec3,
    box_max: vec3,
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Slab test of a ray against an axis-aligned box.

    Args:
        box_min: Minimum corner of the box.
        box_max: Maximum corner of the box.
        ray_origin: The starting point of the ray.
        ray_direction: The direction of the ray.
        t_min: Start of the valid parametric interval.
        t_max: End of the valid parametric interval.

    Returns:
        Tuple (hit, t_enter): hit is 1 when the ray overlaps the box inside
        [t_min, t_max]; t_enter is the entry distance clipped to t_min.
    """
    t_near = t_min
    t_far = t_max
    hit = 1

    # No early return in Taichi functions: test all three axes
    for axis in ti.static(range(3)):
        d = ray_direction[axis]
        if ti.abs(d) < PARALLEL_EPSILON:
            if ray_origin[axis] < box_min[axis] or ray_origin[axis] > box_max[axis]:
                hit = 0
        else:
            inv_d = 1.0 / d
            ta = (box_min[axis] - ray_origin[axis]) * inv_d
            tb = (box_max[axis] - ray_origin[axis]) * inv_d
            t_near = ti.max(ti.min(ta, tb), t_near)
            t_far = ti.min(ti.max(ta, tb), t_far)

    if t_far < t_near:
        hit = 0

    return hit, t_near
