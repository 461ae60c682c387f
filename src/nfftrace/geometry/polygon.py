"""Convex polygon and polygon patch primitive.

Polygons have a variable number of vertices, so their corners live in shared
vertex fields owned by the scene tables. A Polygon value only records where
its vertices start, how many there are and the unit plane normal computed on
the host (Newell's method, so the normal follows the vertex winding).

Ray-polygon intersection uses the parametric plane test:
1. Find where the ray meets the plane containing the polygon. Rays parallel
   to the plane miss.
2. Check that the hit point lies on the inner side of every edge: the sign of
   cross(edge_k, P - v_k) . N must agree for all edges. This test is exact
   for convex polygons, which is why non-convex polygons are rejected when
   the scene is built.

Polygon patches carry one normal per vertex. The shading normal of a patch
is interpolated with barycentric weights over the fan of triangles
(v0, vk, vk+1); which side of the surface the ray came from is still decided
by the geometric plane normal.
"""

import taichi as ti
import taichi.math as tm

from src.nfftrace.core.ray import length_squared
from src.nfftrace.geometry.hit_record import HitRecord, make_miss_record

vec3 = tm.vec3

# Rays with |direction . normal| below this are parallel to the plane
_PARALLEL_EPSILON = 1e-8

# Slack allowed on the inner side test for points on an edge
_EDGE_TOLERANCE = 1e-6

# Slack allowed on barycentric weights when locating the fan triangle
_BARYCENTRIC_TOLERANCE = 1e-4


@ti.dataclass
class Polygon:
    """A planar convex polygon stored as a slice of the vertex fields.

    Attributes:
        first: Index of the first vertex in the vertex fields.
        count: Number of vertices (>= 3).
        normal: Unit plane normal following the vertex winding.
        smooth: 1 for polygon patches with per-vertex normals, 0 otherwise.
    """

    first: ti.i32
    count: ti.i32
    normal: vec3
    smooth: ti.i32


@ti.func
def _interpolate_normal(
    point: vec3,
    polygon: Polygon,
    vertices: ti.template(),
    vertex_normals: ti.template(),
) -> vec3:
    """Barycentric interpolation of vertex normals over the vertex fan."""
    shading = polygon.normal
    found = 0
    v0 = vertices[polygon.first]
    n0 = vertex_normals[polygon.first]
    for k in range(1, polygon.count - 1):
        if found == 0:
            v1 = vertices[polygon.first + k]
            v2 = vertices[polygon.first + k + 1]
            area = tm.dot(tm.cross(v1 - v0, v2 - v0), polygon.normal)
            if ti.abs(area) > 1e-20:
                w0 = tm.dot(tm.cross(v2 - v1, point - v1), polygon.normal) / area
                w1 = tm.dot(tm.cross(v0 - v2, point - v2), polygon.normal) / area
                w2 = 1.0 - w0 - w1
                if (
                    w0 >= -_BARYCENTRIC_TOLERANCE
                    and w1 >= -_BARYCENTRIC_TOLERANCE
                    and w2 >= -_BARYCENTRIC_TOLERANCE
                ):
                    blended = (
                        w0 * n0
                        + w1 * vertex_normals[polygon.first + k]
                        + w2 * vertex_normals[polygon.first + k + 1]
                    )
                    if length_squared(blended) > 1e-20:
                        shading = tm.normalize(blended)
                    found = 1
    return shading


@ti.func
def hit_polygon(
    ray_origin: vec3,
    ray_direction: vec3,
    polygon: Polygon,
    vertices: ti.template(),
    vertex_normals: ti.template(),
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray intersection with a convex polygon.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        polygon: The polygon to test intersection against.
        vertices: Vector field holding every polygon vertex in the scene.
        vertex_normals: Vector field holding per-vertex normals (patches).
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord with the normal facing the ray origin, or a miss record.
    """
    result = make_miss_record()
    normal = polygon.normal
    denom = tm.dot(ray_direction, normal)

    if ti.abs(denom) > _PARALLEL_EPSILON:
        v0 = vertices[polygon.first]
        t = tm.dot(v0 - ray_origin, normal) / denom

        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction

            inside = 1
            for k in range(polygon.count):
                a = vertices[polygon.first + k]
                b = vertices[polygon.first + (k + 1) % polygon.count]
                if tm.dot(tm.cross(b - a, point - a), normal) < -_EDGE_TOLERANCE:
                    inside = 0

            if inside == 1:
                # The geometric normal decides which side the ray came from
                front_face = 1
                side = 1.0
                if denom > 0.0:
                    front_face = 0
                    side = -1.0

                shading = normal
                if polygon.smooth == 1:
                    shading = _interpolate_normal(point, polygon, vertices, vertex_normals)
                shading = side * shading
                if tm.dot(shading, ray_direction) > 0.0:
                    # Interpolated normal points away from the viewer
                    shading = side * normal

                result = HitRecord(
                    hit=1,
                    t=t,
                    point=point,
                    normal=shading,
                    front_face=front_face,
                    material_id=-1,
                    primitive_id=-1,
                )

    return result
