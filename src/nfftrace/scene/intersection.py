"""Scene-level ray queries.

``nearest_hit`` and ``any_hit`` walk the uploaded BVH with an explicit stack,
since Taichi functions cannot recurse. The nearest-hit traversal

1. slab-tests the root box and pushes it with its entry distance,
2. pops a node and skips it when its entry distance is beyond the best hit
   found so far,
3. at a leaf, tests every member primitive and shrinks the search interval
   on each hit,
4. at an interior node, slab-tests both children and pushes the farther one
   first so the nearer subtree is explored first.

``any_hit`` is the same walk without ordering; it stops at the first
primitive that blocks the ray, which is all a shadow ray needs to know.

``intersect_scene_linear`` tests every primitive in turn and is kept as a
reference for the BVH queries.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.nfftrace.scene.intersection import query_nearest
    >>> # after upload_scene(scene)
    >>> hit, t, normal, prim_id, mat_id = query_nearest((0, 0, 5), (0, 0, -1), 1e-4, 1e10)
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from src.nfftrace.core.settings import BVH_STACK_SIZE
from src.nfftrace.geometry.aabb import hit_aabb
from src.nfftrace.geometry.cone import Cone, hit_cone
from src.nfftrace.geometry.hit_record import HitRecord, make_miss_record
from src.nfftrace.geometry.polygon import Polygon, hit_polygon
from src.nfftrace.geometry.primitive import PrimitiveKind
from src.nfftrace.geometry.sphere import Sphere, hit_sphere
from src.nfftrace.scene.tables import (
    bvh_box_max,
    bvh_box_min,
    bvh_counts,
    bvh_first,
    bvh_left,
    bvh_prim_indices,
    bvh_right,
    cone_apex_radii,
    cone_axes,
    cone_base_radii,
    cone_bases,
    cone_heights,
    num_bvh_nodes,
    num_primitives,
    polygon_counts,
    polygon_first,
    polygon_normals,
    polygon_smooth,
    prim_kinds,
    prim_local_indices,
    prim_material_ids,
    sphere_centers,
    sphere_radii,
    vertex_normals,
    vertices,
)

vec3 = tm.vec3

_SPHERE = int(PrimitiveKind.SPHERE)
_CONE = int(PrimitiveKind.CONE)
_CYLINDER = int(PrimitiveKind.CYLINDER)
_POLYGON = int(PrimitiveKind.POLYGON)


@ti.func
def hit_primitive(
    prim_id: ti.i32,
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Intersect one scene primitive, dispatching on its kind.

    Args:
        prim_id: Primitive id (index into the primitive index table).
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord stamped with the primitive id and material id, or a miss.
    """
    kind = prim_kinds[prim_id]
    local = prim_local_indices[prim_id]
    rec = make_miss_record()

    if kind == _SPHERE:
        sphere = Sphere(center=sphere_centers[local], radius=sphere_radii[local])
        rec = hit_sphere(ray_origin, ray_direction, sphere, t_min, t_max)
    elif kind == _CONE or kind == _CYLINDER:
        cone = Cone(
            base=cone_bases[local],
            axis=cone_axes[local],
            height=cone_heights[local],
            base_radius=cone_base_radii[local],
            apex_radius=cone_apex_radii[local],
        )
        rec = hit_cone(ray_origin, ray_direction, cone, t_min, t_max)
    elif kind == _POLYGON:
        polygon = Polygon(
            first=polygon_first[local],
            count=polygon_counts[local],
            normal=polygon_normals[local],
            smooth=polygon_smooth[local],
        )
        rec = hit_polygon(
            ray_origin, ray_direction, polygon, vertices, vertex_normals, t_min, t_max
        )

    if rec.hit == 1:
        rec.material_id = prim_material_ids[prim_id]
        rec.primitive_id = prim_id
    return rec


@ti.func
def intersect_scene_linear(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Closest hit by testing every primitive (no acceleration structure)."""
    closest_t = t_max
    result = make_miss_record()
    for prim_id in range(num_primitives[None]):
        rec = hit_primitive(prim_id, ray_origin, ray_direction, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = rec
    return result


@ti.func
def nearest_hit(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Closest hit along a ray using the BVH.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord for the closest intersection, or a miss record.
    """
    result = make_miss_record()
    closest_t = t_max

    if num_bvh_nodes[None] > 0:
        root_hit, root_t = hit_aabb(
            bvh_box_min[0], bvh_box_max[0], ray_origin, ray_direction, t_min, closest_t
        )
        if root_hit == 1:
            stack_nodes = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
            stack_t = ti.Vector([0.0 for _ in range(BVH_STACK_SIZE)], dt=ti.f32)
            stack_nodes[0] = 0
            stack_t[0] = root_t
            stack_ptr = 1

            while stack_ptr > 0:
                stack_ptr -= 1
                node = stack_nodes[stack_ptr]
                entry_t = stack_t[stack_ptr]

                # Anything in this box lies beyond the best hit so far
                if entry_t > closest_t:
                    continue

                left = bvh_left[node]
                if left < 0:
                    first = bvh_first[node]
                    for k in range(bvh_counts[node]):
                        prim_id = bvh_prim_indices[first + k]
                        rec = hit_primitive(prim_id, ray_origin, ray_direction, t_min, closest_t)
                        if rec.hit == 1:
                            closest_t = rec.t
                            result = rec
                else:
                    right = bvh_right[node]
                    hit_l, t_l = hit_aabb(
                        bvh_box_min[left],
                        bvh_box_max[left],
                        ray_origin,
                        ray_direction,
                        t_min,
                        closest_t,
                    )
                    hit_r, t_r = hit_aabb(
                        bvh_box_min[right],
                        bvh_box_max[right],
                        ray_origin,
                        ray_direction,
                        t_min,
                        closest_t,
                    )

                    if hit_l == 1 and hit_r == 1:
                        near_node = left
                        near_t = t_l
                        far_node = right
                        far_t = t_r
                        if t_r < t_l:
                            near_node = right
                            near_t = t_r
                            far_node = left
                            far_t = t_l
                        # Farther child first so the nearer one is popped next
                        if stack_ptr + 2 <= BVH_STACK_SIZE:
                            stack_nodes[stack_ptr] = far_node
                            stack_t[stack_ptr] = far_t
                            stack_nodes[stack_ptr + 1] = near_node
                            stack_t[stack_ptr + 1] = near_t
                            stack_ptr += 2
                    elif hit_l == 1 and stack_ptr < BVH_STACK_SIZE:
                        stack_nodes[stack_ptr] = left
                        stack_t[stack_ptr] = t_l
                        stack_ptr += 1
                    elif hit_r == 1 and stack_ptr < BVH_STACK_SIZE:
                        stack_nodes[stack_ptr] = right
                        stack_t[stack_ptr] = t_r
                        stack_ptr += 1

    return result


@ti.func
def any_hit(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> ti.i32:
    """Test whether anything blocks a ray within [t_min, t_max].

    Returns:
        1 if any primitive was hit, 0 otherwise.
    """
    blocked = 0

    if num_bvh_nodes[None] > 0:
        root_hit, _root_t = hit_aabb(
            bvh_box_min[0], bvh_box_max[0], ray_origin, ray_direction, t_min, t_max
        )
        if root_hit == 1:
            stack_nodes = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
            stack_nodes[0] = 0
            stack_ptr = 1

            while stack_ptr > 0 and blocked == 0:
                stack_ptr -= 1
                node = stack_nodes[stack_ptr]
                left = bvh_left[node]
                if left < 0:
                    first = bvh_first[node]
                    for k in range(bvh_counts[node]):
                        if blocked == 0:
                            prim_id = bvh_prim_indices[first + k]
                            rec = hit_primitive(prim_id, ray_origin, ray_direction, t_min, t_max)
                            if rec.hit == 1:
                                blocked = 1
                else:
                    right = bvh_right[node]
                    hit_l, _t_l = hit_aabb(
                        bvh_box_min[left],
                        bvh_box_max[left],
                        ray_origin,
                        ray_direction,
                        t_min,
                        t_max,
                    )
                    hit_r, _t_r = hit_aabb(
                        bvh_box_min[right],
                        bvh_box_max[right],
                        ray_origin,
                        ray_direction,
                        t_min,
                        t_max,
                    )
                    if hit_r == 1 and stack_ptr < BVH_STACK_SIZE:
                        stack_nodes[stack_ptr] = right
                        stack_ptr += 1
                    if hit_l == 1 and stack_ptr < BVH_STACK_SIZE:
                        stack_nodes[stack_ptr] = left
                        stack_ptr += 1

    return blocked


# =============================================================================
# Host-callable queries (testing and debugging)
# =============================================================================

# Where the last query_nearest kernel stores its hit record
_query_result = HitRecord.field(shape=())


@ti.kernel
def _query_nearest_kernel(
    origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32, use_bvh: ti.i32
):
    rec = make_miss_record()
    if use_bvh == 1:
        rec = nearest_hit(origin, direction, t_min, t_max)
    else:
        rec = intersect_scene_linear(origin, direction, t_min, t_max)
    _query_result[None] = rec


@ti.kernel
def _query_any_kernel(origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> ti.i32:
    return any_hit(origin, direction, t_min, t_max)


def _normalized(direction) -> vec3:
    d = np.asarray(direction, dtype=np.float64)
    return vec3(*(d / np.linalg.norm(d)).tolist())


def query_nearest(origin, direction, t_min: float, t_max: float, use_bvh: bool = True):
    """Closest hit for a single ray, from Python.

    Args:
        origin: Ray origin (x, y, z).
        direction: Ray direction; normalized before tracing.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.
        use_bvh: Walk the BVH (True) or test every primitive (False).

    Returns:
        Tuple (hit, t, normal, primitive_id, material_id). hit is a bool and
        normal an (x, y, z) tuple; the other entries are only meaningful on
        a hit.
    """
    _query_nearest_kernel(vec3(*origin), _normalized(direction), t_min, t_max, int(use_bvh))
    normal = _query_result.normal[None]
    return (
        bool(_query_result.hit[None]),
        float(_query_result.t[None]),
        (float(normal[0]), float(normal[1]), float(normal[2])),
        int(_query_result.primitive_id[None]),
        int(_query_result.material_id[None]),
    )


def query_any(origin, direction, t_min: float, t_max: float) -> bool:
    """Whether anything blocks a single ray, from Python."""
    return bool(_query_any_kernel(vec3(*origin), _normalized(direction), t_min, t_max))
