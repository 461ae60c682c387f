"""Hit record shared by every intersection routine.

A HitRecord is only meaningful when ``hit == 1``. Geometry routines fill in
the geometric fields and leave ``material_id`` and ``primitive_id`` at -1;
the scene-level queries stamp them with the hit primitive's identity.
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.dataclass
class HitRecord:
    """Record of a ray-primitive intersection.

    Attributes:
        hit: Whether the ray intersected the primitive (1 if hit, 0 if miss).
        t: The parameter value along the ray where intersection occurred.
        point: The world-space intersection point.
        normal: Unit surface normal, flipped to face the ray origin's side.
        front_face: 1 when the ray arrived from the outward side of the
            surface, 0 when it arrived from inside (or from the back of a
            polygon).
        material_id: Material of the hit primitive (-1 until resolved).
        primitive_id: Scene index of the hit primitive (-1 until resolved).
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    material_id: ti.i32
    primitive_id: ti.i32


@ti.func
def make_miss_record() -> HitRecord:
    """Create a HitRecord indicating no intersection."""
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        material_id=-1,
        primitive_id=-1,
    )


@ti.func
def make_hit_record(t: ti.f32, point: vec3, outward_normal: vec3, ray_direction: vec3) -> HitRecord:
    """Create a HitRecord, orienting the outward normal against the ray.

    Args:
        t: Parametric hit distance.
        point: Hit point.
        outward_normal: Unit normal pointing out of the surface.
        ray_direction: Direction of the incoming ray.

    Returns:
        A HitRecord whose normal faces the ray origin.
    """
    front_face = 1
    normal = outward_normal
    if tm.dot(ray_direction, outward_normal) > 0.0:
        front_face = 0
        normal = -outward_normal
    return HitRecord(
        hit=1,
        t=t,
        point=point,
        normal=normal,
        front_face=front_face,
        material_id=-1,
        primitive_id=-1,
    )
