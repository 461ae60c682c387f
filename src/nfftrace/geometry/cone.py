"""Generalized cone primitive (cone, frustum and cylinder).

A cone is described by a base center, an apex center and a radius at each
end. A cylinder has equal radii, a pointed cone has an apex radius of zero and
anything in between is a frustum. The axis and height are precomputed on the
host so the device routine only deals with unit vectors.

Along the axis the radius varies linearly:

    r(s) = base_radius + k * s,   k = (apex_radius - base_radius) / height

for the axial coordinate s in [0, height]. Writing the ray in terms of its
component along the axis (sa + t*sd) and perpendicular to it (q + t*e), the
lateral surface |perp|^2 = r(s)^2 becomes the quadratic

    a t^2 + 2 h t + c = 0
    a = e.e - (k sd)^2
    h = q.e - (base_radius + k sa)(k sd)
    c = q.q - (base_radius + k sa)^2

Roots are only kept when their axial coordinate lies inside [0, height]. Each
end with a positive radius is closed by a disk, so the solid is watertight
and refracted rays can leave it again.

The lateral normal is the gradient of |perp|^2 - r(s)^2, i.e.
perp - r(s) * k * axis.
"""

import taichi as ti
import taichi.math as tm

from src.nfftrace.core.ray import length_squared
from src.nfftrace.geometry.hit_record import HitRecord, make_hit_record, make_miss_record

vec3 = tm.vec3

# Coefficients below this magnitude are treated as zero
_COEFF_EPSILON = 1e-12


@ti.dataclass
class Cone:
    """A capped cone, frustum or cylinder.

    Attributes:
        base: Center of the base disk.
        axis: Unit vector from base toward apex.
        height: Distance from base to apex (positive).
        base_radius: Radius at the base (>= 0).
        apex_radius: Radius at the apex (>= 0).
    """

    base: vec3
    axis: vec3
    height: ti.f32
    base_radius: ti.f32
    apex_radius: ti.f32


@ti.func
def _hit_lateral(
    ray_origin: vec3,
    ray_direction: vec3,
    cone: Cone,
    t: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Validate one root of the lateral quadratic."""
    result = make_miss_record()
    if t > t_min and t < t_max:
        point = ray_origin + t * ray_direction
        s = tm.dot(point - cone.base, cone.axis)
        if s >= 0.0 and s <= cone.height:
            slope = (cone.apex_radius - cone.base_radius) / cone.height
            radius = cone.base_radius + slope * s
            radial = point - cone.base - s * cone.axis
            outward = radial - radius * slope * cone.axis
            if length_squared(outward) < 1e-20:
                # Pointed tip: use the axis
                outward = ti.select(slope < 0.0, 1.0, -1.0) * cone.axis
            result = make_hit_record(t, point, tm.normalize(outward), ray_direction)
    return result


@ti.func
def _hit_cap(
    ray_origin: vec3,
    ray_direction: vec3,
    center: vec3,
    outward: vec3,
    radius: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Intersect a ray with a capping disk."""
    result = make_miss_record()
    denom = tm.dot(ray_direction, outward)
    if radius > 0.0 and ti.abs(denom) > _COEFF_EPSILON:
        t = tm.dot(center - ray_origin, outward) / denom
        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction
            if length_squared(point - center) <= radius * radius:
                result = make_hit_record(t, point, outward, ray_direction)
    return result


@ti.func
def hit_cone(
    ray_origin: vec3,
    ray_direction: vec3,
    cone: Cone,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray intersection with a capped cone, frustum or cylinder.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        cone: The cone to test intersection against.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord for the nearest hit among the lateral surface and the
        caps, or a miss record.
    """
    result = make_miss_record()
    closest = t_max

    oc = ray_origin - cone.base
    sa = tm.dot(oc, cone.axis)
    sd = tm.dot(ray_direction, cone.axis)
    q = oc - sa * cone.axis
    e = ray_direction - sd * cone.axis

    slope = (cone.apex_radius - cone.base_radius) / cone.height
    m = cone.base_radius + slope * sa
    n = slope * sd

    a = tm.dot(e, e) - n * n
    h = tm.dot(q, e) - m * n
    c = tm.dot(q, q) - m * m

    if ti.abs(a) > _COEFF_EPSILON:
        discriminant = h * h - a * c
        if discriminant >= 0.0:
            sqrt_d = ti.sqrt(discriminant)
            root_a = (-h - sqrt_d) / a
            root_b = (-h + sqrt_d) / a
            t0 = ti.min(root_a, root_b)
            t1 = ti.max(root_a, root_b)
            rec0 = _hit_lateral(ray_origin, ray_direction, cone, t0, t_min, closest)
            if rec0.hit == 1:
                result = rec0
                closest = rec0.t
            rec1 = _hit_lateral(ray_origin, ray_direction, cone, t1, t_min, closest)
            if rec1.hit == 1:
                result = rec1
                closest = rec1.t
    elif ti.abs(h) > _COEFF_EPSILON:
        # Ray parallel to a generator line: the quadratic degenerates
        rec = _hit_lateral(ray_origin, ray_direction, cone, -c / (2.0 * h), t_min, closest)
        if rec.hit == 1:
            result = rec
            closest = rec.t

    base_cap = _hit_cap(
        ray_origin, ray_direction, cone.base, -cone.axis, cone.base_radius, t_min, closest
    )
    if base_cap.hit == 1:
        result = base_cap
        closest = base_cap.t

    apex_cap = _hit_cap(
        ray_origin,
        ray_direction,
        cone.base + cone.height * cone.axis,
        cone.axis,
        cone.apex_radius,
        t_min,
        closest,
    )
    if apex_cap.hit == 1:
        result = apex_cap

    return result
