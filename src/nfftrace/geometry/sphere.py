"""Spheres on the device side.

A ray o + t*d meets a sphere of center C and radius r where

    a*t^2 + 2*h*t + c = 0,    a = d.d,  h = d.(o - C),  c = |o - C|^2 - r^2

Both roots are formed without subtracting nearly equal numbers: the root
whose sign matches -h comes from q = -(h + sign(h) * sqrt(h^2 - a*c)), and
the other one from Vieta's relation t0 * t1 = c / a.

A ray that starts inside the sphere has its near root behind the origin, so
the far root is reported as the exit point with the normal flipped to face
the ray. Refraction relies on this to leave a glass sphere.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.nfftrace.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, 0, -1), radius=0.5)
"""

import taichi as ti
import taichi.math as tm

from src.nfftrace.geometry.hit_record import HitRecord, make_hit_record, make_miss_record

vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """Center and radius as stored in the primitive table."""

    center: vec3
    radius: ti.f32


@ti.func
def _sphere_roots(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Both roots of a*t^2 + 2*h*t + c = 0, smallest first.

    Args:
        h: Half of the linear coefficient.
        a: Quadratic coefficient.
        c: Constant term.
        sqrt_d: sqrt(h^2 - a*c).
    """
    q = -(h + ti.select(h < 0.0, -1.0, 1.0) * sqrt_d)

    near = 0.0
    far = 0.0
    if ti.abs(q) < 1e-10:
        # h and sqrt_d both vanish, leaving c / q undefined
        near = (-h - sqrt_d) / a
        far = (-h + sqrt_d) / a
    else:
        near = ti.min(q / a, c / q)
        far = ti.max(q / a, c / q)

    return near, far


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Nearest intersection of a ray with a sphere inside (t_min, t_max).

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction of the ray (need not be unit length).
        sphere: The sphere to test.
        t_min: Hits at or before this distance are ignored.
        t_max: Hits at or beyond this distance are ignored.

    Returns:
        A HitRecord for the nearest root in range, or a miss record.
    """
    oc = ray_origin - sphere.center
    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius
    discriminant = h * h - a * c

    result = make_miss_record()
    if discriminant >= 0.0:
        near, far = _sphere_roots(h, a, c, ti.sqrt(discriminant))

        t = near
        if not (t_min < t < t_max):
            t = far

        if t_min < t < t_max:
            point = ray_origin + t * ray_direction
            outward_normal = (point - sphere.center) / sphere.radius
            result = make_hit_record(t, point, outward_normal, ray_direction)

    return result
