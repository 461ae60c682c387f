"""Ray data structure and vector utilities for Whitted-style ray tracing.

This module provides the fundamental Ray dataclass and the vector helpers
shared by the intersection routines and the shading code. All operations are
designed to work within Taichi kernels.

Rays carry their own valid parametric interval. They are never modified after
construction: every reflection, refraction or shadow query builds a new Ray.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> origin = ti.math.vec3(0.0, 0.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> ray = Ray(origin=origin, direction=direction, t_min=1e-4, t_max=1e10)
    >>> point = ray_at(ray, 5.0)  # Point 5 units along the ray
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Largest parametric distance considered by any query
T_INFINITY = 1e10


@ti.dataclass
class Ray:
    """A ray with an origin, a unit direction and a valid parametric interval.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction of the ray (vec3, unit length).
        t_min: Hits at or before this distance are ignored (epsilon bias).
        t_max: Hits at or beyond this distance are ignored.
    """

    origin: vec3
    direction: vec3
    t_min: ti.f32
    t_max: ti.f32


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t.

    Args:
        ray: The ray to evaluate.
        t: The parameter value. Positive values are in front of the origin.

    Returns:
        The point ray.origin + t * ray.direction.
    """
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> Ray:
    """Create a ray with a normalized direction."""
    return Ray(origin=origin, direction=tm.normalize(direction), t_min=t_min, t_max=t_max)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Compute the squared length of a vector."""
    return tm.dot(v, v)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal.

    Args:
        incident: The incoming direction vector (pointing toward the surface).
        normal: The surface normal (unit length).

    Returns:
        The mirror direction incident - 2 (incident . normal) normal.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32):
    """Refract an incident vector through a surface using Snell's law.

    The normal must face the incident ray (incident . normal <= 0), which is
    the orientation every intersection routine reports.

    Args:
        incident: The incoming direction (unit length).
        normal: The surface normal facing the incoming ray (unit length).
        eta: Ratio of refractive indices n_incident / n_transmitted.

    Returns:
        A tuple (direction, refracted). When the term under the square root
        is negative (total internal reflection) refracted is 0 and direction
        is the mirror reflection instead.
    """
    cos_i = -tm.dot(incident, normal)
    k = 1.0 - eta * eta * (1.0 - cos_i * cos_i)
    direction = reflect(incident, normal)
    refracted = 0
    if k >= 0.0:
        direction = tm.normalize(eta * incident + (eta * cos_i - ti.sqrt(k)) * normal)
        refracted = 1
    return direction, refracted


@ti.func
def offset_origin(point: vec3, normal: vec3, direction: vec3, epsilon: ti.f32) -> vec3:
    """Offset a secondary ray origin to avoid self-intersection.

    Pushes the point along the normal toward the side the new ray travels
    into: above the surface for reflection and shadow rays, below it for
    refraction.

    Args:
        point: The intersection point.
        normal: The surface normal.
        direction: The direction of the new ray.
        epsilon: Offset distance.

    Returns:
        The offset origin point.
    """
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + epsilon * offset_dir
