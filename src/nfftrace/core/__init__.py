"""Core rendering module.

Components:
    ray: Ray data structure and vector helpers
    settings: RenderSettings and device table capacities
    image_buffer: The rendered image
    integrator: Whitted ray tracing kernels
    renderer: Band-by-band render driver

Note: settings, integrator and renderer are NOT imported here. settings
depends on the materials package, which depends on core.ray, and the other
two allocate Taichi fields. Import them directly once Taichi is initialized:
    from src.nfftrace.core.renderer import Renderer
"""

from .image_buffer import ImageBuffer
from .ray import Ray, T_INFINITY, make_ray, offset_origin, ray_at, reflect, refract, vec3

__all__ = [
    "ImageBuffer",
    "Ray",
    "T_INFINITY",
    "make_ray",
    "offset_origin",
    "ray_at",
    "reflect",
    "refract",
    "vec3",
]
