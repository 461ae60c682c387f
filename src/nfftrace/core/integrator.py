"""Whitted-style ray tracing integrator.

This module implements the per-pixel rendering kernel. For every primary ray
it evaluates the classic Whitted recursion:

    trace(ray, depth):
        no hit                  -> background color
        hit                     -> clamp(local(P) + kr * trace(mirror ray, depth + 1)
                                                   + kt * trace(refracted ray, depth + 1))
        depth > max_depth       -> black

Every return is clamped to [0, 1], so a bright subtree saturates before its
parent scales it by kr or kt.

Taichi functions cannot recurse, so the ray tree is walked depth first with
an explicit stack holding one frame per tree level. A frame stays on the
stack while its mirror and refracted children are traced, collecting their
weighted results; once both are done it returns its clamped sum to the frame
below.

Local illumination is the Phong model: ambient, plus diffuse and specular
terms for every light that a shadow ray reaches unobstructed. Shadow rays
start at P + N * ray_epsilon (N faces the incoming ray) and stop at the light.

Refraction uses eta = 1 / ior when the ray enters a surface from outside and
eta = ior when it leaves. Total internal reflection sends a mirror ray with
the transmitted weight instead.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.nfftrace.core.integrator import (
    ...     configure_integrator, render_rows, setup_render_target
    ... )
    >>> configure_integrator(RenderSettings())
    >>> setup_render_target(64, 64)
    >>> render_rows(0, 64)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.nfftrace.camera.pinhole import get_primary_ray
from src.nfftrace.core.ray import T_INFINITY, offset_origin, reflect, refract
from src.nfftrace.core.settings import (
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    RAY_STACK_SIZE,
    RenderSettings,
)
from src.nfftrace.geometry.hit_record import HitRecord
from src.nfftrace.materials.phong import diffuse_term, specular_term
from src.nfftrace.scene.intersection import any_hit, nearest_hit
from src.nfftrace.scene.lights import direction_to_light
from src.nfftrace.scene.tables import (
    background_color,
    light_colors,
    light_positions,
    material_ambient,
    material_colors,
    material_diffuse,
    material_ior,
    material_reflectivity,
    material_shininess,
    material_specular,
    material_transmissivity,
    num_lights,
)

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Integrator Parameters
# =============================================================================

_max_depth = ti.field(dtype=ti.i32, shape=())
_shading_model = ti.field(dtype=ti.i32, shape=())
_ray_epsilon = ti.field(dtype=ti.f32, shape=())
_t_min = ti.field(dtype=ti.f32, shape=())


def configure_integrator(settings: RenderSettings) -> None:
    """Copy the tracing parameters of a RenderSettings into Taichi fields."""
    _max_depth[None] = settings.max_depth
    _shading_model[None] = int(settings.shading_model)
    _ray_epsilon[None] = settings.ray_epsilon
    _t_min[None] = settings.t_min


# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Image dimensions (actual active size)
_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Color buffer indexed [column, row], row 0 at the top (preallocated to max size)
_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Flag to track if render target is initialized
_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Initialize the render target buffer.

    The buffer is preallocated to MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT to
    avoid Taichi kernel recompilation.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If dimensions are not positive or exceed the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Clear the render target buffer to black."""
    _color_buffer.fill(0.0)


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


# =============================================================================
# Shading
# =============================================================================


@ti.func
def shade_local(rec: HitRecord, view_dir: vec3) -> vec3:
    """Ambient, diffuse and specular light at a hit point, clamped to [0, 1].

    Args:
        rec: The hit record (normal facing the viewer).
        view_dir: Unit vector from the hit point toward the viewer.

    Returns:
        The local color of the surface.
    """
    mid = rec.material_id
    base = material_colors[mid]
    normal = rec.normal
    color = material_ambient[mid] * base

    shadow_origin = rec.point + _ray_epsilon[None] * normal
    for light in range(num_lights[None]):
        light_dir, distance = direction_to_light(shadow_origin, light_positions[light])
        lambert = diffuse_term(normal, light_dir)
        if distance > 0.0 and lambert > 0.0:
            if any_hit(shadow_origin, light_dir, _t_min[None], distance) == 0:
                intensity = light_colors[light]
                color += material_diffuse[mid] * lambert * base * intensity
                highlight = specular_term(
                    _shading_model[None], normal, light_dir, view_dir, material_shininess[mid]
                )
                color += material_specular[mid] * highlight * intensity

    return tm.clamp(color, 0.0, 1.0)


@ti.func
def finalize_color(color: vec3) -> vec3:
    """Zero NaN/Inf channels and clamp to the displayable range."""
    result = color
    for c in ti.static(range(3)):
        if tm.isnan(result[c]) or tm.isinf(result[c]):
            result[c] = 0.0
    return tm.clamp(result, 0.0, 1.0)


# Progress of a frame on the trace stack
_STAGE_NEW = 0
_STAGE_REFLECT = 1
_STAGE_REFRACT = 2
_STAGE_DONE = 3


@ti.func
def trace(ray_origin: vec3, ray_direction: vec3, t_min: ti.f32) -> vec3:
    """Evaluate the Whitted ray tree rooted at one ray.

    Frame k of the stack holds the ray at depth k. A frame moves through
    four stages: it is shaded (NEW), spawns its mirror child (REFLECT),
    spawns its refracted child (REFRACT) and finally returns (DONE). A
    returning frame adds its clamped color to the frame below it, weighted by
    kr when that frame was reflecting and by kt when it was refracting.

    Args:
        ray_origin: Origin of the root ray.
        ray_direction: Unit direction of the root ray.
        t_min: Minimum hit distance of the root ray (hither for primary rays).

    Returns:
        The color of the ray tree, clamped to [0, 1].
    """
    result = vec3(0.0, 0.0, 0.0)
    max_depth = _max_depth[None]
    epsilon = _ray_epsilon[None]
    secondary_t_min = _t_min[None]

    # One component per vector so the stack can be indexed dynamically
    ox = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    oy = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    oz = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    dx = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    dy = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    dz = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    px = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    py = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    pz = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    nx = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    ny = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    nz = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    # Local color plus the weighted results of finished children
    cr = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    cg = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    cb = ti.Vector([0.0 for _ in range(RAY_STACK_SIZE)], dt=ti.f32)
    front_faces = ti.Vector([0 for _ in range(RAY_STACK_SIZE)], dt=ti.i32)
    material_ids = ti.Vector([0 for _ in range(RAY_STACK_SIZE)], dt=ti.i32)
    stages = ti.Vector([_STAGE_NEW for _ in range(RAY_STACK_SIZE)], dt=ti.i32)

    ox[0] = ray_origin[0]
    oy[0] = ray_origin[1]
    oz[0] = ray_origin[2]
    dx[0] = ray_direction[0]
    dy[0] = ray_direction[1]
    dz[0] = ray_direction[2]
    stages[0] = _STAGE_NEW
    top = 1

    while top > 0:
        frame = top - 1
        stage = stages[frame]
        direction = vec3(dx[frame], dy[frame], dz[frame])
        point = vec3(px[frame], py[frame], pz[frame])
        normal = vec3(nx[frame], ny[frame], nz[frame])
        mid = material_ids[frame]

        if stage == _STAGE_NEW:
            origin = vec3(ox[frame], oy[frame], oz[frame])
            ray_t_min = secondary_t_min
            if frame == 0:
                ray_t_min = t_min
            rec = nearest_hit(origin, direction, ray_t_min, T_INFINITY)
            local = background_color[None]
            stages[frame] = _STAGE_DONE
            if rec.hit == 1:
                local = shade_local(rec, -direction)
                px[frame] = rec.point[0]
                py[frame] = rec.point[1]
                pz[frame] = rec.point[2]
                nx[frame] = rec.normal[0]
                ny[frame] = rec.normal[1]
                nz[frame] = rec.normal[2]
                front_faces[frame] = rec.front_face
                material_ids[frame] = rec.material_id
                stages[frame] = _STAGE_REFLECT
            cr[frame] = local[0]
            cg[frame] = local[1]
            cb[frame] = local[2]

        elif stage == _STAGE_REFLECT:
            stages[frame] = _STAGE_REFRACT
            # Children deeper than max_depth would contribute black
            if frame < max_depth and material_reflectivity[mid] > 0.0:
                child_dir = tm.normalize(reflect(direction, normal))
                child_origin = offset_origin(point, normal, child_dir, epsilon)
                ox[top] = child_origin[0]
                oy[top] = child_origin[1]
                oz[top] = child_origin[2]
                dx[top] = child_dir[0]
                dy[top] = child_dir[1]
                dz[top] = child_dir[2]
                stages[top] = _STAGE_NEW
                top += 1

        elif stage == _STAGE_REFRACT:
            stages[frame] = _STAGE_DONE
            if frame < max_depth and material_transmissivity[mid] > 0.0:
                ior = material_ior[mid]
                eta = ior
                if front_faces[frame] == 1:
                    eta = 1.0 / ior
                # On total internal reflection this is the mirror direction
                child_dir, _refracted = refract(direction, normal, eta)
                child_origin = offset_origin(point, normal, child_dir, epsilon)
                ox[top] = child_origin[0]
                oy[top] = child_origin[1]
                oz[top] = child_origin[2]
                dx[top] = child_dir[0]
                dy[top] = child_dir[1]
                dz[top] = child_dir[2]
                stages[top] = _STAGE_NEW
                top += 1

        else:
            value = tm.clamp(vec3(cr[frame], cg[frame], cb[frame]), 0.0, 1.0)
            top -= 1
            if top == 0:
                result = value
            else:
                parent = top - 1
                parent_mid = material_ids[parent]
                # The parent advanced past the stage that spawned this frame
                weight = material_transmissivity[parent_mid]
                if stages[parent] == _STAGE_REFRACT:
                    weight = material_reflectivity[parent_mid]
                cr[parent] += weight * value[0]
                cg[parent] += weight * value[1]
                cb[parent] += weight * value[2]

    return result


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_band(row_start: ti.i32, row_end: ti.i32, width: ti.i32, height: ti.i32):
    """Trace every pixel of rows [row_start, row_end)."""
    for i, j in ti.ndrange(width, (row_start, row_end)):
        ray = get_primary_ray(i, j, width, height, _t_min[None], T_INFINITY)
        _color_buffer[i, j] = finalize_color(trace(ray.origin, ray.direction, ray.t_min))


@ti.kernel
def _render_single_pixel(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32) -> vec3:
    ray = get_primary_ray(pixel_i, pixel_j, width, height, _t_min[None], T_INFINITY)
    return finalize_color(trace(ray.origin, ray.direction, ray.t_min))


@ti.kernel
def _trace_single_ray(origin: vec3, direction: vec3) -> vec3:
    return finalize_color(trace(origin, tm.normalize(direction), _t_min[None]))


# =============================================================================
# Public Rendering API
# =============================================================================


def render_rows(row_start: int, row_end: int) -> None:
    """Render the rows [row_start, row_end) into the color buffer.

    Raises:
        RuntimeError: If the render target has not been set up.
        ValueError: If the row range is outside the image.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    if not 0 <= row_start <= row_end <= height:
        raise ValueError(f"Row range [{row_start}, {row_end}) outside image of height {height}")
    if row_end > row_start:
        _render_band(row_start, row_end, width, height)


def render_pixel(pixel_i: int, pixel_j: int) -> tuple[float, float, float]:
    """Trace the primary ray of one pixel without touching the color buffer.

    Args:
        pixel_i: Column, 0 at the left.
        pixel_j: Row, 0 at the top.

    Returns:
        Tuple of (R, G, B) color values in [0, 1].
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    color = _render_single_pixel(pixel_i, pixel_j, width, height)
    return (float(color[0]), float(color[1]), float(color[2]))


def trace_single_ray(origin, direction) -> tuple[float, float, float]:
    """Trace one ray through the uploaded scene.

    Args:
        origin: Ray origin (x, y, z).
        direction: Ray direction (x, y, z); normalized before tracing.

    Returns:
        Tuple of (R, G, B) color values in [0, 1].
    """
    color = _trace_single_ray(vec3(*origin), vec3(*direction))
    return (float(color[0]), float(color[1]), float(color[2]))


def get_image_numpy() -> npt.NDArray[np.float32]:
    """Get the rendered image as a NumPy array of shape (height, width, 3).

    Row 0 of the array is the top of the image.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()

    full_image = _color_buffer.to_numpy()
    image = full_image[:width, :height, :]

    # (width, height, 3) -> (height, width, 3)
    return np.ascontiguousarray(np.transpose(image, (1, 0, 2))).astype(np.float32)
