"""Pinhole camera model for perspective projection ray generation.

The host computes the camera basis from a View (see ``camera/view.py``) and
stores the eye position, the image plane's top-left corner and the vectors
spanning one full row and column of the plane in Taichi fields. Kernels then
build a primary ray for any pixel without touching the View again.

Pixel (i, j) addresses column i from the left and row j from the top, so
rays are generated through pixel centres:

    u = (i + 0.5) / width          0 at the left edge, 1 at the right
    v = 1 - (j + 0.5) / height     1 at the top edge, 0 at the bottom

The hither distance is a near clipping plane perpendicular to the view
direction: a primary ray only reports hits beyond that plane.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.nfftrace.camera.view import View
    >>> from src.nfftrace.camera.pinhole import setup_camera, get_primary_ray
    >>> view = View(eye=(0, 0, 5), lookat=(0, 0, 0), up=(0, 1, 0), fov=45, width=64, height=64)
    >>> setup_camera(view)
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from src.nfftrace.camera.view import View
from src.nfftrace.core.ray import Ray

vec3 = tm.vec3

# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_forward = ti.Vector.field(3, dtype=ti.f32, shape=())

# Image plane at unit distance: top-left corner and full-size spanning vectors
_upper_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())

_hither = ti.field(dtype=ti.f32, shape=())


def setup_camera(view: View) -> None:
    """Upload the camera state derived from a View.

    Args:
        view: Validated camera placement.

    Raises:
        CameraError: If the view has a degenerate basis.
    """
    forward, right, up = view.basis()
    viewport_width, viewport_height = view.viewport()

    eye = np.array(view.eye, dtype=np.float64)
    horizontal = viewport_width * right
    vertical = viewport_height * up
    upper_left = eye + forward - horizontal / 2.0 + vertical / 2.0

    _camera_origin[None] = eye.tolist()
    _camera_forward[None] = forward.tolist()
    _upper_left_corner[None] = upper_left.tolist()
    _viewport_horizontal[None] = horizontal.tolist()
    # Rows advance downward
    _viewport_vertical[None] = (-vertical).tolist()
    _hither[None] = view.hither


@ti.func
def get_ray(u: ti.f32, v: ti.f32, t_min: ti.f32, t_max: ti.f32) -> Ray:
    """Generate a ray through normalized image coordinates.

    Args:
        u: Horizontal coordinate in [0, 1] (left to right).
        v: Vertical coordinate in [0, 1] (bottom to top).
        t_min: Smallest accepted hit distance (epsilon bias).
        t_max: Largest accepted hit distance.

    Returns:
        A Ray from the eye through the image plane point, with t_min raised
        to the hither plane when that is farther.
    """
    # (1 - v) because the stored vertical vector points down the image
    point = (
        _upper_left_corner[None]
        + u * _viewport_horizontal[None]
        + (1.0 - v) * _viewport_vertical[None]
    )
    origin = _camera_origin[None]
    direction = tm.normalize(point - origin)

    near = t_min
    cos_theta = tm.dot(direction, _camera_forward[None])
    if _hither[None] > 0.0 and cos_theta > 0.0:
        near = ti.max(t_min, _hither[None] / cos_theta)

    return Ray(origin=origin, direction=direction, t_min=near, t_max=t_max)


@ti.func
def get_primary_ray(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> Ray:
    """Generate the primary ray through the centre of a pixel.

    Args:
        pixel_i: Column, 0 at the left.
        pixel_j: Row, 0 at the top.
        width: Image width in pixels.
        height: Image height in pixels.
        t_min: Smallest accepted hit distance.
        t_max: Largest accepted hit distance.

    Returns:
        The primary Ray for the pixel.
    """
    u = (ti.cast(pixel_i, ti.f32) + 0.5) / ti.cast(width, ti.f32)
    v = 1.0 - (ti.cast(pixel_j, ti.f32) + 0.5) / ti.cast(height, ti.f32)
    return get_ray(u, v, t_min, t_max)


def _read_vec3(field) -> tuple[float, float, float]:
    value = field[None]
    return (float(value[0]), float(value[1]), float(value[2]))


def get_camera_info() -> dict[str, tuple[float, float, float] | float]:
    """Read the uploaded camera state back (for debugging and tests)."""
    return {
        "origin": _read_vec3(_camera_origin),
        "forward": _read_vec3(_camera_forward),
        "upper_left_corner": _read_vec3(_upper_left_corner),
        "horizontal": _read_vec3(_viewport_horizontal),
        "vertical": _read_vec3(_viewport_vertical),
        "hither": float(_hither[None]),
    }
