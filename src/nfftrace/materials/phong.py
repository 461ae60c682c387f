"""Phong and Blinn-Phong local illumination.

A Material describes how a surface responds to light in the Whitted model:

- an ambient term ``ambient * color`` that is always present,
- a diffuse term ``diffuse * max(0, N.L) * color * light`` per visible light,
- a specular highlight ``specular * s^shininess * light`` per visible light,
  where ``s`` is ``max(0, R.V)`` for Phong (R is the light vector mirrored
  about the normal) or ``max(0, N.H)`` for Blinn-Phong (H is the half vector
  between the light and view directions),
- a mirror ray weighted by ``reflectivity``,
- a refracted ray weighted by ``transmissivity`` and bent by ``ior``.

Materials are plain host values. The scene tables copy them into Taichi fields
and the integrator evaluates the terms below per light.

Example:
    >>> from src.nfftrace.materials.phong import Material
    >>> white = Material(color=(1.0, 1.0, 1.0), diffuse=0.8, specular=0.2, shininess=20.0)
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum

import taichi as ti
import taichi.math as tm

from src.nfftrace.core.ray import reflect
from src.nfftrace.errors import SceneError

vec3 = tm.vec3


class ShadingModel(IntEnum):
    """Specular highlight model, selected per render."""

    PHONG = 0
    BLINN_PHONG = 1


_BLINN_PHONG = int(ShadingModel.BLINN_PHONG)


def _check_unit_interval(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise SceneError(f"Material {name} must be in [0, 1], got {value}")
    return value


@dataclass(frozen=True)
class Material:
    """Surface description shared by every primitive that references it.

    Attributes:
        color: Base RGB color, each channel in [0, 1].
        ambient: Ambient coefficient (Ka).
        diffuse: Diffuse coefficient (Kd).
        specular: Specular coefficient (Ks).
        shininess: Phong exponent (>= 0).
        reflectivity: Weight of the mirror ray in [0, 1].
        transmissivity: Weight of the refracted ray in [0, 1].
        ior: Index of refraction (>= 1).
    """

    color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    ambient: float = 0.0
    diffuse: float = 1.0
    specular: float = 0.0
    shininess: float = 0.0
    reflectivity: float = 0.0
    transmissivity: float = 0.0
    ior: float = 1.0

    def __post_init__(self) -> None:
        if len(self.color) != 3:
            raise SceneError(f"Material color must have 3 channels, got {len(self.color)}")
        color = tuple(float(c) for c in self.color)
        if not all(math.isfinite(c) and c >= 0.0 for c in color):
            raise SceneError(f"Material color channels must be non-negative, got {color}")
        object.__setattr__(self, "color", color)

        for name in ("ambient", "diffuse", "specular", "shininess"):
            value = float(getattr(self, name))
            if not math.isfinite(value) or value < 0.0:
                raise SceneError(f"Material {name} must be non-negative, got {value}")
            object.__setattr__(self, name, value)

        object.__setattr__(
            self, "reflectivity", _check_unit_interval("reflectivity", self.reflectivity)
        )
        object.__setattr__(
            self, "transmissivity", _check_unit_interval("transmissivity", self.transmissivity)
        )

        ior = float(self.ior)
        if not math.isfinite(ior) or ior < 1.0:
            raise SceneError(f"Material index of refraction must be >= 1, got {ior}")
        object.__setattr__(self, "ior", ior)

    @classmethod
    def from_nff(cls, values: Sequence[float]) -> "Material":
        """Create a material from the numbers of an NFF ``f`` directive.

        Eight values are the standard ``r g b Kd Ks shine T ior`` form (no
        ambient term). Nine values insert an ambient coefficient after the
        color: ``r g b Ka Kd Ks shine T ior``. In both forms the specular
        coefficient also drives the mirror reflection.
        """
        if len(values) == 8:
            r, g, b, kd, ks, shine, t, ior = values
            ka = 0.0
        elif len(values) == 9:
            r, g, b, ka, kd, ks, shine, t, ior = values
        else:
            raise SceneError(f"Material needs 8 or 9 values, got {len(values)}")
        return cls(
            color=(r, g, b),
            ambient=ka,
            diffuse=kd,
            specular=ks,
            shininess=shine,
            reflectivity=ks,
            transmissivity=t,
            ior=ior,
        )


# =============================================================================
# Taichi shading terms
# =============================================================================


@ti.func
def diffuse_term(normal: vec3, light_dir: vec3) -> ti.f32:
    """Lambertian cosine term, clamped at 0 for lights behind the surface."""
    return ti.max(0.0, tm.dot(normal, light_dir))


@ti.func
def phong_specular(normal: vec3, light_dir: vec3, view_dir: vec3, shininess: ti.f32) -> ti.f32:
    """Phong highlight: alignment of the mirrored light vector with the viewer.

    Args:
        normal: Unit surface normal.
        light_dir: Unit vector from the surface toward the light.
        view_dir: Unit vector from the surface toward the viewer.
        shininess: Specular exponent.

    Returns:
        max(0, R.V)^shininess.
    """
    r = reflect(-light_dir, normal)
    return ti.pow(ti.max(0.0, tm.dot(r, view_dir)), shininess)


@ti.func
def blinn_phong_specular(
    normal: vec3, light_dir: vec3, view_dir: vec3, shininess: ti.f32
) -> ti.f32:
    """Blinn-Phong highlight using the half vector between light and viewer."""
    result = 0.0
    half = light_dir + view_dir
    if tm.dot(half, half) > 1e-12:
        result = ti.pow(ti.max(0.0, tm.dot(normal, tm.normalize(half))), shininess)
    return result


@ti.func
def specular_term(
    model: ti.i32, normal: vec3, light_dir: vec3, view_dir: vec3, shininess: ti.f32
) -> ti.f32:
    """Dispatch to the highlight model selected for the render."""
    result = 0.0
    if model == _BLINN_PHONG:
        result = blinn_phong_specular(normal, light_dir, view_dir, shininess)
    else:
        result = phong_specular(normal, light_dir, view_dir, shininess)
    return result
