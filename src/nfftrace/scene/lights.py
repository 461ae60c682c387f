"""Point lights.

Lights have a position and an RGB color. They do not fall off with distance;
NFF scenes are authored for unattenuated lights.
"""

import math
from dataclasses import dataclass

import taichi as ti
import taichi.math as tm

from src.nfftrace.errors import SceneError

vec3 = tm.vec3


@dataclass(frozen=True)
class Light:
    """A point light.

    Attributes:
        position: World-space position of the light.
        color: RGB intensity, white by default.
    """

    position: tuple[float, float, float]
    color: tuple[float, float, float] = (1.0, 1.0, 1.0)

    def __post_init__(self) -> None:
        if len(self.position) != 3 or len(self.color) != 3:
            raise SceneError("Light position and color must have 3 components")
        position = tuple(float(c) for c in self.position)
        color = tuple(float(c) for c in self.color)
        if not all(math.isfinite(c) for c in position):
            raise SceneError(f"Light position must be finite, got {position}")
        if not all(math.isfinite(c) and c >= 0.0 for c in color):
            raise SceneError(f"Light color channels must be non-negative, got {color}")
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "color", color)


@ti.func
def direction_to_light(point: vec3, light_position: vec3):
    """Unit direction and distance from a surface point to a light.

    Returns:
        Tuple (direction, distance). A light sitting on the point yields a
        zero direction and zero distance.
    """
    to_light = light_position - point
    distance = tm.length(to_light)
    direction = vec3(0.0, 0.0, 0.0)
    if distance > 0.0:
        direction = to_light / distance
    return direction, distance
