"""Viewpoint description and camera basis.

The basis is built with NumPy on the host:

- forward points from the eye toward the look-at point,
- right is forward x up,
- up is recomputed as right x forward so the three are orthonormal.

The image plane sits at unit distance along forward. Its height is
2 * tan(fov / 2) and its width follows the image aspect ratio.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from src.nfftrace.errors import CameraError

# Up vectors closer than this (sine of the angle) to forward are rejected
_PARALLEL_TOLERANCE = 1e-6


@dataclass(frozen=True)
class View:
    """Camera placement read from the NFF ``v`` block.

    Attributes:
        eye: Camera position (``from``).
        lookat: Point the camera looks at (``at``).
        up: Approximate up direction (``up``).
        fov: Vertical field of view in degrees (``angle``).
        width: Image width in pixels.
        height: Image height in pixels.
        hither: Distance of the near clipping plane along primary rays.
    """

    eye: tuple[float, float, float]
    lookat: tuple[float, float, float]
    up: tuple[float, float, float]
    fov: float
    width: int
    height: int
    hither: float = 0.0

    def __post_init__(self) -> None:
        for name in ("eye", "lookat", "up"):
            value = getattr(self, name)
            if len(value) != 3:
                raise CameraError(f"View {name} must have 3 components, got {len(value)}")
            object.__setattr__(self, name, tuple(float(c) for c in value))
        if not 0.0 < float(self.fov) < 180.0:
            raise CameraError(f"Field of view must be in (0, 180) degrees, got {self.fov}")
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise CameraError(f"Resolution must be positive, got {self.width}x{self.height}")
        if float(self.hither) < 0.0:
            raise CameraError(f"Hither distance must be non-negative, got {self.hither}")
        object.__setattr__(self, "fov", float(self.fov))
        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))
        object.__setattr__(self, "hither", float(self.hither))
        # Fail early on a degenerate basis
        self.basis()

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def basis(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Compute the orthonormal camera basis.

        Returns:
            Tuple (forward, right, up) of unit float64 vectors.

        Raises:
            CameraError: If the eye and look-at points coincide or the up
                vector is parallel to the view direction.
        """
        eye = np.array(self.eye, dtype=np.float64)
        lookat = np.array(self.lookat, dtype=np.float64)
        up = np.array(self.up, dtype=np.float64)

        forward = lookat - eye
        forward_len = np.linalg.norm(forward)
        if forward_len < 1e-12:
            raise CameraError("Camera eye and look-at points coincide")
        forward = forward / forward_len

        up_len = np.linalg.norm(up)
        if up_len < 1e-12:
            raise CameraError("Camera up vector has zero length")

        right = np.cross(forward, up / up_len)
        right_len = np.linalg.norm(right)
        if right_len < _PARALLEL_TOLERANCE:
            raise CameraError("Camera up vector is parallel to the view direction")
        right = right / right_len

        true_up = np.cross(right, forward)
        return forward, right, true_up

    def viewport(self) -> tuple[float, float]:
        """Image plane size (width, height) at unit distance."""
        viewport_height = 2.0 * math.tan(math.radians(self.fov) / 2.0)
        return self.aspect_ratio * viewport_height, viewport_height
