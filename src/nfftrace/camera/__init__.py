"""Camera module.

Components:
    view: Viewpoint description and camera basis (host only)
    pinhole: Device camera state and primary ray generation

``pinhole`` allocates Taichi fields and is not imported here; import it
directly after ``ti.init()``.
"""

from .view import View

__all__ = ["View"]
