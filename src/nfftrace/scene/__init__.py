"""Scene module: construction, parsing and ray queries.

Components:
    lights: Point light description
    manager: SceneManager builder and the immutable Scene
    nff: Neutral File Format parser
    tables: Device tables holding the uploaded scene
    intersection: Nearest-hit and any-hit queries over the BVH

``tables`` and ``intersection`` allocate Taichi fields and are not imported
here.
"""

from .lights import Light
from .manager import DEFAULT_BACKGROUND, Scene, SceneManager
from .nff import load_scene, parse_nff

__all__ = [
    "Light",
    "DEFAULT_BACKGROUND",
    "Scene",
    "SceneManager",
    "load_scene",
    "parse_nff",
]
