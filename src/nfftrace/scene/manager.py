"""Scene construction.

The SceneManager collects materials, primitives, lights, the view and the
background in whatever order a scene description provides them. Every
primitive is validated as it is added, so degenerate geometry is reported
before anything else happens. ``build()`` checks the scene against the
device table capacities, builds the bounding volume hierarchy and returns an
immutable Scene that the renderer only ever reads.

Example:
    >>> from src.nfftrace.scene.manager import SceneManager
    >>> from src.nfftrace.camera.view import View
    >>> from src.nfftrace.materials.phong import Material
    >>> manager = SceneManager()
    >>> white = manager.add_material(Material(color=(1, 1, 1), diffuse=1.0))
    >>> manager.add_sphere((0, 0, 0), 1.0, material_id=white)
    0
    >>> manager.add_light((0, 5, 0))
    >>> manager.set_view(View((0, 0, 5), (0, 0, 0), (0, 1, 0), 45.0, 32, 32))
    >>> scene = manager.build()
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from src.nfftrace.camera.view import View
from src.nfftrace.core.settings import (
    MAX_LIGHTS,
    MAX_MATERIALS,
    MAX_PRIMITIVES,
    MAX_VERTICES,
    RenderSettings,
)
from src.nfftrace.errors import SceneError
from src.nfftrace.geometry.bvh import FlatBVH, build_bvh
from src.nfftrace.geometry.primitive import (
    ConePrimitive,
    PolygonPrimitive,
    Primitive,
    PrimitiveKind,
    SpherePrimitive,
)
from src.nfftrace.materials.phong import Material
from src.nfftrace.scene.lights import Light

logger = logging.getLogger(__name__)

Color = tuple[float, float, float]

DEFAULT_BACKGROUND: Color = (1.0, 1.0, 1.0)


@dataclass(frozen=True)
class Scene:
    """A fully validated scene with its acceleration structure.

    Attributes:
        materials: Material table, indexed by material id.
        primitives: Every primitive, indexed by primitive id.
        lights: Point lights.
        view: Camera placement and image resolution.
        background: Color returned by rays that hit nothing.
        bvh: Hierarchy over the primitives' bounding boxes.
    """

    materials: tuple[Material, ...]
    primitives: tuple[Primitive, ...]
    lights: tuple[Light, ...]
    view: View
    background: Color
    bvh: FlatBVH

    @property
    def vertex_count(self) -> int:
        return sum(
            len(p.vertices) for p in self.primitives if isinstance(p, PolygonPrimitive)
        )

    def count_by_kind(self) -> dict[PrimitiveKind, int]:
        counts = {kind: 0 for kind in PrimitiveKind}
        for primitive in self.primitives:
            counts[primitive.kind] += 1
        return counts


class SceneManager:
    """Mutable builder for a Scene.

    Attributes:
        materials: Materials added so far, indexed by material id.
        primitives: Primitives added so far, indexed by primitive id.
        lights: Lights added so far.
        view: The camera placement, or None until set.
        background: Background color (white unless set).
    """

    def __init__(self) -> None:
        self.materials: list[Material] = []
        self.primitives: list[Primitive] = []
        self.lights: list[Light] = []
        self.view: View | None = None
        self.background: Color = DEFAULT_BACKGROUND

    def clear(self) -> None:
        """Discard everything added so far."""
        self.materials.clear()
        self.primitives.clear()
        self.lights.clear()
        self.view = None
        self.background = DEFAULT_BACKGROUND

    # =========================================================================
    # Materials, lights, view
    # =========================================================================

    def add_material(self, material: Material) -> int:
        """Register a material and return its id."""
        self.materials.append(material)
        return len(self.materials) - 1

    def add_light(
        self, position: Sequence[float], color: Sequence[float] = (1.0, 1.0, 1.0)
    ) -> None:
        self.lights.append(Light(position=tuple(position), color=tuple(color)))

    def set_view(self, view: View) -> None:
        self.view = view

    def set_background(self, color: Sequence[float]) -> None:
        if len(color) != 3:
            raise SceneError(f"Background color must have 3 channels, got {len(color)}")
        background = tuple(float(c) for c in color)
        if not all(math.isfinite(c) and c >= 0.0 for c in background):
            raise SceneError(f"Background color channels must be non-negative, got {background}")
        self.background = background

    # =========================================================================
    # Primitives
    # =========================================================================

    def add_primitive(self, primitive: Primitive) -> int:
        """Add an already constructed primitive.

        Returns:
            The primitive id.

        Raises:
            SceneError: If the primitive references an unknown material.
        """
        if not 0 <= primitive.material_id < len(self.materials):
            raise SceneError(f"Invalid material_id: {primitive.material_id}")
        self.primitives.append(primitive)
        return len(self.primitives) - 1

    def add_sphere(self, center: Sequence[float], radius: float, material_id: int) -> int:
        return self.add_primitive(
            SpherePrimitive(center=tuple(center), radius=radius, material_id=material_id)
        )

    def add_cone(
        self,
        base: Sequence[float],
        base_radius: float,
        apex: Sequence[float],
        apex_radius: float,
        material_id: int,
    ) -> int:
        return self.add_primitive(
            ConePrimitive(
                base=tuple(base),
                base_radius=base_radius,
                apex=tuple(apex),
                apex_radius=apex_radius,
                material_id=material_id,
            )
        )

    def add_polygon(
        self,
        vertices: Sequence[Sequence[float]],
        material_id: int,
        normals: Sequence[Sequence[float]] | None = None,
    ) -> int:
        return self.add_primitive(
            PolygonPrimitive(
                vertices=tuple(tuple(v) for v in vertices),
                material_id=material_id,
                vertex_normals=None if normals is None else tuple(tuple(n) for n in normals),
            )
        )

    # =========================================================================
    # Build
    # =========================================================================

    def _check_capacity(self) -> None:
        vertex_count = sum(
            len(p.vertices) for p in self.primitives if isinstance(p, PolygonPrimitive)
        )
        limits = (
            ("primitives", len(self.primitives), MAX_PRIMITIVES),
            ("polygon vertices", vertex_count, MAX_VERTICES),
            ("materials", len(self.materials), MAX_MATERIALS),
            ("lights", len(self.lights), MAX_LIGHTS),
        )
        for name, count, limit in limits:
            if count > limit:
                raise SceneError(f"Scene has {count} {name}; at most {limit} are supported")

    def build(self, settings: RenderSettings | None = None) -> Scene:
        """Validate the collected scene and build its BVH.

        Args:
            settings: Supplies the BVH leaf size, depth limit and split
                method. Defaults are used when omitted.

        Returns:
            The immutable Scene.

        Raises:
            SceneError: If no view was set or the scene exceeds the device
                table capacities.
        """
        if self.view is None:
            raise SceneError("Scene has no view; a 'v' block is required")
        self._check_capacity()
        if settings is None:
            settings = RenderSettings()

        bvh = build_bvh(
            [primitive.bounding_box() for primitive in self.primitives],
            leaf_size=settings.leaf_size,
            max_depth=settings.max_bvh_depth,
            method=settings.split_method,
        )
        scene = Scene(
            materials=tuple(self.materials),
            primitives=tuple(self.primitives),
            lights=tuple(self.lights),
            view=self.view,
            background=self.background,
            bvh=bvh,
        )
        logger.info(
            "Scene built: %d primitives, %d lights, %d materials, %dx%d image",
            len(scene.primitives),
            len(scene.lights),
            len(scene.materials),
            scene.view.width,
            scene.view.height,
        )
        return scene
