"""Band-by-band renderer for a built Scene.

This module wraps the integrator kernels in a small object that owns a
render: it uploads the scene tables and camera once, then traces the image
in horizontal bands of ``band_height`` rows. Each band is one kernel launch,
parallel over its pixels, and between bands the host reports progress.

The device tables are module-level Taichi fields, so only one scene can be
resident at a time. A Renderer re-uploads its scene if another Renderer has
been used since.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.nfftrace.core.renderer import Renderer
    >>> renderer = Renderer(scene)  # scene from SceneManager.build()
    >>> image = renderer.render(callback=lambda done, total: print(done, total))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Generator

from src.nfftrace.camera.pinhole import setup_camera
from src.nfftrace.core.image_buffer import ImageBuffer
from src.nfftrace.core.integrator import (
    configure_integrator,
    get_image_numpy,
    render_pixel,
    render_rows,
    setup_render_target,
    trace_single_ray,
)
from src.nfftrace.core.settings import MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH, RenderSettings
from src.nfftrace.errors import RenderError
from src.nfftrace.scene.manager import Scene
from src.nfftrace.scene.tables import upload_scene

logger = logging.getLogger(__name__)

# Type alias for progress callback
# Callback receives (rows_done, total_rows)
ProgressCallback = Callable[[int, int], None]

# The Renderer whose scene currently occupies the device tables
_resident: Renderer | None = None


class Renderer:
    """Renders one Scene with fixed RenderSettings.

    Attributes:
        scene: The scene being rendered.
        settings: The render parameters.
    """

    def __init__(self, scene: Scene, settings: RenderSettings | None = None) -> None:
        """Upload the scene and prepare the render target.

        Args:
            scene: A built, immutable scene.
            settings: Render parameters; defaults when omitted.

        Raises:
            RenderError: If the image is larger than the render target or the
                scene does not fit in the device tables.
        """
        self.scene = scene
        self.settings = settings if settings is not None else RenderSettings()

        view = scene.view
        if view.width > MAX_IMAGE_WIDTH or view.height > MAX_IMAGE_HEIGHT:
            raise RenderError(
                f"Image size {view.width}x{view.height} exceeds the supported maximum "
                f"{MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT}"
            )
        self._make_resident()

    @property
    def width(self) -> int:
        return self.scene.view.width

    @property
    def height(self) -> int:
        return self.scene.view.height

    def _make_resident(self) -> None:
        global _resident
        upload_scene(self.scene)
        setup_camera(self.scene.view)
        configure_integrator(self.settings)
        setup_render_target(self.width, self.height)
        _resident = self

    def _ensure_resident(self) -> None:
        if _resident is not self:
            logger.debug("Re-uploading scene tables for %r", self)
            self._make_resident()

    def render_bands(self) -> Generator[tuple[int, int], None, None]:
        """Render the image band by band, yielding progress after each band.

        Yields:
            Tuple of (rows_done, total_rows).
        """
        self._ensure_resident()
        band = self.settings.band_height
        for row_start in range(0, self.height, band):
            row_end = min(row_start + band, self.height)
            try:
                render_rows(row_start, row_end)
            except RuntimeError as exc:
                raise RenderError(f"Rendering rows {row_start}-{row_end} failed: {exc}") from exc
            logger.debug("Rendered rows %d-%d of %d", row_start, row_end, self.height)
            yield row_end, self.height

    def render(self, callback: ProgressCallback | None = None) -> ImageBuffer:
        """Render the whole image.

        Args:
            callback: Optional callback called after each band with
                (rows_done, total_rows).

        Returns:
            The finished image.
        """
        start = time.perf_counter()
        for rows_done, total_rows in self.render_bands():
            if callback is not None:
                callback(rows_done, total_rows)
        elapsed = time.perf_counter() - start
        logger.info("Rendered %dx%d image in %.2fs", self.width, self.height, elapsed)
        return self.get_image()

    def get_image(self) -> ImageBuffer:
        """The contents of the render target as an ImageBuffer."""
        self._ensure_resident()
        return ImageBuffer(get_image_numpy())

    def trace_ray(self, origin, direction) -> tuple[float, float, float]:
        """Color seen along a single ray (clamped to [0, 1])."""
        self._ensure_resident()
        return trace_single_ray(origin, direction)

    def trace_pixel(self, x: int, y: int) -> tuple[float, float, float]:
        """Color of one pixel (column x, row y from the top)."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise ValueError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} image")
        self._ensure_resident()
        return render_pixel(x, y)

    def __repr__(self) -> str:
        return (
            f"Renderer(width={self.width}, height={self.height}, "
            f"primitives={len(self.scene.primitives)}, max_depth={self.settings.max_depth})"
        )


def render_scene(
    scene: Scene,
    settings: RenderSettings | None = None,
    callback: ProgressCallback | None = None,
) -> ImageBuffer:
    """Render a scene in one call."""
    return Renderer(scene, settings).render(callback)
