"""Whitted-style ray tracer for NFF scenes, built on Taichi.

Reads a Neutral File Format scene description and renders it with
recursive ray tracing: Phong or Blinn-Phong local illumination, hard
shadows from point lights, mirror reflection and Snell refraction. A
bounding volume hierarchy prunes the primitives tested per ray.

Subpackages:
    geometry: Primitives, bounding boxes and BVH construction
    materials: The Phong material model
    camera: View description and primary ray generation
    scene: Scene building, the NFF parser and device scene tables
    core: Rays, render settings, the integrator and the renderer
    output: Image writers

Modules that allocate Taichi fields (``scene.tables``,
``scene.intersection``, ``camera.pinhole``, ``core.integrator`` and
``core.renderer``) must be imported after ``ti.init()``.
"""

__version__ = "0.1.0"
