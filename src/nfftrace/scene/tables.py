"""Device-side scene tables.

A built Scene is copied into preallocated Taichi fields once, before the
first kernel launch, and only read afterwards. Geometry uses a Structure of
Arrays layout per primitive type. A per-primitive index table maps a
primitive id (the index used by the BVH) to its kind, its row in the
type-specific arrays and its material.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.nfftrace.scene.tables import upload_scene
    >>> upload_scene(scene)  # scene from SceneManager.build()
"""

import logging

import numpy as np
import taichi as ti
import taichi.math as tm

from src.nfftrace.core.settings import (
    MAX_BVH_NODES,
    MAX_LIGHTS,
    MAX_MATERIALS,
    MAX_PRIMITIVES,
    MAX_VERTICES,
)
from src.nfftrace.errors import RenderError
from src.nfftrace.geometry.bvh import FlatBVH
from src.nfftrace.geometry.primitive import (
    ConePrimitive,
    PolygonPrimitive,
    Primitive,
    SpherePrimitive,
)
from src.nfftrace.materials.phong import Material
from src.nfftrace.scene.lights import Light

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# =============================================================================
# Primitive index table
# =============================================================================

prim_kinds = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_local_indices = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_material_ids = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
num_primitives = ti.field(dtype=ti.i32, shape=())

# Sphere storage
sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_PRIMITIVES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Cone storage (cylinders included)
cone_bases = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
cone_axes = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
cone_heights = ti.field(dtype=ti.f32, shape=MAX_PRIMITIVES)
cone_base_radii = ti.field(dtype=ti.f32, shape=MAX_PRIMITIVES)
cone_apex_radii = ti.field(dtype=ti.f32, shape=MAX_PRIMITIVES)
num_cones = ti.field(dtype=ti.i32, shape=())

# Polygon storage: each polygon owns a contiguous slice of the vertex fields
polygon_first = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
polygon_counts = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
polygon_normals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
polygon_smooth = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
num_polygons = ti.field(dtype=ti.i32, shape=())

vertices = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
vertex_normals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
num_vertices = ti.field(dtype=ti.i32, shape=())

# =============================================================================
# BVH nodes
# =============================================================================

bvh_box_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_box_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_left = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_right = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_first = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_counts = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_prim_indices = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
num_bvh_nodes = ti.field(dtype=ti.i32, shape=())

# =============================================================================
# Materials, lights, background
# =============================================================================

material_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_ambient = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_diffuse = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_specular = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_shininess = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_reflectivity = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_transmissivity = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_ior = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())

light_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
light_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
num_lights = ti.field(dtype=ti.i32, shape=())

background_color = ti.Vector.field(3, dtype=ti.f32, shape=())


def clear_scene() -> None:
    """Reset every table to empty.

    The field data is not cleared; it is overwritten when new entries are
    added.
    """
    num_primitives[None] = 0
    num_spheres[None] = 0
    num_cones[None] = 0
    num_polygons[None] = 0
    num_vertices[None] = 0
    num_bvh_nodes[None] = 0
    num_materials[None] = 0
    num_lights[None] = 0
    background_color[None] = [0.0, 0.0, 0.0]


# =============================================================================
# Host-side table writers
# =============================================================================


def add_material(material: Material) -> int:
    """Append a material to the material table.

    Returns:
        The material id.

    Raises:
        RenderError: If the material table is full.
    """
    idx = num_materials[None]
    if idx >= MAX_MATERIALS:
        raise RenderError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")
    material_colors[idx] = material.color
    material_ambient[idx] = material.ambient
    material_diffuse[idx] = material.diffuse
    material_specular[idx] = material.specular
    material_shininess[idx] = material.shininess
    material_reflectivity[idx] = material.reflectivity
    material_transmissivity[idx] = material.transmissivity
    material_ior[idx] = material.ior
    num_materials[None] = idx + 1
    return idx


def add_light(light: Light) -> int:
    idx = num_lights[None]
    if idx >= MAX_LIGHTS:
        raise RenderError(f"Maximum number of lights ({MAX_LIGHTS}) exceeded")
    light_positions[idx] = light.position
    light_colors[idx] = light.color
    num_lights[None] = idx + 1
    return idx


def set_background(color: tuple[float, float, float]) -> None:
    background_color[None] = color


def _add_sphere(sphere: SpherePrimitive) -> int:
    idx = num_spheres[None]
    sphere_centers[idx] = sphere.center
    sphere_radii[idx] = sphere.radius
    num_spheres[None] = idx + 1
    return idx


def _add_cone(cone: ConePrimitive) -> int:
    idx = num_cones[None]
    cone_bases[idx] = cone.base
    cone_axes[idx] = cone.axis
    cone_heights[idx] = cone.height
    cone_base_radii[idx] = cone.base_radius
    cone_apex_radii[idx] = cone.apex_radius
    num_cones[None] = idx + 1
    return idx


def _add_polygon(polygon: PolygonPrimitive) -> int:
    first = num_vertices[None]
    if first + len(polygon.vertices) > MAX_VERTICES:
        raise RenderError(f"Maximum number of polygon vertices ({MAX_VERTICES}) exceeded")
    normals = polygon.vertex_normals or (polygon.normal,) * len(polygon.vertices)
    for k, (vertex, normal) in enumerate(zip(polygon.vertices, normals)):
        vertices[first + k] = vertex
        vertex_normals[first + k] = normal
    num_vertices[None] = first + len(polygon.vertices)

    idx = num_polygons[None]
    polygon_first[idx] = first
    polygon_counts[idx] = len(polygon.vertices)
    polygon_normals[idx] = polygon.normal
    polygon_smooth[idx] = 1 if polygon.smooth else 0
    num_polygons[None] = idx + 1
    return idx


def add_primitive(primitive: Primitive) -> int:
    """Append a primitive to the type-specific table and the index table.

    Returns:
        The primitive id.

    Raises:
        RenderError: If a table is full.
        TypeError: If the value is not one of the primitive variants.
    """
    prim_id = num_primitives[None]
    if prim_id >= MAX_PRIMITIVES:
        raise RenderError(f"Maximum number of primitives ({MAX_PRIMITIVES}) exceeded")

    if isinstance(primitive, SpherePrimitive):
        local = _add_sphere(primitive)
    elif isinstance(primitive, ConePrimitive):
        local = _add_cone(primitive)
    elif isinstance(primitive, PolygonPrimitive):
        local = _add_polygon(primitive)
    else:
        raise TypeError(f"Unsupported primitive type: {type(primitive).__name__}")

    prim_kinds[prim_id] = int(primitive.kind)
    prim_local_indices[prim_id] = local
    prim_material_ids[prim_id] = primitive.material_id
    num_primitives[None] = prim_id + 1
    return prim_id


def upload_bvh(bvh: FlatBVH) -> None:
    """Copy a flattened BVH into the node fields.

    Raises:
        RenderError: If the tree has more nodes than the node table holds.
    """
    nodes = bvh.node_count
    if nodes > MAX_BVH_NODES:
        raise RenderError(f"BVH has {nodes} nodes; at most {MAX_BVH_NODES} are supported")
    if nodes > 0:
        # from_numpy needs full-shape arrays, so pad to capacity
        _upload_padded(bvh_box_min, bvh.box_min.astype(np.float32), MAX_BVH_NODES)
        _upload_padded(bvh_box_max, bvh.box_max.astype(np.float32), MAX_BVH_NODES)
        _upload_padded(bvh_left, bvh.left, MAX_BVH_NODES)
        _upload_padded(bvh_right, bvh.right, MAX_BVH_NODES)
        _upload_padded(bvh_first, bvh.first, MAX_BVH_NODES)
        _upload_padded(bvh_counts, bvh.count, MAX_BVH_NODES)
        _upload_padded(bvh_prim_indices, bvh.prim_indices, MAX_PRIMITIVES)
    num_bvh_nodes[None] = nodes


def _upload_padded(target, data: np.ndarray, capacity: int) -> None:
    padded = np.zeros((capacity,) + data.shape[1:], dtype=data.dtype)
    padded[: data.shape[0]] = data
    target.from_numpy(padded)


def upload_scene(scene) -> None:
    """Replace the device tables with the contents of a built Scene.

    Args:
        scene: A Scene returned by SceneManager.build().
    """
    clear_scene()
    for material in scene.materials:
        add_material(material)
    for light in scene.lights:
        add_light(light)
    for primitive in scene.primitives:
        add_primitive(primitive)
    upload_bvh(scene.bvh)
    set_background(scene.background)
    logger.debug(
        "Uploaded scene tables: %d primitives, %d vertices, %d BVH nodes",
        get_primitive_count(),
        int(num_vertices[None]),
        int(num_bvh_nodes[None]),
    )


def get_primitive_count() -> int:
    return int(num_primitives[None])


def get_bvh_node_count() -> int:
    return int(num_bvh_nodes[None])


def get_material_count() -> int:
    return int(num_materials[None])


def get_light_count() -> int:
    return int(num_lights[None])
