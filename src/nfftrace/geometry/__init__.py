"""Geometry module for primitives and spatial acceleration.

Components:
    primitive: Host-side primitive descriptions with validation and bounds
    sphere, cone, polygon: Device intersection routines
    hit_record: Intersection result structure
    aabb: Axis-aligned bounding boxes (host and device)
    bvh: Bounding volume hierarchy construction

Intersection routines follow the pattern:
    record = hit_shape(ray_origin, ray_direction, shape, t_min, t_max)
"""

from .aabb import AABB, hit_aabb
from .bvh import FlatBVH, build_bvh
from .cone import Cone, hit_cone
from .hit_record import HitRecord, make_hit_record, make_miss_record
from .polygon import Polygon, hit_polygon
from .primitive import (
    ConePrimitive,
    PolygonPrimitive,
    Primitive,
    PrimitiveKind,
    SpherePrimitive,
    make_cylinder,
    newell_normal,
)
from .sphere import Sphere, hit_sphere

__all__ = [
    "AABB",
    "hit_aabb",
    "FlatBVH",
    "build_bvh",
    "Cone",
    "hit_cone",
    "HitRecord",
    "make_hit_record",
    "make_miss_record",
    "Polygon",
    "hit_polygon",
    "ConePrimitive",
    "PolygonPrimitive",
    "Primitive",
    "PrimitiveKind",
    "SpherePrimitive",
    "make_cylinder",
    "newell_normal",
    "Sphere",
    "hit_sphere",
]
