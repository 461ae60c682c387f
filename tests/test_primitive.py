"""Unit tests for host-side primitive descriptions.

Tests cover:
- Validation of degenerate spheres, cones and polygons
- Cylinder detection and cone axis/height
- Newell normals and bounding boxes
"""

import math

import pytest

from src.nfftrace.errors import GeometryError, SceneError
from src.nfftrace.geometry.primitive import (
    ConePrimitive,
    PolygonPrimitive,
    PrimitiveKind,
    SpherePrimitive,
    make_cylinder,
    newell_normal,
)

SQUARE = ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0))


class TestSpherePrimitive:
    def test_bounding_box(self):
        sphere = SpherePrimitive(center=(1, 2, 3), radius=0.5)
        box = sphere.bounding_box()
        assert box.minimum == (0.5, 1.5, 2.5)
        assert box.maximum == (1.5, 2.5, 3.5)
        assert sphere.kind == PrimitiveKind.SPHERE

    @pytest.mark.parametrize("radius", [0.0, -1.0, float("nan")])
    def test_rejects_non_positive_radius(self, radius):
        with pytest.raises(GeometryError):
            SpherePrimitive(center=(0, 0, 0), radius=radius)

    def test_rejects_bad_center(self):
        with pytest.raises(GeometryError):
            SpherePrimitive(center=(0, 0), radius=1.0)

    def test_geometry_error_is_scene_error(self):
        with pytest.raises(SceneError):
            SpherePrimitive(center=(0, 0, 0), radius=-2.0)


class TestConePrimitive:
    def test_cone_kind_axis_height(self):
        cone = ConePrimitive(base=(0, 0, 0), base_radius=1.0, apex=(0, 3, 0), apex_radius=0.0)
        assert cone.kind == PrimitiveKind.CONE
        assert cone.height == pytest.approx(3.0)
        assert cone.axis == pytest.approx((0.0, 1.0, 0.0))

    def test_equal_radii_is_cylinder(self):
        cylinder = make_cylinder((0, 0, 0), (0, 0, 2), 0.5)
        assert cylinder.kind == PrimitiveKind.CYLINDER

    def test_bounding_box_covers_end_disks(self):
        cone = ConePrimitive(base=(0, 0, 0), base_radius=1.0, apex=(0, 2, 0), apex_radius=0.5)
        box = cone.bounding_box()
        assert box.minimum[0] <= -1.0
        assert box.maximum[0] >= 1.0
        assert box.minimum[1] <= 0.0
        assert box.maximum[1] >= 2.0
        # The axis runs along y, so the box is tight in x and z
        assert box.maximum[2] == pytest.approx(1.0, abs=1e-3)

    def test_tilted_bounding_box_contains_rim_points(self):
        cone = ConePrimitive(base=(1, 1, 1), base_radius=0.7, apex=(2, 3, 4), apex_radius=0.3)
        box = cone.bounding_box()
        w = cone.axis
        # Two unit vectors perpendicular to the axis
        helper = (1.0, 0.0, 0.0) if abs(w[0]) < 0.9 else (0.0, 1.0, 0.0)
        u = (
            w[1] * helper[2] - w[2] * helper[1],
            w[2] * helper[0] - w[0] * helper[2],
            w[0] * helper[1] - w[1] * helper[0],
        )
        norm = math.sqrt(sum(c * c for c in u))
        u = tuple(c / norm for c in u)
        v = (w[1] * u[2] - w[2] * u[1], w[2] * u[0] - w[0] * u[2], w[0] * u[1] - w[1] * u[0])
        for center, radius in ((cone.base, 0.7), (cone.apex, 0.3)):
            for k in range(16):
                angle = 2.0 * math.pi * k / 16
                point = tuple(
                    center[i] + radius * (math.cos(angle) * u[i] + math.sin(angle) * v[i])
                    for i in range(3)
                )
                assert box.contains_point(point)

    def test_rejects_zero_axis(self):
        with pytest.raises(GeometryError):
            ConePrimitive(base=(1, 1, 1), base_radius=1.0, apex=(1, 1, 1), apex_radius=0.5)

    def test_rejects_two_zero_radii(self):
        with pytest.raises(GeometryError):
            ConePrimitive(base=(0, 0, 0), base_radius=0.0, apex=(0, 1, 0), apex_radius=0.0)

    def test_rejects_negative_radius(self):
        with pytest.raises(GeometryError):
            ConePrimitive(base=(0, 0, 0), base_radius=-1.0, apex=(0, 1, 0), apex_radius=1.0)


class TestPolygonPrimitive:
    def test_newell_normal_of_square(self):
        assert newell_normal(SQUARE) == pytest.approx((0.0, 0.0, 2.0))

    def test_normal_follows_winding(self):
        assert PolygonPrimitive(vertices=SQUARE).normal == pytest.approx((0.0, 0.0, 1.0))
        reversed_square = PolygonPrimitive(vertices=tuple(reversed(SQUARE)))
        assert reversed_square.normal == pytest.approx((0.0, 0.0, -1.0))

    def test_tilted_triangle_stores_float_tuples(self):
        triangle = PolygonPrimitive(vertices=((1, 0, 0), (0, 1, 0), (0, 0, 1)))
        assert newell_normal(triangle.vertices) == pytest.approx((1.0, 1.0, 1.0))
        assert triangle.normal == pytest.approx((1 / math.sqrt(3),) * 3)
        for value in (triangle.normal, *triangle.vertices):
            assert type(value) is tuple
            assert all(type(c) is float for c in value)

    def test_bounding_box_is_padded(self):
        box = PolygonPrimitive(vertices=SQUARE).bounding_box()
        # Flat in z but still has volume
        assert box.maximum[2] > box.minimum[2]
        assert box.minimum[0] < 0.0
        assert box.maximum[1] > 1.0

    def test_rejects_too_few_vertices(self):
        with pytest.raises(GeometryError):
            PolygonPrimitive(vertices=SQUARE[:2])

    def test_rejects_collinear_vertices(self):
        with pytest.raises(GeometryError, match="degenerate"):
            PolygonPrimitive(vertices=((0, 0, 0), (1, 0, 0), (2, 0, 0)))

    def test_rejects_non_planar(self):
        with pytest.raises(GeometryError, match="coplanar"):
            PolygonPrimitive(vertices=((0, 0, 0), (1, 0, 0), (1, 1, 0.5), (0, 1, 0)))

    def test_rejects_non_convex(self):
        arrow = ((0, 0, 0), (2, 0, 0), (2, 2, 0), (1, 0.5, 0), (0, 2, 0))
        with pytest.raises(GeometryError, match="convex"):
            PolygonPrimitive(vertices=arrow)

    def test_rejects_star_polygon(self):
        star = tuple(
            (math.cos(4.0 * math.pi * k / 5), math.sin(4.0 * math.pi * k / 5), 0.0)
            for k in range(5)
        )
        with pytest.raises(GeometryError):
            PolygonPrimitive(vertices=star)

    def test_patch_normals_are_normalized(self):
        patch = PolygonPrimitive(vertices=SQUARE, vertex_normals=((0, 0, 2),) * 4)
        assert patch.smooth
        assert patch.vertex_normals[0] == pytest.approx((0.0, 0.0, 1.0))

    def test_patch_normal_count_must_match(self):
        with pytest.raises(GeometryError):
            PolygonPrimitive(vertices=SQUARE, vertex_normals=((0, 0, 1),) * 3)

    def test_patch_rejects_zero_normal(self):
        with pytest.raises(GeometryError):
            PolygonPrimitive(vertices=SQUARE, vertex_normals=((0, 0, 1),) * 3 + ((0, 0, 0),))
