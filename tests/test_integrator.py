"""Tests for the Whitted integrator.

Tests cover:
- Background on a miss
- Ambient, diffuse and shadowed light at a surface
- Mirror recursion and the depth limit
- Clamping of every level of the ray tree
- Refraction and total internal reflection in a glass sphere
- Final colors stay within [0, 1]
"""

import math

import numpy as np
import pytest

from src.nfftrace.camera.view import View
from src.nfftrace.core.settings import RenderSettings
from src.nfftrace.materials.phong import Material
from src.nfftrace.scene.manager import SceneManager

VIEW = View((0, 0, 10), (0, 0, 0), (0, 1, 0), 45.0, 8, 8)

BLACK = (0.0, 0.0, 0.0)

# Large square in the z=0 plane facing +z
FLOOR = [(-5.0, -5.0, 0.0), (5.0, -5.0, 0.0), (5.0, 5.0, 0.0), (-5.0, 5.0, 0.0)]


def _manager(background=BLACK) -> SceneManager:
    manager = SceneManager()
    manager.set_view(VIEW)
    manager.set_background(background)
    return manager


@pytest.fixture
def trace(upload):
    """Upload a scene, configure the integrator and trace a single ray."""
    from src.nfftrace.core.integrator import configure_integrator, trace_single_ray

    def _trace(manager, origin, direction, **settings_kwargs):
        settings = RenderSettings(**settings_kwargs)
        upload(manager, settings)
        configure_integrator(settings)
        return trace_single_ray(origin, direction)

    return _trace


class TestLocalShading:
    def test_miss_returns_background(self, trace):
        manager = _manager(background=(0.2, 0.4, 0.6))
        color = trace(manager, (0, 0, 5), (0, 1, 0))
        assert color == pytest.approx((0.2, 0.4, 0.6), abs=1e-6)

    def test_head_on_diffuse(self, trace):
        manager = _manager()
        red = manager.add_material(Material(color=(1, 0, 0), diffuse=1.0))
        manager.add_sphere((0, 0, 0), 1.0, red)
        manager.add_light((0, 0, 10))
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((1.0, 0.0, 0.0), abs=1e-4)

    def test_light_color_tints_diffuse(self, trace):
        manager = _manager()
        white = manager.add_material(Material(color=(1, 1, 1), diffuse=0.5))
        manager.add_sphere((0, 0, 0), 1.0, white)
        manager.add_light((0, 0, 10), (1.0, 0.5, 0.0))
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((0.5, 0.25, 0.0), abs=1e-4)

    def test_ambient_without_lights(self, trace):
        manager = _manager()
        mat = manager.add_material(Material(color=(0.5, 1.0, 0.0), ambient=0.2, diffuse=0.8))
        manager.add_sphere((0, 0, 0), 1.0, mat)
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((0.1, 0.2, 0.0), abs=1e-5)

    def test_no_self_shadowing(self, trace):
        """Every point on the lit side of a sphere receives its full Lambert term."""
        manager = _manager()
        mat = manager.add_material(Material(color=(1, 1, 1), diffuse=1.0))
        manager.add_sphere((0, 0, 0), 1.0, mat)
        light = np.array([0.0, 0.0, 10.0])
        epsilon = RenderSettings().ray_epsilon
        samples = [
            (x, y)
            for x in (-0.8, -0.4, 0.0, 0.3, 0.7)
            for y in (-0.4, -0.1, 0.2, 0.5)
            if math.hypot(x, y) <= 0.9
        ]
        for x, y in samples:
            normal = np.array([x, y, math.sqrt(1.0 - x * x - y * y)])
            to_light = light - (normal + epsilon * normal)
            expected = float(normal @ to_light / np.linalg.norm(to_light))
            color = trace(manager, (x, y, 5), (0, 0, -1))
            assert color == pytest.approx((expected,) * 3, abs=1e-4)

    def test_overhead_light_brightens_top(self, trace):
        manager = _manager()
        mat = manager.add_material(Material(color=(1, 1, 1), diffuse=1.0))
        manager.add_sphere((0, 0, 0), 1.0, mat)
        manager.add_light((0, 10, 0))
        top = trace(manager, (0, 0.7, 5), (0, 0, -1))
        bottom = trace(manager, (0, -0.7, 5), (0, 0, -1))
        assert top[0] > 0.5
        assert bottom == pytest.approx(BLACK, abs=1e-6)

    def test_occluder_casts_shadow(self, trace):
        manager = _manager()
        mat = manager.add_material(Material(color=(1, 1, 1), diffuse=1.0))
        manager.add_polygon(FLOOR, mat)
        manager.add_light((0, 0, 10))
        # The camera ray passes beside the occluder and hits the floor at the origin
        origin, direction = (2, 0, 5), (-2, 0, -5)
        lit = trace(manager, origin, direction)
        assert lit == pytest.approx((1.0, 1.0, 1.0), abs=1e-4)

        manager.add_sphere((0, 0, 3), 0.5, mat)
        shadowed = trace(manager, origin, direction)
        assert shadowed == pytest.approx(BLACK, abs=1e-6)

    def test_light_in_front_of_occluder_is_visible(self, trace):
        manager = _manager()
        mat = manager.add_material(Material(color=(1, 1, 1), diffuse=1.0))
        manager.add_polygon(FLOOR, mat)
        manager.add_sphere((0, 0, 6), 0.5, mat)
        # The sphere lies beyond the light, so the shadow segment is clear
        manager.add_light((0, 0, 3))
        color = trace(manager, (2, 0, 5), (-2, 0, -5))
        assert color == pytest.approx((1.0, 1.0, 1.0), abs=1e-4)

    def test_specular_highlight(self, trace):
        manager = _manager()
        mat = manager.add_material(
            Material(color=(1, 0, 0), diffuse=0.0, specular=0.5, shininess=10.0)
        )
        manager.add_sphere((0, 0, 0), 1.0, mat)
        manager.add_light((0, 0, 10))
        # Highlights are white regardless of the surface color
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((0.5, 0.5, 0.5), abs=1e-4)


class TestReflection:
    def _mirror_sphere(self):
        manager = _manager(background=(0.3, 0.6, 0.9))
        mirror = manager.add_material(
            Material(color=(0, 0, 0), diffuse=0.0, specular=0.0, reflectivity=1.0)
        )
        manager.add_sphere((0, 0, 0), 1.0, mirror)
        return manager

    def test_mirror_reflects_background(self, trace):
        color = trace(self._mirror_sphere(), (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((0.3, 0.6, 0.9), abs=1e-5)

    def test_depth_zero_disables_reflection(self, trace):
        color = trace(self._mirror_sphere(), (0, 0, 5), (0, 0, -1), max_depth=0)
        assert color == pytest.approx(BLACK, abs=1e-6)

    def test_reflection_is_weighted(self, trace):
        manager = _manager(background=(1.0, 1.0, 1.0))
        half = manager.add_material(Material(color=(0, 0, 0), reflectivity=0.25))
        manager.add_sphere((0, 0, 0), 1.0, half)
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((0.25, 0.25, 0.25), abs=1e-5)

    @pytest.mark.parametrize("max_depth", [0, 1, 3, 5])
    def test_facing_mirrors_terminate(self, trace, max_depth):
        """Each bounce adds the ambient term once until the depth limit."""
        manager = _manager(background=(1.0, 1.0, 1.0))
        mirror = manager.add_material(
            Material(color=(1, 1, 1), ambient=0.1, diffuse=0.0, reflectivity=1.0)
        )
        manager.add_polygon([(x, y, 1.0) for x, y, _ in FLOOR], mirror)
        manager.add_polygon([(x, y, -1.0) for x, y, _ in FLOOR], mirror)
        color = trace(manager, (0, 0, 0), (0, 0, 1), max_depth=max_depth)
        expected = 0.1 * (max_depth + 1)
        assert color == pytest.approx((expected,) * 3, abs=1e-5)

    def test_subtree_is_clamped_before_weighting(self, trace):
        manager = _manager(background=(1.0, 1.0, 1.0))
        mirror = manager.add_material(Material(color=(0, 0, 0), diffuse=0.0, reflectivity=0.5))
        glass = manager.add_material(
            Material(color=(1, 1, 1), ambient=1.0, diffuse=0.0, transmissivity=1.0, ior=1.0)
        )
        manager.add_polygon([(x, y, 1.0) for x, y, _ in FLOOR], mirror)
        manager.add_polygon([(x, y, -1.0) for x, y, _ in FLOOR], glass)
        # The glass returns clamp(1 + 1) = 1, which the mirror then halves
        color = trace(manager, (0, 0, 0), (0, 0, 1))
        assert color == pytest.approx((0.5, 0.5, 0.5), abs=1e-5)


class TestRefraction:
    def _glass_and_target(self, ior):
        """A glass sphere in front of a small self-lit red square at x = 0.5."""
        manager = _manager(background=(0.0, 0.0, 1.0))
        glass = manager.add_material(
            Material(color=(0, 0, 0), diffuse=0.0, transmissivity=1.0, ior=ior)
        )
        red = manager.add_material(Material(color=(1, 0, 0), ambient=1.0, diffuse=0.0))
        manager.add_sphere((0, 0, 0), 1.0, glass)
        manager.add_polygon(
            [(0.4, -0.1, -3.0), (0.6, -0.1, -3.0), (0.6, 0.1, -3.0), (0.4, 0.1, -3.0)], red
        )
        return manager

    def test_unit_ior_passes_straight_through(self, trace):
        color = trace(self._glass_and_target(1.0), (0.5, 0, 5), (0, 0, -1))
        assert color == pytest.approx((1.0, 0.0, 0.0), abs=1e-4)

    def test_glass_bends_rays_away_from_target(self, trace):
        # A ball lens bends the off-axis ray across the axis, past the target
        color = trace(self._glass_and_target(1.5), (0.5, 0, 5), (0, 0, -1))
        assert color == pytest.approx((0.0, 0.0, 1.0), abs=1e-4)

    def test_axial_ray_is_not_deviated(self, trace):
        manager = self._glass_and_target(1.5)
        manager.add_polygon(
            [(-0.1, -0.1, -3.0), (0.1, -0.1, -3.0), (0.1, 0.1, -3.0), (-0.1, 0.1, -3.0)], 1
        )
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((1.0, 0.0, 0.0), abs=1e-4)

    def test_transparent_surface_adds_local_color(self, trace):
        manager = _manager(background=(0.0, 0.0, 0.5))
        mat = manager.add_material(
            Material(color=(1, 0, 0), ambient=0.5, diffuse=0.0, transmissivity=1.0, ior=1.3)
        )
        manager.add_sphere((0, 0, 0), 1.0, mat)
        # The ray crosses two surfaces: 0.5 red twice, then the background
        color = trace(manager, (0, 0, 5), (0, 0, -1))
        assert color == pytest.approx((1.0, 0.0, 0.5), abs=1e-4)

    def _sphere_with(self, material):
        manager = _manager(background=(0.0, 0.0, 1.0))
        manager.add_sphere((0, 0, 0), 1.0, manager.add_material(material))
        return manager

    def test_total_internal_reflection_follows_mirror_path(self, trace):
        # Inside the glass the ray meets the wall at sin(theta) = 0.9 > 1 / 1.5
        origin, direction = (0.9, 0.0, 0.0), (0.0, 1.0, 0.0)
        glass = Material(color=(1, 0, 0), ambient=0.1, diffuse=0.0, transmissivity=1.0, ior=1.5)
        mirror = Material(color=(1, 0, 0), ambient=0.1, diffuse=0.0, reflectivity=1.0)

        trapped = trace(self._sphere_with(glass), origin, direction, max_depth=3)
        reflected = trace(self._sphere_with(mirror), origin, direction, max_depth=3)

        # Every bounce stays inside: four red ambient terms and no blue background
        assert trapped == pytest.approx((0.4, 0.0, 0.0), abs=1e-5)
        assert trapped == pytest.approx(reflected, abs=1e-6)


class TestColorRange:
    def test_bright_scene_is_clamped(self, trace):
        manager = _manager(background=(1.0, 1.0, 1.0))
        mat = manager.add_material(
            Material(
                color=(1, 1, 1),
                ambient=1.0,
                diffuse=1.0,
                specular=1.0,
                reflectivity=1.0,
                transmissivity=1.0,
                ior=1.5,
            )
        )
        manager.add_sphere((0, 0, 0), 1.0, mat)
        manager.add_light((0, 0, 10), (5.0, 5.0, 5.0))
        for x in (0.0, 0.5, 0.9):
            color = trace(manager, (x, 0, 5), (0, 0, -1))
            for channel in color:
                assert 0.0 <= channel <= 1.0
                assert not math.isnan(channel)
