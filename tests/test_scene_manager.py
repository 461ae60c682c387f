"""Unit tests for the SceneManager and the device scene tables.

Tests cover:
- Material, light and primitive registration
- Validation of material ids, background colors and capacities
- Building the immutable Scene
- Uploading a Scene into the Taichi tables
"""

import pytest

from src.nfftrace.camera.view import View
from src.nfftrace.core.settings import MAX_LIGHTS, RenderSettings
from src.nfftrace.errors import GeometryError, SceneError
from src.nfftrace.geometry.primitive import PrimitiveKind, SpherePrimitive
from src.nfftrace.materials.phong import Material
from src.nfftrace.scene.manager import DEFAULT_BACKGROUND, Scene, SceneManager

VIEW = View((0, 0, 10), (0, 0, 0), (0, 1, 0), 45.0, 16, 12)


@pytest.fixture
def manager():
    """A SceneManager with one material and a view."""
    scene = SceneManager()
    scene.add_material(Material(color=(0.8, 0.2, 0.2), diffuse=0.9))
    scene.set_view(VIEW)
    yield scene
    scene.clear()


class TestRegistration:
    def test_material_ids_are_sequential(self):
        scene = SceneManager()
        assert scene.add_material(Material()) == 0
        assert scene.add_material(Material(color=(0, 1, 0))) == 1
        assert len(scene.materials) == 2

    def test_primitive_ids_are_sequential(self, manager):
        assert manager.add_sphere((0, 0, 0), 1.0, 0) == 0
        assert manager.add_cone((0, 0, 0), 1.0, (0, 1, 0), 0.0, 0) == 1
        assert manager.add_polygon([(0, 0, 0), (1, 0, 0), (0, 1, 0)], 0) == 2
        kinds = [p.kind for p in manager.primitives]
        assert kinds == [PrimitiveKind.SPHERE, PrimitiveKind.CONE, PrimitiveKind.POLYGON]

    def test_add_primitive_directly(self, manager):
        sphere = SpherePrimitive(center=(1, 2, 3), radius=0.5, material_id=0)
        assert manager.add_primitive(sphere) == 0
        assert manager.primitives[0] is sphere

    def test_unknown_material_rejected(self, manager):
        with pytest.raises(SceneError, match="material_id"):
            manager.add_sphere((0, 0, 0), 1.0, 3)

    def test_degenerate_primitive_rejected(self, manager):
        with pytest.raises(GeometryError):
            manager.add_polygon([(0, 0, 0), (1, 1, 1), (2, 2, 2)], 0)
        assert manager.primitives == []

    def test_lights(self, manager):
        manager.add_light((0, 5, 0))
        manager.add_light((1, 1, 1), (0.2, 0.3, 0.4))
        assert manager.lights[0].color == (1.0, 1.0, 1.0)
        assert manager.lights[1].color == (0.2, 0.3, 0.4)

    def test_background(self, manager):
        assert manager.background == DEFAULT_BACKGROUND
        manager.set_background((0.1, 0.2, 0.3))
        assert manager.background == (0.1, 0.2, 0.3)

    @pytest.mark.parametrize("color", [(1, 1), (0, -1, 0), (0, float("nan"), 0)])
    def test_invalid_background(self, manager, color):
        with pytest.raises(SceneError):
            manager.set_background(color)

    def test_clear(self, manager):
        manager.add_sphere((0, 0, 0), 1.0, 0)
        manager.add_light((0, 5, 0))
        manager.set_background((0, 0, 0))
        manager.clear()
        assert manager.materials == []
        assert manager.primitives == []
        assert manager.lights == []
        assert manager.view is None
        assert manager.background == DEFAULT_BACKGROUND


class TestBuild:
    def test_build_returns_immutable_scene(self, manager):
        manager.add_sphere((0, 0, 0), 1.0, 0)
        manager.add_polygon([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)], 0)
        scene = manager.build()
        assert isinstance(scene, Scene)
        assert len(scene.primitives) == 2
        assert scene.vertex_count == 4
        assert scene.view == VIEW
        with pytest.raises(AttributeError):
            scene.background = (0, 0, 0)

    def test_scene_is_a_snapshot(self, manager):
        manager.add_sphere((0, 0, 0), 1.0, 0)
        scene = manager.build()
        manager.add_sphere((3, 0, 0), 1.0, 0)
        assert len(scene.primitives) == 1

    def test_count_by_kind(self, manager):
        manager.add_sphere((0, 0, 0), 1.0, 0)
        manager.add_sphere((3, 0, 0), 1.0, 0)
        manager.add_cone((0, 0, 0), 0.5, (0, 0, 2), 0.5, 0)
        counts = manager.build().count_by_kind()
        assert counts[PrimitiveKind.SPHERE] == 2
        assert counts[PrimitiveKind.CYLINDER] == 1
        assert counts[PrimitiveKind.POLYGON] == 0

    def test_bvh_covers_every_primitive(self, manager):
        for k in range(10):
            manager.add_sphere((2.0 * k, 0, 0), 0.5, 0)
        scene = manager.build(RenderSettings(leaf_size=2))
        assert sorted(scene.bvh.prim_indices.tolist()) == list(range(10))
        assert scene.bvh.max_leaf_size <= 2

    def test_empty_scene_builds(self, manager):
        scene = manager.build()
        assert scene.primitives == ()
        assert scene.bvh.node_count == 0

    def test_missing_view(self):
        scene = SceneManager()
        scene.add_material(Material())
        with pytest.raises(SceneError, match="view"):
            scene.build()

    def test_too_many_lights(self, manager):
        for _ in range(MAX_LIGHTS + 1):
            manager.add_light((0, 5, 0))
        with pytest.raises(SceneError, match="lights"):
            manager.build()


class TestUpload:
    """Copying a built Scene into the device tables."""

    def test_counts(self, manager, upload):
        from src.nfftrace.scene import tables

        manager.add_material(Material(color=(0, 0, 1)))
        manager.add_sphere((0, 0, 0), 1.0, 0)
        manager.add_cone((2, 0, 0), 1.0, (2, 2, 0), 0.5, 1)
        manager.add_polygon([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)], 1)
        manager.add_light((0, 5, 0))
        scene = upload(manager)

        assert tables.get_primitive_count() == 3
        assert tables.get_material_count() == 2
        assert tables.get_light_count() == 1
        assert tables.get_bvh_node_count() == scene.bvh.node_count
        assert tables.num_spheres[None] == 1
        assert tables.num_cones[None] == 1
        assert tables.num_polygons[None] == 1
        assert tables.num_vertices[None] == 4

    def test_index_table(self, manager, upload):
        from src.nfftrace.scene import tables

        manager.add_material(Material(color=(0, 0, 1)))
        manager.add_polygon([(0, 0, 0), (1, 0, 0), (0, 1, 0)], 1)
        manager.add_sphere((0, 0, 0), 1.0, 0)
        manager.add_sphere((3, 0, 0), 2.0, 1)
        upload(manager)

        assert tables.prim_kinds[0] == int(PrimitiveKind.POLYGON)
        assert tables.prim_kinds[2] == int(PrimitiveKind.SPHERE)
        assert tables.prim_local_indices[2] == 1
        assert tables.prim_material_ids[2] == 1
        assert tables.sphere_radii[1] == pytest.approx(2.0)

    def test_material_and_background(self, manager, upload):
        from src.nfftrace.scene import tables

        manager.set_background((0.25, 0.5, 0.75))
        upload(manager)
        color = tables.material_colors[0]
        assert color[0] == pytest.approx(0.8)
        assert tables.material_diffuse[0] == pytest.approx(0.9)
        background = tables.background_color[None]
        assert background[2] == pytest.approx(0.75)

    def test_reupload_replaces_tables(self, manager, upload):
        from src.nfftrace.scene import tables

        for k in range(5):
            manager.add_sphere((2.0 * k, 0, 0), 0.5, 0)
        upload(manager)
        assert tables.get_primitive_count() == 5

        other = SceneManager()
        other.add_material(Material())
        other.add_sphere((0, 0, 0), 1.0, 0)
        other.set_view(VIEW)
        upload(other)
        assert tables.get_primitive_count() == 1
        assert tables.get_material_count() == 1
        assert tables.num_spheres[None] == 1

    def test_clear_scene(self, manager, upload):
        from src.nfftrace.scene import tables

        manager.add_sphere((0, 0, 0), 1.0, 0)
        upload(manager)
        tables.clear_scene()
        assert tables.get_primitive_count() == 0
        assert tables.get_bvh_node_count() == 0
