"""Pytest configuration for nfftrace tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_device_tables():
    """Clear the uploaded scene and render target before and after each test."""
    # Import here so the fields are created after ti.init()
    from src.nfftrace.core import renderer
    from src.nfftrace.core.integrator import clear_render_target
    from src.nfftrace.scene.tables import clear_scene

    def _clear_all():
        clear_scene()
        clear_render_target()
        renderer._resident = None

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def upload():
    """Upload a SceneManager's scene to the device tables and return the Scene."""
    from src.nfftrace.scene.tables import upload_scene

    def _upload(manager, settings=None):
        scene = manager.build(settings)
        upload_scene(scene)
        return scene

    return _upload
