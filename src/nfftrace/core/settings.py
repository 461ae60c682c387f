"""Render configuration and device table capacities.

Taichi fields are preallocated at import time, so every table has a fixed
capacity. Scenes that do not fit are rejected when they are built, before
any field is touched.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.nfftrace.materials.phong import ShadingModel

# =============================================================================
# Device table capacities
# =============================================================================

MAX_PRIMITIVES = 4096
MAX_VERTICES = 16384
MAX_MATERIALS = 1024
MAX_LIGHTS = 64
MAX_BVH_NODES = 2 * MAX_PRIMITIVES

MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Frames in the per-thread ray stack of the shading kernel. The tree walk keeps
# one frame per level, so MAX_SUPPORTED_DEPTH must stay below this.
RAY_STACK_SIZE = 32
MAX_SUPPORTED_DEPTH = 24

# Entries in the per-thread traversal stack
BVH_STACK_SIZE = 64
MAX_BVH_DEPTH = 48

SPLIT_METHODS = ("median", "sah")


@dataclass
class RenderSettings:
    """Tunable parameters of a render.

    Attributes:
        max_depth: Deepest secondary ray generation traced. Rays beyond it
            contribute black. 0 disables reflection and refraction.
        shading_model: Specular highlight model.
        ray_epsilon: Distance secondary ray origins are pushed off a surface
            along its normal.
        t_min: Smallest parametric distance accepted as a hit.
        band_height: Rows rendered per kernel launch.
        leaf_size: Largest number of primitives in a BVH leaf.
        max_bvh_depth: Deepest BVH level the builder may create.
        split_method: BVH partition strategy, ``"median"`` or ``"sah"``.
    """

    max_depth: int = 5
    shading_model: ShadingModel = ShadingModel.PHONG
    ray_epsilon: float = 1e-3
    t_min: float = 1e-4
    band_height: int = 16
    leaf_size: int = 4
    max_bvh_depth: int = 32
    split_method: str = "median"

    def __post_init__(self) -> None:
        if not 0 <= self.max_depth <= MAX_SUPPORTED_DEPTH:
            raise ValueError(
                f"max_depth must be between 0 and {MAX_SUPPORTED_DEPTH}, got {self.max_depth}"
            )
        self.shading_model = ShadingModel(self.shading_model)
        if not self.ray_epsilon > 0.0:
            raise ValueError(f"ray_epsilon must be positive, got {self.ray_epsilon}")
        if not self.t_min > 0.0:
            raise ValueError(f"t_min must be positive, got {self.t_min}")
        if self.band_height < 1:
            raise ValueError(f"band_height must be at least 1, got {self.band_height}")
        if self.leaf_size < 1:
            raise ValueError(f"leaf_size must be at least 1, got {self.leaf_size}")
        if not 1 <= self.max_bvh_depth <= MAX_BVH_DEPTH:
            raise ValueError(
                f"max_bvh_depth must be between 1 and {MAX_BVH_DEPTH}, got {self.max_bvh_depth}"
            )
        if self.split_method not in SPLIT_METHODS:
            raise ValueError(
                f"split_method must be one of {SPLIT_METHODS}, got {self.split_method!r}"
            )
