"""Bounding volume hierarchy construction.

The hierarchy is built once on the host from the primitives' bounding boxes
and flattened into parallel NumPy arrays that the scene tables upload to
Taichi fields. Nodes are stored depth first with the root at index 0:

- ``box_min`` / ``box_max``: node bounds, the union of every member box,
- ``left`` / ``right``: child node indices, -1 for leaves,
- ``first`` / ``count``: the slice of ``prim_indices`` owned by a leaf.

Two partition strategies are available. Both split along the axis where the
primitive centroids spread the most.

- ``median`` puts half of the primitives, sorted by centroid, on each side.
- ``sah`` buckets the centroids into 12 bins and picks the boundary that
  minimises SA(left) * n_left + SA(right) * n_right. If no boundary beats
  the cost of keeping the node as a leaf, SA(node) * n, the node stays a leaf.

A node becomes a leaf when it holds at most ``leaf_size`` primitives, when it
reaches ``max_depth`` or when all member centroids coincide.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from src.nfftrace.geometry.aabb import AABB

logger = logging.getLogger(__name__)

SAH_BUCKETS = 12


@dataclass(frozen=True)
class FlatBVH:
    """A BVH flattened into arrays, ready for upload.

    Attributes:
        box_min: (N, 3) minimum corners of the node boxes.
        box_max: (N, 3) maximum corners of the node boxes.
        left: (N,) left child index, -1 for leaves.
        right: (N,) right child index, -1 for leaves.
        first: (N,) offset of a leaf's first entry in prim_indices.
        count: (N,) number of primitives in a leaf (0 for interior nodes).
        prim_indices: Primitive indices reordered so each leaf is contiguous.
        depth: Number of levels in the tree (0 for an empty tree).
    """

    box_min: npt.NDArray[np.float64]
    box_max: npt.NDArray[np.float64]
    left: npt.NDArray[np.int32]
    right: npt.NDArray[np.int32]
    first: npt.NDArray[np.int32]
    count: npt.NDArray[np.int32]
    prim_indices: npt.NDArray[np.int32]
    depth: int

    @property
    def node_count(self) -> int:
        return int(self.left.shape[0])

    @property
    def leaf_count(self) -> int:
        return int(np.count_nonzero(self.left < 0))

    @property
    def max_leaf_size(self) -> int:
        if self.node_count == 0:
            return 0
        return int(self.count.max())

    def node_box(self, node: int) -> AABB:
        return AABB(
            tuple(float(c) for c in self.box_min[node]),
            tuple(float(c) for c in self.box_max[node]),
        )

    def leaf_primitives(self, node: int) -> list[int]:
        """Primitive indices stored in a leaf node."""
        start = int(self.first[node])
        return [int(i) for i in self.prim_indices[start : start + int(self.count[node])]]


class _Builder:
    """Recursive partitioner collecting nodes in depth-first order."""

    def __init__(
        self,
        mins: npt.NDArray[np.float64],
        maxs: npt.NDArray[np.float64],
        leaf_size: int,
        max_depth: int,
        method: str,
    ) -> None:
        self.mins = mins
        self.maxs = maxs
        self.centroids = 0.5 * (mins + maxs)
        self.leaf_size = leaf_size
        self.max_depth = max_depth
        self.method = method

        self.box_min: list[npt.NDArray[np.float64]] = []
        self.box_max: list[npt.NDArray[np.float64]] = []
        self.left: list[int] = []
        self.right: list[int] = []
        self.first: list[int] = []
        self.count: list[int] = []
        self.ordered: list[int] = []
        self.depth = 0

    def build(self, indices: npt.NDArray[np.int64], level: int) -> int:
        node = len(self.left)
        self.box_min.append(self.mins[indices].min(axis=0))
        self.box_max.append(self.maxs[indices].max(axis=0))
        self.left.append(-1)
        self.right.append(-1)
        self.first.append(0)
        self.count.append(0)
        self.depth = max(self.depth, level + 1)

        split = None
        if len(indices) > self.leaf_size and level + 1 < self.max_depth:
            split = self._partition(indices, node)

        if split is None:
            self.first[node] = len(self.ordered)
            self.count[node] = len(indices)
            self.ordered.extend(int(i) for i in indices)
            return node

        left_indices, right_indices = split
        self.left[node] = self.build(left_indices, level + 1)
        self.right[node] = self.build(right_indices, level + 1)
        return node

    def _partition(self, indices, node):
        centroids = self.centroids[indices]
        lo = centroids.min(axis=0)
        extent = centroids.max(axis=0) - lo
        axis = int(np.argmax(extent))
        if extent[axis] <= 1e-12:
            # All centroids coincide: no split separates them
            return None

        if self.method == "sah":
            return self._sah_split(indices, axis, lo[axis], extent[axis], node)

        order = np.argsort(centroids[:, axis], kind="stable")
        mid = len(indices) // 2
        return indices[order[:mid]], indices[order[mid:]]

    def _sah_split(self, indices, axis, lo, extent, node):
        centroids = self.centroids[indices, axis]
        buckets = np.minimum(
            ((centroids - lo) / extent * SAH_BUCKETS).astype(np.int64), SAH_BUCKETS - 1
        )

        counts = np.zeros(SAH_BUCKETS, dtype=np.int64)
        bucket_min = np.full((SAH_BUCKETS, 3), np.inf)
        bucket_max = np.full((SAH_BUCKETS, 3), -np.inf)
        for local, bucket in enumerate(buckets):
            prim = indices[local]
            counts[bucket] += 1
            bucket_min[bucket] = np.minimum(bucket_min[bucket], self.mins[prim])
            bucket_max[bucket] = np.maximum(bucket_max[bucket], self.maxs[prim])

        best_cost = _surface_area(self.box_min[node], self.box_max[node]) * len(indices)
        best_split = None
        for split in range(1, SAH_BUCKETS):
            n_left = int(counts[:split].sum())
            n_right = int(counts[split:].sum())
            if n_left == 0 or n_right == 0:
                continue
            left_area = _surface_area(
                bucket_min[:split].min(axis=0), bucket_max[:split].max(axis=0)
            )
            right_area = _surface_area(
                bucket_min[split:].min(axis=0), bucket_max[split:].max(axis=0)
            )
            cost = left_area * n_left + right_area * n_right
            if cost < best_cost:
                best_cost = cost
                best_split = split

        if best_split is None:
            return None
        goes_left = buckets < best_split
        return indices[goes_left], indices[~goes_left]

    def finish(self) -> FlatBVH:
        return FlatBVH(
            box_min=np.array(self.box_min, dtype=np.float64).reshape(-1, 3),
            box_max=np.array(self.box_max, dtype=np.float64).reshape(-1, 3),
            left=np.array(self.left, dtype=np.int32),
            right=np.array(self.right, dtype=np.int32),
            first=np.array(self.first, dtype=np.int32),
            count=np.array(self.count, dtype=np.int32),
            prim_indices=np.array(self.ordered, dtype=np.int32),
            depth=self.depth,
        )


def _surface_area(lo, hi) -> float:
    d = np.maximum(hi - lo, 0.0)
    return float(2.0 * (d[0] * d[1] + d[1] * d[2] + d[0] * d[2]))


def build_bvh(
    boxes: Sequence[AABB],
    leaf_size: int = 4,
    max_depth: int = 32,
    method: str = "median",
) -> FlatBVH:
    """Build a flattened BVH over a list of bounding boxes.

    Args:
        boxes: One box per primitive, indexed like the scene's primitives.
        leaf_size: Largest number of primitives kept in a leaf.
        max_depth: Largest number of levels in the tree.
        method: ``"median"`` or ``"sah"``.

    Returns:
        The flattened hierarchy. An empty box list gives a tree with no nodes.

    Raises:
        ValueError: If leaf_size or max_depth is below 1 or the method is
            unknown.
    """
    if leaf_size < 1:
        raise ValueError(f"leaf_size must be at least 1, got {leaf_size}")
    if max_depth < 1:
        raise ValueError(f"max_depth must be at least 1, got {max_depth}")
    if method not in ("median", "sah"):
        raise ValueError(f"Unknown BVH split method: {method!r}")

    count = len(boxes)
    mins = np.array([box.minimum for box in boxes], dtype=np.float64).reshape(count, 3)
    maxs = np.array([box.maximum for box in boxes], dtype=np.float64).reshape(count, 3)

    builder = _Builder(mins, maxs, leaf_size, max_depth, method)
    if count > 0:
        builder.build(np.arange(count), 0)
    bvh = builder.finish()

    logger.debug(
        "Built %s BVH over %d primitives: %d nodes, depth %d, largest leaf %d",
        method,
        count,
        bvh.node_count,
        bvh.depth,
        bvh.max_leaf_size,
    )
    return bvh
