"""Bounding-volume hierarchy over radius-inflated point primitives.

Every point of a batch becomes one primitive: the axis-aligned box
``center +/- radius``. A query point lies inside a primitive's box whenever it
is within ``radius`` of the centre, so a traversal that only descends into
nodes containing the query point never misses a true neighbour.

Storage is a set of flat arrays indexed by node id (see ``BoundingVolumeHierarchy``)
so the same structure can be walked by the Python reference engine and by the
numba kernels. Node ids are allocated in pre-order: both children of a node
always have larger ids than the node itself.

Split policies
--------------
``median``
    Object median along the widest axis of the centroids. Depth is
    ``ceil(log2 N)``, which bounds the traversal stack; this is the default.
``midpoint``
    Spatial midpoint of the widest axis. Tighter boxes on clustered data at the
    price of a possibly deeper tree; falls back to the median when every
    centroid lands on one side.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ndrangex import config as nx_config
from ndrangex.errors import DeviceResourceExhausted, IndexBuildFailed, PHASE_BUILD
from ndrangex.logging import get_logger

from .primitives import box_contains, sphere_bounds

LOGGER = get_logger("core.bvh")

NO_NODE = -1
_BOUND_EPS = 1e-12


@dataclass(frozen=True)
class BoundingVolumeHierarchy:
    """Immutable BVH for one batch.

    ``lower``/``upper`` hold node boxes with shape ``(M, 3)`` where
    ``M = 2 * N - 1``. ``left``/``right`` are child ids (``-1`` on leaves) and
    ``primitive`` is the point index referenced by a leaf (``-1`` on internal
    nodes). ``centers`` is the batch's coordinate array, borrowed read-only.
    """

    lower: np.ndarray
    upper: np.ndarray
    left: np.ndarray
    right: np.ndarray
    primitive: np.ndarray
    centers: np.ndarray
    radius: float
    batch_id: int
    split_policy: str
    depth: int

    @property
    def num_nodes(self) -> int:
        return int(self.left.shape[0])

    @property
    def num_primitives(self) -> int:
        return int(self.centers.shape[0])

    @property
    def root(self) -> int:
        return 0

    def is_leaf(self, node: int) -> bool:
        return int(self.left[node]) == NO_NODE

    def validate(self) -> None:
        """Check structural invariants; raises ``AssertionError`` on violation."""

        leaves = self.primitive[self.primitive >= 0]
        assert leaves.shape[0] == self.num_primitives, "every primitive needs one leaf"
        assert np.array_equal(np.sort(leaves), np.arange(self.num_primitives))
        internal = np.nonzero(self.left >= 0)[0]
        for node in internal:
            for child in (int(self.left[node]), int(self.right[node])):
                assert child > node, "children must follow their parent"
                assert box_contains(
                    self.lower[node], self.upper[node], self.lower[child], self.upper[child]
                ), f"node {node} does not contain child {child}"
        leaf_nodes = np.nonzero(self.left < 0)[0]
        assert np.all(self.primitive[leaf_nodes] >= 0)
        assert np.all(self.right[leaf_nodes] < 0)


def _bound_padding(centers: np.ndarray, radius: float) -> float:
    scale = float(np.max(np.abs(centers))) if centers.size else 0.0
    return _BOUND_EPS * max(1.0, scale, radius)


def _widest_axis(points: np.ndarray) -> int:
    extent = points.max(axis=0) - points.min(axis=0)
    return int(np.argmax(extent))


def _split_median(order: np.ndarray, axis_values: np.ndarray) -> Tuple[np.ndarray, int]:
    half = axis_values.shape[0] // 2
    perm = np.argpartition(axis_values, half)
    return order[perm], half


def _split_midpoint(order: np.ndarray, axis_values: np.ndarray) -> Tuple[np.ndarray, int]:
    pivot = 0.5 * (float(axis_values.min()) + float(axis_values.max()))
    mask = axis_values < pivot
    count_left = int(mask.sum())
    if count_left == 0 or count_left == axis_values.shape[0]:
        return _split_median(order, axis_values)
    return np.concatenate((order[mask], order[~mask])), count_left


_SPLITTERS = {
    "median": _split_median,
    "midpoint": _split_midpoint,
}


def build_bvh(
    centers: np.ndarray,
    radius: float,
    *,
    split_policy: str | None = None,
    batch_id: int = 0,
) -> BoundingVolumeHierarchy:
    """Build a BVH over ``centers`` (shape ``(N, 3)``) inflated by ``radius``."""

    policy = split_policy or nx_config.runtime_config().split_policy
    splitter = _SPLITTERS.get(policy)
    if splitter is None:
        raise IndexBuildFailed(f"unknown split policy '{policy}'")
    points = np.asarray(centers)
    if points.ndim != 2 or points.shape[0] == 0:
        raise IndexBuildFailed(
            f"batch {batch_id} has no primitives; cannot build an index",
        )
    if isinstance(radius, bool) or not isinstance(radius, numbers.Real):
        raise IndexBuildFailed(f"search radius must be a real number, got {radius!r}")
    radius = float(radius)
    if not (math.isfinite(radius) and radius > 0):
        raise IndexBuildFailed(f"search radius must be positive and finite, got {radius!r}")
    if not np.all(np.isfinite(points)):
        raise IndexBuildFailed(f"batch {batch_id} contains non-finite coordinates")

    num_points = int(points.shape[0])
    num_nodes = 2 * num_points - 1
    try:
        lower = np.empty((num_nodes, points.shape[1]), dtype=np.float64)
        upper = np.empty((num_nodes, points.shape[1]), dtype=np.float64)
        left = np.full(num_nodes, NO_NODE, dtype=np.int64)
        right = np.full(num_nodes, NO_NODE, dtype=np.int64)
        primitive = np.full(num_nodes, NO_NODE, dtype=np.int64)
        node_depth = np.zeros(num_nodes, dtype=np.int64)
    except MemoryError as exc:
        raise DeviceResourceExhausted(
            f"cannot allocate {num_nodes} BVH nodes for batch {batch_id}",
            phase=PHASE_BUILD,
        ) from exc

    coords = points.astype(np.float64, copy=False)
    order = np.arange(num_points, dtype=np.int64)
    stack = [(0, 0, num_points)]
    next_id = 1
    while stack:
        node, start, end = stack.pop()
        count = end - start
        if count == 1:
            primitive[node] = order[start]
            continue
        segment = order[start:end]
        axis = _widest_axis(coords[segment])
        reordered, split = splitter(segment, coords[segment, axis])
        order[start:end] = reordered
        left_id, right_id = next_id, next_id + 1
        next_id += 2
        left[node] = left_id
        right[node] = right_id
        node_depth[left_id] = node_depth[node] + 1
        node_depth[right_id] = node_depth[node] + 1
        stack.append((right_id, start + split, end))
        stack.append((left_id, start, start + split))

    pad = _bound_padding(coords, float(radius))
    leaf_nodes = np.nonzero(primitive >= 0)[0]
    leaf_lower, leaf_upper = sphere_bounds(coords[primitive[leaf_nodes]], float(radius) + pad)
    lower[leaf_nodes] = leaf_lower
    upper[leaf_nodes] = leaf_upper

    max_depth = int(node_depth.max()) if num_nodes else 0
    internal = left >= 0
    for depth in range(max_depth - 1, -1, -1):
        nodes = np.nonzero(internal & (node_depth == depth))[0]
        if nodes.size == 0:
            continue
        lower[nodes] = np.minimum(lower[left[nodes]], lower[right[nodes]])
        upper[nodes] = np.maximum(upper[left[nodes]], upper[right[nodes]])

    for array in (lower, upper, left, right, primitive):
        array.setflags(write=False)

    LOGGER.debug(
        "Built BVH for batch %d: primitives=%d nodes=%d depth=%d split=%s",
        batch_id,
        num_points,
        num_nodes,
        max_depth,
        policy,
    )
    return BoundingVolumeHierarchy(
        lower=lower,
        upper=upper,
        left=left,
        right=right,
        primitive=primitive,
        centers=points,
        radius=float(radius),
        batch_id=int(batch_id),
        split_policy=policy,
        depth=max_depth,
    )


__all__ = ["BoundingVolumeHierarchy", "NO_NODE", "build_bvh"]
