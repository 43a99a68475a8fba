from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ndrangex import config as nx_config
from ndrangex.diagnostics import log_operation
from ndrangex.errors import PHASE_BUILD, DeviceResourceExhausted, IndexBuildFailed
from ndrangex.ingest import PointBatch, PointCloud, split_batches
from ndrangex.logging import get_logger

from .bvh import BoundingVolumeHierarchy, build_bvh

LOGGER = get_logger("core.index")


@dataclass(frozen=True)
class StackedHierarchies:
    """All batch hierarchies packed into ``(B, ...)`` arrays for the kernels."""

    lower: np.ndarray
    upper: np.ndarray
    left: np.ndarray
    right: np.ndarray
    primitive: np.ndarray
    centers: np.ndarray
    max_depth: int


@dataclass(frozen=True)
class SpatialIndex:
    """One BVH per batch plus the coordinates they were built from."""

    cloud: PointCloud
    batches: Tuple[PointBatch, ...]
    hierarchies: Tuple[BoundingVolumeHierarchy, ...]
    radius: float

    @property
    def num_points(self) -> int:
        return self.cloud.num_points

    @property
    def num_batches(self) -> int:
        return len(self.batches)

    def stacked(self) -> StackedHierarchies:
        try:
            return StackedHierarchies(
                lower=np.stack([h.lower for h in self.hierarchies]),
                upper=np.stack([h.upper for h in self.hierarchies]),
                left=np.stack([h.left for h in self.hierarchies]),
                right=np.stack([h.right for h in self.hierarchies]),
                primitive=np.stack([h.primitive for h in self.hierarchies]),
                centers=np.stack(
                    [np.asarray(b.centers, dtype=np.float64) for b in self.batches]
                ),
                max_depth=max(h.depth for h in self.hierarchies),
            )
        except MemoryError as exc:
            raise DeviceResourceExhausted(
                "cannot pack batch hierarchies for the traversal kernels",
                phase=PHASE_BUILD,
            ) from exc


def build_index(
    cloud: PointCloud,
    radius: float,
    *,
    split_policy: str | None = None,
) -> SpatialIndex:
    """Split ``cloud`` into batches and build one hierarchy per batch."""

    policy = split_policy or nx_config.runtime_config().split_policy
    with log_operation(LOGGER, "index_build") as op_log:
        if cloud.is_empty() or cloud.num_batches == 0:
            raise IndexBuildFailed("point cloud is empty; nothing to index")
        batches = split_batches(cloud)
        hierarchies = tuple(
            build_bvh(batch.centers, radius, split_policy=policy, batch_id=batch.batch_id)
            for batch in batches
        )
        op_log.add_metadata(
            batches=len(batches),
            primitives=cloud.num_points,
            nodes=sum(h.num_nodes for h in hierarchies),
            max_depth=max(h.depth for h in hierarchies),
            split=policy,
        )
    return SpatialIndex(
        cloud=cloud,
        batches=batches,
        hierarchies=hierarchies,
        radius=float(radius),
    )


__all__ = ["SpatialIndex", "StackedHierarchies", "build_index"]
