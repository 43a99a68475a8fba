"""Spatial index structures and fixed-capacity result rows."""

from .bvh import NO_NODE, BoundingVolumeHierarchy, build_bvh
from .index import SpatialIndex, StackedHierarchies, build_index
from .results import (
    INDEX_DTYPE,
    SENTINEL,
    RowAppender,
    allocate_result_rows,
    canonicalise_rows,
    filled_counts,
    sentinel_suffix_ok,
)

__all__ = [
    "NO_NODE",
    "BoundingVolumeHierarchy",
    "build_bvh",
    "SpatialIndex",
    "StackedHierarchies",
    "build_index",
    "INDEX_DTYPE",
    "SENTINEL",
    "RowAppender",
    "allocate_result_rows",
    "canonicalise_rows",
    "filled_counts",
    "sentinel_suffix_ok",
]
