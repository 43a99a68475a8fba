"""ndrangex: bounded-radius, fixed-capacity self range search in D dimensions.

Quick Start
-----------
>>> import numpy as np
>>> from ndrangex import RangeSearch
>>>
>>> points = np.random.randn(10000, 5)
>>> search = RangeSearch().fit(points, radius=0.5)
>>> result = search.query(k=16)
>>> result.neighbors(0)          # accepted neighbours of point 0
>>> search.verify(result).render_lines()

Each point is its own query. Results are ``(N, k)`` uint32 rows padded with
``SENTINEL`` (``2**32 - 1``); a full row holds *some* ``k`` neighbours within
the radius, not necessarily the closest.

Classes
-------
RangeSearch : Fit an index over a point cloud and run the self range search.
Runtime : Configuration for engine, batch combination and diagnostics.
"""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("ndrangex")
except PackageNotFoundError:  # pragma: no cover - local checkout without install
    __version__ = "0.1.0"

from .api import RangeSearch, Runtime
from .core import (
    SENTINEL,
    BoundingVolumeHierarchy,
    SpatialIndex,
    build_bvh,
    build_index,
)
from .errors import (
    ConfigError,
    DeviceResourceExhausted,
    IndexBuildFailed,
    MalformedRow,
    NdRangeError,
    SourceUnavailable,
)
from .ingest import PointCloud, parse_point_rows, point_cloud_from_array, read_point_cloud
from .pipeline import PipelineResult, run_pipeline
from .queries import SearchResult, range_search
from .verify import VerificationReport, audit_recall, verify_results

__all__ = [
    "__version__",
    # Primary API
    "RangeSearch",
    "Runtime",
    "run_pipeline",
    "PipelineResult",
    # Building blocks
    "PointCloud",
    "read_point_cloud",
    "parse_point_rows",
    "point_cloud_from_array",
    "BoundingVolumeHierarchy",
    "SpatialIndex",
    "build_bvh",
    "build_index",
    "SearchResult",
    "range_search",
    "SENTINEL",
    "VerificationReport",
    "verify_results",
    "audit_recall",
    # Errors
    "NdRangeError",
    "ConfigError",
    "SourceUnavailable",
    "MalformedRow",
    "IndexBuildFailed",
    "DeviceResourceExhausted",
]
