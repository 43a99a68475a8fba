from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from ndrangex.api.runtime import Runtime
from ndrangex.core.index import SpatialIndex, build_index
from ndrangex.ingest import PointCloud, point_cloud_from_array
from ndrangex.queries.range_search import SearchResult, range_search
from ndrangex.verify import VerificationReport, verify_results


def _ensure_cloud(points: Any) -> PointCloud:
    if isinstance(points, PointCloud):
        return points
    return point_cloud_from_array(points)


@dataclass(frozen=True)
class RangeSearch:
    """Thin façade around index construction + self range search."""

    runtime: Runtime = field(default_factory=Runtime)
    index: SpatialIndex | None = None

    def fit(self, points: Any, *, radius: float) -> "RangeSearch":
        """Return a new façade holding an index over ``points``."""

        self.runtime.activate()
        cloud = _ensure_cloud(points)
        return replace(self, index=build_index(cloud, radius))

    def query(
        self,
        *,
        k: int,
        batch_combine: str | None = None,
        engine: str | None = None,
    ) -> SearchResult:
        index = self._require_index()
        self.runtime.activate()
        return range_search(index, k=k, batch_combine=batch_combine, engine=engine)

    def verify(self, result: SearchResult) -> VerificationReport:
        index = self._require_index()
        return verify_results(result.rows, index.cloud.coordinates, index.radius)

    def _require_index(self) -> SpatialIndex:
        if self.index is None:
            raise ValueError("RangeSearch requires an index; call fit() first.")
        return self.index


__all__ = ["RangeSearch"]
