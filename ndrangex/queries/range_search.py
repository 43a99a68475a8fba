from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterator, List

import numpy as np

from ndrangex import config as nx_config
from ndrangex.core.bvh import BoundingVolumeHierarchy
from ndrangex.core.index import SpatialIndex
from ndrangex.core.results import (
    COMBINE_AND,
    COMBINE_CODES,
    COMBINE_OR,
    COMBINE_SUM,
    SENTINEL,
    RowAppender,
    allocate_result_rows,
    canonicalise_rows,
    ensure_index_capacity,
    row_neighbors,
)
from ndrangex.diagnostics import log_operation
from ndrangex.errors import PHASE_QUERY, ConfigError
from ndrangex.logging import get_logger

from ._range_numba import range_search_numba

LOGGER = get_logger("queries.range_search")

ENGINE_NUMBA = "numba"
ENGINE_PYTHON = "python"
_ENGINES = (ENGINE_NUMBA, ENGINE_PYTHON)


@dataclass(frozen=True)
class SearchResult:
    """Per-query neighbour rows produced by :func:`range_search`.

    ``rows`` has shape ``(N, k)`` and dtype ``uint32``. Row ``q`` lists the
    accepted neighbours of point ``q`` followed by :data:`SENTINEL` padding.
    """

    rows: np.ndarray
    counts: np.ndarray
    k: int
    radius: float
    batch_combine: str
    engine: str
    sorted: bool
    seconds: float

    @property
    def num_queries(self) -> int:
        return int(self.rows.shape[0])

    @property
    def total_neighbors(self) -> int:
        return int(self.counts.sum())

    @property
    def saturated(self) -> int:
        """Number of rows that reached capacity ``k``."""

        return int(np.count_nonzero(self.counts >= self.k))

    def neighbors(self, query: int) -> np.ndarray:
        return row_neighbors(self.rows, query)


def iter_candidates(hierarchy: BoundingVolumeHierarchy, point: np.ndarray) -> Iterator[int]:
    """Yield primitives whose inflated box contains ``point``.

    Nodes are visited depth first with the left child before the right one, so
    the yield order is deterministic for a given hierarchy.
    """

    lower = hierarchy.lower
    upper = hierarchy.upper
    left = hierarchy.left
    right = hierarchy.right
    primitive = hierarchy.primitive
    x, y, z = (float(v) for v in point)
    stack: List[int] = [hierarchy.root]
    while stack:
        node = stack.pop()
        lo = lower[node]
        hi = upper[node]
        if x < lo[0] or x > hi[0] or y < lo[1] or y > hi[1] or z < lo[2] or z > hi[2]:
            continue
        if left[node] < 0:
            yield int(primitive[node])
            continue
        stack.append(int(right[node]))
        stack.append(int(left[node]))


def _sqdist(centers: np.ndarray, a: int, b: int) -> float:
    diff = centers[a] - centers[b]
    return float(np.sum(diff * diff))


def _accept(
    mode: int,
    query: int,
    candidate: int,
    traversed: int,
    centers: np.ndarray,
    radius_sq: float,
) -> bool:
    if mode == COMBINE_AND:
        return all(
            _sqdist(centers[b], query, candidate) <= radius_sq
            for b in range(centers.shape[0])
            if b != traversed
        )
    if mode == COMBINE_SUM:
        total = 0.0
        for b in range(centers.shape[0]):
            total += _sqdist(centers[b], query, candidate)
            if total > radius_sq:
                return False
    return True


def _search_query(
    query: int,
    hierarchies: tuple,
    centers: np.ndarray,
    radius_sq: float,
    mode: int,
    early_exit: bool,
    row: np.ndarray,
) -> int:
    appender = RowAppender(row)
    traversed = range(len(hierarchies)) if mode == COMBINE_OR else range(1)
    for b in traversed:
        batch_centers = centers[b]
        for candidate in iter_candidates(hierarchies[b], batch_centers[query]):
            if candidate == query:
                continue
            if _sqdist(batch_centers, query, candidate) > radius_sq:
                continue
            if mode == COMBINE_OR and appender.contains(candidate):
                continue
            if not _accept(mode, query, candidate, b, centers, radius_sq):
                continue
            appender.try_append(candidate)
            if early_exit and appender.full:
                return appender.count
    return appender.count


def range_search_python(
    index: SpatialIndex,
    rows: np.ndarray,
    *,
    mode: int,
    early_exit: bool,
) -> np.ndarray:
    """Reference engine: one sequential traversal per query."""

    centers = np.stack([np.asarray(b.centers, dtype=np.float64) for b in index.batches])
    radius_sq = float(index.radius) * float(index.radius)
    counts = np.zeros(rows.shape[0], dtype=np.int64)
    for query in range(rows.shape[0]):
        counts[query] = _search_query(
            query,
            index.hierarchies,
            centers,
            radius_sq,
            mode,
            early_exit,
            rows[query],
        )
    return counts


def _resolve_engine(engine: str | None, runtime: nx_config.RuntimeConfig) -> str:
    if engine is None:
        return ENGINE_NUMBA if runtime.enable_numba else ENGINE_PYTHON
    engine = engine.strip().lower()
    if engine not in _ENGINES:
        raise ConfigError(f"Unknown engine '{engine}'. Expected one of {list(_ENGINES)}.")
    return engine


def range_search(
    index: SpatialIndex,
    *,
    k: int,
    batch_combine: str | None = None,
    early_exit: bool | None = None,
    sort_results: bool | None = None,
    engine: str | None = None,
) -> SearchResult:
    """Find up to ``k`` neighbours within the index radius for every point.

    Each point of the indexed cloud is used as a query against the batch
    hierarchies. ``batch_combine`` decides how batch-local matches become an
    accepted neighbour:

    ``sum``
        Traverse batch 0, accept when the sum of squared per-batch distances
        is within ``radius**2`` (the exact D-dimensional test).
    ``and``
        Traverse batch 0, accept when every batch projection is within radius.
    ``or``
        Traverse every batch, accept any batch-local match once per row.
    ``first``
        Traverse and accept on batch 0 only.
    """

    runtime = nx_config.runtime_config()
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k <= 0:
        raise ConfigError(f"k must be a positive integer, got {k!r}", phase=PHASE_QUERY)
    combine = (batch_combine or runtime.batch_combine).strip().lower()
    mode = COMBINE_CODES.get(combine)
    if mode is None:
        raise ConfigError(
            f"Unknown batch combine mode '{combine}'. Expected one of {sorted(COMBINE_CODES)}.",
            phase=PHASE_QUERY,
        )
    early_exit = runtime.early_exit if early_exit is None else bool(early_exit)
    sort_results = runtime.sort_results if sort_results is None else bool(sort_results)
    selected = _resolve_engine(engine, runtime)

    with log_operation(LOGGER, "range_search") as op_log:
        ensure_index_capacity(index.num_points)
        rows = allocate_result_rows(index.num_points, int(k))
        start = time.perf_counter()
        if selected == ENGINE_NUMBA:
            counts = range_search_numba(
                index.stacked(),
                rows,
                radius=index.radius,
                mode=mode,
                early_exit=early_exit,
            )
        else:
            counts = range_search_python(index, rows, mode=mode, early_exit=early_exit)
        elapsed = time.perf_counter() - start
        if sort_results:
            rows = canonicalise_rows(rows)
        rows.setflags(write=False)
        op_log.add_metadata(
            queries=index.num_points,
            k=int(k),
            combine=combine,
            engine=selected,
            neighbors=int(counts.sum()),
            saturated=int(np.count_nonzero(counts >= k)),
        )

    return SearchResult(
        rows=rows,
        counts=np.asarray(counts, dtype=np.int64),
        k=int(k),
        radius=float(index.radius),
        batch_combine=combine,
        engine=selected,
        sorted=sort_results,
        seconds=elapsed,
    )


__all__ = [
    "ENGINE_NUMBA",
    "ENGINE_PYTHON",
    "SENTINEL",
    "SearchResult",
    "iter_candidates",
    "range_search",
    "range_search_python",
]
