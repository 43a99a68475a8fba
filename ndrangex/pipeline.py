"""End-to-end self range search: ingest, index, search, verify.

Each phase runs to completion before the next starts. Any
:class:`~ndrangex.errors.NdRangeError` escaping a phase is tagged with that
phase so the host can report where the run failed.
"""

from __future__ import annotations

import math
import numbers
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator

from ndrangex import config as nx_config
from ndrangex.api.runtime import Runtime
from ndrangex.core.index import SpatialIndex, build_index
from ndrangex.errors import (
    PHASE_BUILD,
    PHASE_CONFIG,
    PHASE_INGEST,
    PHASE_QUERY,
    PHASE_VERIFY,
    ConfigError,
    DeviceResourceExhausted,
    NdRangeError,
)
from ndrangex.ingest import PointCloud, read_point_cloud
from ndrangex.logging import get_logger
from ndrangex.queries.range_search import SearchResult, range_search
from ndrangex.telemetry import RunLogWriter
from ndrangex.verify import RecallAudit, VerificationReport, audit_recall, verify_results

LOGGER = get_logger("pipeline")


@dataclass
class PipelineResult:
    cloud: PointCloud
    index: SpatialIndex
    search: SearchResult
    report: VerificationReport
    audit: RecallAudit | None = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def total_seconds(self) -> float:
        return float(sum(self.timings.values()))


@contextmanager
def _phase(name: str, timings: Dict[str, float]) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except NdRangeError as exc:
        raise exc.with_phase(name)
    except MemoryError as exc:
        raise DeviceResourceExhausted(f"out of memory during {name}", phase=name) from exc
    finally:
        timings[name] = time.perf_counter() - start


def validate_query_args(radius: float, k: int) -> None:
    if isinstance(radius, bool) or not isinstance(radius, numbers.Real):
        raise ConfigError(f"radius must be a number, got {radius!r}", phase=PHASE_CONFIG)
    if not math.isfinite(radius) or radius <= 0:
        raise ConfigError(f"radius must be positive and finite, got {radius}", phase=PHASE_CONFIG)
    if isinstance(k, bool) or not isinstance(k, numbers.Integral) or k <= 0:
        raise ConfigError(f"k must be a positive integer, got {k!r}", phase=PHASE_CONFIG)


def run_pipeline(
    path: str | Path,
    *,
    radius: float,
    k: int,
    runtime: Runtime | None = None,
    audit: bool = False,
    log_writer: RunLogWriter | None = None,
) -> PipelineResult:
    """Run ingestion, index build, range search and verification on ``path``."""

    validate_query_args(radius, k)
    if runtime is not None:
        runtime.activate()
    config = nx_config.runtime_config()
    timings: Dict[str, float] = {}

    with _phase(PHASE_INGEST, timings):
        cloud = read_point_cloud(path)
    LOGGER.info(
        "dim=%d batch=%d numPrims=%d radius=%g K=%d",
        cloud.dimension,
        cloud.num_batches,
        cloud.num_points,
        radius,
        k,
    )
    _record(log_writer, PHASE_INGEST, timings, points=cloud.num_points, dimension=cloud.dimension)

    with _phase(PHASE_BUILD, timings):
        index = build_index(cloud, radius)
    _record(log_writer, PHASE_BUILD, timings, num_batches=index.num_batches, split_policy=config.split_policy)

    with _phase(PHASE_QUERY, timings):
        search = range_search(index, k=k)
    _record(
        log_writer,
        PHASE_QUERY,
        timings,
        k=k,
        radius=float(radius),
        batch_combine=search.batch_combine,
        engine=search.engine,
        total_neighbors=search.total_neighbors,
        saturated=search.saturated,
    )

    recall = None
    with _phase(PHASE_VERIFY, timings):
        report = verify_results(search.rows, cloud.coordinates, radius)
        if audit:
            recall = audit_recall(
                search.rows,
                cloud.coordinates,
                radius,
                batch_combine=search.batch_combine,
            )
    _record(
        log_writer,
        PHASE_VERIFY,
        timings,
        incorrect_neighbors=report.incorrect_neighbors,
        missed_pairs=None if recall is None else recall.missed_pairs,
    )

    return PipelineResult(
        cloud=cloud,
        index=index,
        search=search,
        report=report,
        audit=recall,
        timings=timings,
    )


def _record(
    writer: RunLogWriter | None,
    phase: str,
    timings: Dict[str, float],
    **extra: object,
) -> None:
    if writer is None:
        return
    writer.record_phase(phase, seconds=timings.get(phase, 0.0), **extra)


__all__ = ["PipelineResult", "run_pipeline", "validate_query_args"]
