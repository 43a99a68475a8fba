"""Post-search verification of result rows against exact distances.

Verification only reads the rows. Squared distances are accumulated one
3-coordinate batch at a time, the same way the traversal engines accumulate
them, so a neighbour lying exactly on the radius is judged consistently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Tuple

import numpy as np

from ndrangex.core.results import SENTINEL, filled_counts
from ndrangex.diagnostics import log_operation
from ndrangex.errors import PHASE_VERIFY, ConfigError
from ndrangex.ingest import BATCH_WIDTH, num_batches_for
from ndrangex.logging import get_logger

LOGGER = get_logger("verify")

_AUDIT_CHUNK = 256


@dataclass(frozen=True)
class VerificationReport:
    num_queries: int
    total_neighbors: int
    incorrect_neighbors: int
    excess_distance_sum: float
    incorrect_distance_sum: float
    self_matches: int = 0
    out_of_range: int = 0

    @property
    def avg_neighbors_per_query(self) -> float:
        if self.num_queries == 0:
            return 0.0
        return self.total_neighbors / self.num_queries

    @property
    def avg_incorrect_per_query(self) -> float:
        if self.num_queries == 0:
            return 0.0
        return self.incorrect_neighbors / self.num_queries

    @property
    def mean_excess_distance(self) -> float | None:
        if self.incorrect_neighbors == 0:
            return None
        return self.excess_distance_sum / self.incorrect_neighbors

    @property
    def mean_incorrect_distance(self) -> float | None:
        if self.incorrect_neighbors == 0:
            return None
        return self.incorrect_distance_sum / self.incorrect_neighbors

    @property
    def ok(self) -> bool:
        return self.incorrect_neighbors == 0 and self.self_matches == 0 and self.out_of_range == 0

    def render_lines(self) -> List[str]:
        lines = [
            f"Avg neighbor/query: {self.avg_neighbors_per_query:g}",
            f"Avg wrong neighbor/query: {self.avg_incorrect_per_query:g}",
        ]
        if self.incorrect_neighbors:
            lines.append(f"Avg wrong dist: {self.mean_incorrect_distance:g}")
            lines.append(f"Avg excess dist: {self.mean_excess_distance:g}")
        if self.self_matches:
            lines.append(f"Self matches: {self.self_matches}")
        if self.out_of_range:
            lines.append(f"Out-of-range indices: {self.out_of_range}")
        return lines


@dataclass(frozen=True)
class RecallAudit:
    """Brute-force check that unsaturated rows hold every true neighbour."""

    rows_checked: int
    rows_saturated: int
    missed_pairs: int
    examples: Tuple[Tuple[int, int], ...] = field(default=())

    @property
    def ok(self) -> bool:
        return self.missed_pairs == 0


def _batched(coordinates: np.ndarray) -> np.ndarray:
    """Return ``(N, B, 3)`` zero-padded float64 coordinates."""

    coords = np.asarray(coordinates, dtype=np.float64)
    if coords.ndim != 2:
        raise ValueError(f"coordinates must be 2-D, got shape {coords.shape}")
    num_batches = num_batches_for(coords.shape[1])
    padded = np.zeros((coords.shape[0], num_batches * BATCH_WIDTH), dtype=np.float64)
    padded[:, : coords.shape[1]] = coords
    return padded.reshape(coords.shape[0], num_batches, BATCH_WIDTH)


def _pair_sqdist(batched: np.ndarray, lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    diff = batched[lhs] - batched[rhs]
    per_batch = np.sum(diff * diff, axis=-1)
    total = np.zeros(per_batch.shape[0], dtype=np.float64)
    for b in range(per_batch.shape[1]):
        total += per_batch[:, b]
    return total


def verify_results(
    rows: np.ndarray,
    coordinates: np.ndarray,
    radius: float,
) -> VerificationReport:
    """Recompute exact distances for every reported neighbour."""

    radius = float(radius)
    if not np.isfinite(radius) or radius <= 0:
        raise ConfigError(f"radius must be positive and finite, got {radius!r}", phase=PHASE_VERIFY)
    rows = np.asarray(rows)
    with log_operation(LOGGER, "verification") as op_log:
        batched = _batched(coordinates)
        num_points = batched.shape[0]
        queries, slots = np.nonzero(rows != SENTINEL)
        neighbors = rows[queries, slots].astype(np.int64)

        in_range = neighbors < num_points
        out_of_range = int(np.count_nonzero(~in_range))
        queries = queries[in_range]
        neighbors = neighbors[in_range]
        self_matches = int(np.count_nonzero(queries == neighbors))

        sq = _pair_sqdist(batched, queries, neighbors)
        wrong = sq > radius * radius
        wrong_dist = np.sqrt(sq[wrong])

        report = VerificationReport(
            num_queries=int(rows.shape[0]),
            total_neighbors=int(filled_counts(rows).sum()) if rows.size else 0,
            incorrect_neighbors=int(np.count_nonzero(wrong)) + out_of_range,
            excess_distance_sum=float(np.sum(wrong_dist - radius)),
            incorrect_distance_sum=float(np.sum(wrong_dist)),
            self_matches=self_matches,
            out_of_range=out_of_range,
        )
        op_log.add_metadata(
            neighbors=report.total_neighbors,
            incorrect=report.incorrect_neighbors,
        )
    if not report.ok:
        LOGGER.warning(
            "Verification found %d incorrect neighbours (%d self matches, %d out of range)",
            report.incorrect_neighbors,
            report.self_matches,
            report.out_of_range,
        )
    return report


def _within_radius(
    batched: np.ndarray,
    queries: np.ndarray,
    radius_sq: float,
    batch_combine: str,
) -> np.ndarray:
    """Boolean ``(len(queries), N)`` mask of pairs a given combine rule accepts."""

    diff = batched[queries][:, None, :, :] - batched[None, :, :, :]
    per_batch = np.sum(diff * diff, axis=-1)
    if batch_combine == "sum":
        total = np.zeros(per_batch.shape[:2], dtype=np.float64)
        for b in range(per_batch.shape[2]):
            total += per_batch[:, :, b]
        mask = total <= radius_sq
    elif batch_combine == "and":
        mask = np.all(per_batch <= radius_sq, axis=2)
    elif batch_combine == "or":
        mask = np.any(per_batch <= radius_sq, axis=2)
    elif batch_combine == "first":
        mask = per_batch[:, :, 0] <= radius_sq
    else:
        raise ConfigError(f"Unknown batch combine mode '{batch_combine}'", phase=PHASE_VERIFY)
    mask[np.arange(queries.shape[0]), queries] = False
    return mask


def _chunks(indices: np.ndarray, size: int) -> Iterator[np.ndarray]:
    for start in range(0, indices.shape[0], size):
        yield indices[start : start + size]


def true_neighbor_counts(
    coordinates: np.ndarray,
    radius: float,
    *,
    batch_combine: str = "sum",
) -> np.ndarray:
    """Brute-force number of accepted neighbours per point, ignoring capacity."""

    batched = _batched(coordinates)
    radius_sq = float(radius) * float(radius)
    counts = np.zeros(batched.shape[0], dtype=np.int64)
    for chunk in _chunks(np.arange(batched.shape[0]), _AUDIT_CHUNK):
        counts[chunk] = _within_radius(batched, chunk, radius_sq, batch_combine).sum(axis=1)
    return counts


def audit_recall(
    rows: np.ndarray,
    coordinates: np.ndarray,
    radius: float,
    *,
    batch_combine: str = "sum",
    max_examples: int = 10,
) -> RecallAudit:
    """Count true neighbours missing from rows that did not reach capacity.

    A saturated row may legitimately omit neighbours, so only rows with at
    least one sentinel slot are compared against the brute-force answer.
    """

    rows = np.asarray(rows)
    batched = _batched(coordinates)
    radius_sq = float(radius) * float(radius)
    capacity = rows.shape[1] if rows.ndim == 2 else 0
    counts = filled_counts(rows) if rows.size else np.zeros(rows.shape[0], dtype=np.int64)
    open_rows = np.nonzero(counts < capacity)[0]
    missed = 0
    examples: List[Tuple[int, int]] = []
    with log_operation(LOGGER, "recall_audit") as op_log:
        for chunk in _chunks(open_rows, _AUDIT_CHUNK):
            mask = _within_radius(batched, chunk, radius_sq, batch_combine)
            for offset, query in enumerate(chunk):
                expected = np.nonzero(mask[offset])[0]
                reported = rows[query]
                found = np.isin(expected, reported[reported != SENTINEL].astype(np.int64))
                lost = expected[~found]
                missed += int(lost.shape[0])
                for neighbor in lost[: max(0, max_examples - len(examples))]:
                    examples.append((int(query), int(neighbor)))
        op_log.add_metadata(rows_checked=int(open_rows.shape[0]), missed=missed)
    if missed:
        LOGGER.warning("Recall audit found %d missed neighbour pairs", missed)
    return RecallAudit(
        rows_checked=int(open_rows.shape[0]),
        rows_saturated=int(rows.shape[0] - open_rows.shape[0]),
        missed_pairs=missed,
        examples=tuple(examples),
    )


__all__ = [
    "RecallAudit",
    "VerificationReport",
    "audit_recall",
    "true_neighbor_counts",
    "verify_results",
]
