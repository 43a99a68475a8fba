"""Fixed-capacity per-query result rows.

Each query owns one row of exactly ``k`` unsigned 32-bit slots. Rows start out
filled with :data:`SENTINEL` and accepted neighbours are appended left to
right until the row is full; any further candidate is refused. Only the task
serving query ``q`` ever writes row ``q``.

Acceptance order is discovery order. A full row holds *some* ``k`` neighbours
within the radius, not necessarily the ``k`` closest ones.
"""

from __future__ import annotations

from typing import Dict

import numpy as np

from ndrangex.errors import PHASE_QUERY, DeviceResourceExhausted, IndexBuildFailed

INDEX_DTYPE = np.uint32
SENTINEL = int(np.iinfo(INDEX_DTYPE).max)

COMBINE_FIRST = 0
COMBINE_AND = 1
COMBINE_SUM = 2
COMBINE_OR = 3

COMBINE_CODES: Dict[str, int] = {
    "first": COMBINE_FIRST,
    "and": COMBINE_AND,
    "sum": COMBINE_SUM,
    "or": COMBINE_OR,
}


def ensure_index_capacity(num_points: int) -> None:
    if num_points >= SENTINEL:
        raise IndexBuildFailed(
            f"{num_points} points cannot be addressed by 32-bit indices "
            f"(index {SENTINEL} is reserved as the sentinel)"
        )


def allocate_result_rows(num_queries: int, k: int) -> np.ndarray:
    if k <= 0:
        raise ValueError("k must be positive.")
    try:
        return np.full((int(num_queries), int(k)), SENTINEL, dtype=INDEX_DTYPE)
    except MemoryError as exc:
        raise DeviceResourceExhausted(
            f"cannot allocate {num_queries}x{k} result rows",
            phase=PHASE_QUERY,
        ) from exc


class RowAppender:
    """Bounded append into a single result row."""

    __slots__ = ("_row", "_count", "_capacity")

    def __init__(self, row: np.ndarray) -> None:
        self._row = row
        self._count = 0
        self._capacity = int(row.shape[0])

    @property
    def count(self) -> int:
        return self._count

    @property
    def full(self) -> bool:
        return self._count >= self._capacity

    def contains(self, index: int) -> bool:
        if self._count == 0:
            return False
        return bool(np.any(self._row[: self._count] == index))

    def try_append(self, index: int) -> bool:
        if self._count >= self._capacity:
            return False
        self._row[self._count] = index
        self._count += 1
        return True


def filled_counts(rows: np.ndarray) -> np.ndarray:
    """Number of accepted neighbours per row."""

    return np.count_nonzero(rows != SENTINEL, axis=1).astype(np.int64)


def sentinel_suffix_ok(rows: np.ndarray) -> bool:
    """True when every row is a filled prefix followed only by sentinels."""

    if rows.size == 0:
        return True
    is_sentinel = rows == SENTINEL
    # once a sentinel appears, every later slot must be a sentinel as well
    seen = np.logical_or.accumulate(is_sentinel, axis=1)
    return bool(np.array_equal(seen, is_sentinel))


def canonicalise_rows(rows: np.ndarray) -> np.ndarray:
    """Return a copy with each row's filled prefix sorted by index.

    The sentinel is the largest representable value, so a plain row-wise sort
    keeps unused slots at the end.
    """

    return np.sort(rows, axis=1)


def row_neighbors(rows: np.ndarray, query: int) -> np.ndarray:
    row = rows[query]
    return row[row != SENTINEL].astype(np.int64)


__all__ = [
    "INDEX_DTYPE",
    "SENTINEL",
    "COMBINE_FIRST",
    "COMBINE_AND",
    "COMBINE_SUM",
    "COMBINE_OR",
    "COMBINE_CODES",
    "RowAppender",
    "allocate_result_rows",
    "canonicalise_rows",
    "ensure_index_capacity",
    "filled_counts",
    "row_neighbors",
    "sentinel_suffix_ok",
]
