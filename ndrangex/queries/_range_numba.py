from __future__ import annotations

import numpy as np
from numba import njit, prange

from ndrangex.core.index import StackedHierarchies
from ndrangex.core.results import COMBINE_AND as _MODE_AND
from ndrangex.core.results import COMBINE_FIRST as _MODE_FIRST
from ndrangex.core.results import COMBINE_OR as _MODE_OR


@njit(cache=True)
def _sqdist_pair(centers: np.ndarray, a: int, b: int) -> float:
    total = 0.0
    for d in range(centers.shape[1]):
        diff = centers[a, d] - centers[b, d]
        total += diff * diff
    return total


@njit(cache=True)
def _row_contains(row: np.ndarray, count: int, value: int) -> bool:
    for i in range(count):
        if row[i] == value:
            return True
    return False


@njit(cache=True)
def _accept(
    mode: int,
    query: int,
    candidate: int,
    traversed: int,
    centers: np.ndarray,
    radius_sq: float,
) -> bool:
    if mode == _MODE_FIRST or mode == _MODE_OR:
        return True
    num_batches = centers.shape[0]
    if mode == _MODE_AND:
        for b in range(num_batches):
            if b == traversed:
                continue
            if _sqdist_pair(centers[b], query, candidate) > radius_sq:
                return False
        return True
    total = 0.0
    for b in range(num_batches):
        total += _sqdist_pair(centers[b], query, candidate)
        if total > radius_sq:
            return False
    return True


@njit(cache=True)
def _search_single(
    query: int,
    lower: np.ndarray,
    upper: np.ndarray,
    left: np.ndarray,
    right: np.ndarray,
    primitive: np.ndarray,
    centers: np.ndarray,
    radius_sq: float,
    mode: int,
    early_exit: bool,
    stack: np.ndarray,
    row: np.ndarray,
) -> int:
    capacity = row.shape[0]
    traversed_batches = centers.shape[0] if mode == _MODE_OR else 1
    count = 0
    for b in range(traversed_batches):
        qx = centers[b, query, 0]
        qy = centers[b, query, 1]
        qz = centers[b, query, 2]
        stack[0] = 0
        size = 1
        while size > 0:
            size -= 1
            node = stack[size]
            if (
                qx < lower[b, node, 0]
                or qx > upper[b, node, 0]
                or qy < lower[b, node, 1]
                or qy > upper[b, node, 1]
                or qz < lower[b, node, 2]
                or qz > upper[b, node, 2]
            ):
                continue
            if left[b, node] < 0:
                candidate = primitive[b, node]
                if candidate == query:
                    continue
                if _sqdist_pair(centers[b], query, candidate) > radius_sq:
                    continue
                if mode == _MODE_OR and _row_contains(row, count, candidate):
                    continue
                if not _accept(mode, query, candidate, b, centers, radius_sq):
                    continue
                if count < capacity:
                    row[count] = candidate
                    count += 1
                    if early_exit and count >= capacity:
                        return count
                continue
            stack[size] = right[b, node]
            size += 1
            stack[size] = left[b, node]
            size += 1
    return count


@njit(parallel=True, cache=True)
def _range_search_kernel(
    lower: np.ndarray,
    upper: np.ndarray,
    left: np.ndarray,
    right: np.ndarray,
    primitive: np.ndarray,
    centers: np.ndarray,
    radius_sq: float,
    mode: int,
    early_exit: bool,
    stack_size: int,
    rows: np.ndarray,
) -> np.ndarray:
    num_queries = rows.shape[0]
    counts = np.zeros(num_queries, dtype=np.int64)
    for q in prange(num_queries):
        stack = np.empty(stack_size, dtype=np.int64)
        counts[q] = _search_single(
            q,
            lower,
            upper,
            left,
            right,
            primitive,
            centers,
            radius_sq,
            mode,
            early_exit,
            stack,
            rows[q],
        )
    return counts


def range_search_numba(
    packed: StackedHierarchies,
    rows: np.ndarray,
    *,
    radius: float,
    mode: int,
    early_exit: bool,
) -> np.ndarray:
    """Fill ``rows`` in place with one parallel task per query; returns counts."""

    return _range_search_kernel(
        packed.lower,
        packed.upper,
        packed.left,
        packed.right,
        packed.primitive,
        packed.centers,
        float(radius) * float(radius),
        int(mode),
        bool(early_exit),
        int(packed.max_depth) + 2,
        rows,
    )


__all__ = ["range_search_numba"]
