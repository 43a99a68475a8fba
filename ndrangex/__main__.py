#!/usr/bin/env python
"""Quick-start guide for ndrangex library usage.

Run with: python -m ndrangex

This module intentionally avoids importing ndrangex internals to provide
a fast, clean startup for displaying help text.
"""

from __future__ import annotations

QUICKSTART = """\
================================================================================
                                 NDRANGEX
        Bounded-radius, fixed-capacity self range search in D dimensions
================================================================================

BASIC USAGE
-----------
    import numpy as np
    from ndrangex import RangeSearch

    points = np.random.randn(10000, 7)
    search = RangeSearch().fit(points, radius=0.8)
    result = search.query(k=32)

    result.rows            # (N, 32) uint32, unused slots = 2**32 - 1
    result.neighbors(5)    # accepted neighbours of point 5
    search.verify(result)  # exact-distance check of every reported pair

HIGH-DIMENSIONAL INPUT
----------------------
A D-dimensional cloud is split into ceil(D / 3) batches of three coordinates
(zero padded). One BVH is built per batch. The batch combination rule decides
which candidates are accepted:

    sum    exact D-dimensional distance (default)
    and    every 3-coordinate projection within radius
    or     any projection within radius (all batches traversed)
    first  batch 0 only

    from ndrangex import Runtime
    search = RangeSearch(Runtime(batch_combine="and")).fit(points, radius=0.8)

ENGINE SELECTION
----------------
    Runtime(enable_numba=True)    # parallel Numba kernel (default)
    Runtime(enable_numba=False)   # pure-Python reference traversal

ENVIRONMENT
-----------
    NDRANGEX_BATCH_COMBINE, NDRANGEX_SPLIT_POLICY, NDRANGEX_ENABLE_NUMBA,
    NDRANGEX_EARLY_EXIT, NDRANGEX_SORT_RESULTS, NDRANGEX_PRECISION,
    NDRANGEX_DELIMITER, NDRANGEX_MAX_DIMENSION, NDRANGEX_LOG_LEVEL,
    NDRANGEX_ENABLE_DIAGNOSTICS

COMMAND LINE
------------
    ndrangex -f points.csv -r 2.0 -k 50
    python -m cli.search --file points.csv --radius 0.5 --knn 8 --dump

================================================================================
"""


def main() -> None:
    """Print quick-start guide."""
    print(QUICKSTART)


if __name__ == "__main__":
    main()
