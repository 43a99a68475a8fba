from .range_search import (
    ENGINE_NUMBA,
    ENGINE_PYTHON,
    SearchResult,
    iter_candidates,
    range_search,
    range_search_python,
)

__all__ = [
    "ENGINE_NUMBA",
    "ENGINE_PYTHON",
    "SearchResult",
    "iter_candidates",
    "range_search",
    "range_search_python",
]
