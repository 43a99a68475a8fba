"""Public ergonomic façade for ndrangex."""

from .runtime import Runtime
from .search import RangeSearch

__all__ = [
    "RangeSearch",
    "Runtime",
]
