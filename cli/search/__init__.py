from __future__ import annotations

from .app import SearchCLIOptions, app, main, run_search

__all__ = [
    "SearchCLIOptions",
    "app",
    "main",
    "run_search",
]
