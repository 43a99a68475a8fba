from __future__ import annotations

from typing import Dict, Tuple

RANGE_SEARCH_RUN_SCHEMA_VERSION = 1
RANGE_SEARCH_RUN_SCHEMA_ID = "ndrangex.range_search_run.v1"
RANGE_SEARCH_RUN_SCHEMA: Dict[str, object] = {
    "id": RANGE_SEARCH_RUN_SCHEMA_ID,
    "version": RANGE_SEARCH_RUN_SCHEMA_VERSION,
    "description": "One record per pipeline phase of a self range-search run.",
    "required": (
        "schema_id",
        "run_id",
        "timestamp",
        "phase",
        "seconds",
    ),
}


def missing_fields(record: Dict[str, object], schema: Dict[str, object] = RANGE_SEARCH_RUN_SCHEMA) -> Tuple[str, ...]:
    required = schema.get("required", ())
    return tuple(name for name in required if name not in record)  # type: ignore[union-attr]


__all__ = [
    "RANGE_SEARCH_RUN_SCHEMA",
    "RANGE_SEARCH_RUN_SCHEMA_ID",
    "RANGE_SEARCH_RUN_SCHEMA_VERSION",
    "missing_fields",
]
