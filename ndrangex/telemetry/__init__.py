from .schemas import (
    RANGE_SEARCH_RUN_SCHEMA,
    RANGE_SEARCH_RUN_SCHEMA_ID,
    missing_fields,
)
from .writer import RunLogWriter, generate_run_id

__all__ = [
    "RANGE_SEARCH_RUN_SCHEMA",
    "RANGE_SEARCH_RUN_SCHEMA_ID",
    "RunLogWriter",
    "generate_run_id",
    "missing_fields",
]
