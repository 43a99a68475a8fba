from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import numpy as np

from .schemas import RANGE_SEARCH_RUN_SCHEMA_ID


def generate_run_id(prefix: str = "nrx") -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8]}"


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    return value


class RunLogWriter:
    """Append one JSON record per pipeline phase to a JSONL file."""

    def __init__(self, path: str | Path, *, run_id: str | None = None):
        self._path = Path(path).expanduser()
        if self._path.parent:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("a", encoding="utf-8")
        self.run_id = run_id or generate_run_id()

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        if self._handle and not self._handle.closed:
            self._handle.close()

    def record_phase(self, phase: str, *, seconds: float, **extra: Any) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "schema_id": RANGE_SEARCH_RUN_SCHEMA_ID,
            "run_id": self.run_id,
            "timestamp": time.time(),
            "phase": phase,
            "seconds": float(seconds),
        }
        for key, value in extra.items():
            if value is not None:
                record[key] = _jsonable(value)
        self._handle.write(json.dumps(record, sort_keys=True))
        self._handle.write("\n")
        self._handle.flush()
        return record

    def __enter__(self) -> "RunLogWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["RunLogWriter", "generate_run_id"]
