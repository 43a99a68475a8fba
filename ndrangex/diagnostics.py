from __future__ import annotations

import logging
import resource
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

from ndrangex import config as nx_config


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _max_rss_bytes() -> int:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return int(usage.ru_maxrss) * 1024


@dataclass
class OperationLog:
    """Mutable record accumulated while an operation runs."""

    op: str
    enabled: bool
    metadata: Dict[str, Any] = field(default_factory=dict)
    wall_seconds: float = 0.0
    cpu_user_seconds: float | None = None
    cpu_system_seconds: float | None = None
    rss_delta_bytes: int | None = None

    def add_metadata(self, **values: Any) -> None:
        self.metadata.update(values)

    def render(self) -> str:
        parts = [f"op={self.op}", f"wall_ms={self.wall_seconds * 1e3:.3f}"]
        if self.cpu_user_seconds is None:
            parts.append("cpu_user_ms=NA")
            parts.append("cpu_system_ms=NA")
        else:
            parts.append(f"cpu_user_ms={self.cpu_user_seconds * 1e3:.3f}")
            parts.append(f"cpu_system_ms={(self.cpu_system_seconds or 0.0) * 1e3:.3f}")
        if self.rss_delta_bytes is None:
            parts.append("rss_delta=NA")
        else:
            parts.append(f"rss_delta={self.rss_delta_bytes}")
        for key, value in self.metadata.items():
            parts.append(f"{key}={_format_value(value)}")
        return " ".join(parts)


@contextmanager
def log_operation(logger: logging.Logger, op: str) -> Iterator[OperationLog]:
    """Time an operation and emit a single resource line when it finishes.

    The line is emitted at INFO on success and at WARNING when the body raises;
    the exception always propagates.
    """

    record = OperationLog(op=op, enabled=nx_config.runtime_config().enable_diagnostics)
    usage_before = resource.getrusage(resource.RUSAGE_SELF) if record.enabled else None
    rss_before = _max_rss_bytes() if record.enabled else 0
    start = time.perf_counter()
    failed = False
    try:
        yield record
    except BaseException:
        failed = True
        raise
    finally:
        record.wall_seconds = time.perf_counter() - start
        if usage_before is not None:
            usage_after = resource.getrusage(resource.RUSAGE_SELF)
            record.cpu_user_seconds = usage_after.ru_utime - usage_before.ru_utime
            record.cpu_system_seconds = usage_after.ru_stime - usage_before.ru_stime
            record.rss_delta_bytes = max(0, _max_rss_bytes() - rss_before)
        if failed:
            logger.warning("%s status=error", record.render())
        else:
            logger.info(record.render())


__all__ = ["OperationLog", "log_operation"]
