from __future__ import annotations

from typing import Optional

PHASE_CONFIG = "config"
PHASE_INGEST = "ingestion"
PHASE_BUILD = "index_build"
PHASE_QUERY = "query"
PHASE_VERIFY = "verification"


class NdRangeError(Exception):
    """Base class for unrecoverable range-search failures.

    Every error carries the pipeline phase it was detected in so the host can
    report which stage failed.
    """

    default_phase: Optional[str] = None

    def __init__(self, message: str, *, phase: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase or self.default_phase

    def with_phase(self, phase: str) -> "NdRangeError":
        if self.phase is None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        return self.message


class ConfigError(NdRangeError, ValueError):
    default_phase = PHASE_CONFIG


class SourceUnavailable(NdRangeError, OSError):
    default_phase = PHASE_INGEST


class MalformedRow(NdRangeError, ValueError):
    default_phase = PHASE_INGEST

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        expected: int | None = None,
        found: int | None = None,
        phase: Optional[str] = None,
    ) -> None:
        super().__init__(message, phase=phase)
        self.line = line
        self.expected = expected
        self.found = found


class IndexBuildFailed(NdRangeError, ValueError):
    default_phase = PHASE_BUILD


class DeviceResourceExhausted(NdRangeError, MemoryError):
    """Raised when index or result buffers cannot be allocated."""


__all__ = [
    "PHASE_CONFIG",
    "PHASE_INGEST",
    "PHASE_BUILD",
    "PHASE_QUERY",
    "PHASE_VERIFY",
    "NdRangeError",
    "ConfigError",
    "SourceUnavailable",
    "MalformedRow",
    "IndexBuildFailed",
    "DeviceResourceExhausted",
]
