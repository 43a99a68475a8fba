from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict

from ndrangex.errors import ConfigError
from ndrangex.logging import configure_logging

_LOGGER = logging.getLogger("ndrangex")

_SUPPORTED_PRECISION = {"float32", "float64"}
_SPLIT_POLICIES = {"median", "midpoint"}
_BATCH_COMBINE_MODES = {"sum", "and", "or", "first"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
_DEFAULT_SPLIT_POLICY = "median"
_DEFAULT_BATCH_COMBINE = "sum"
_DEFAULT_DELIMITER = ","
_DEFAULT_MAX_DIMENSION = 0


def _bool_from_env(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer value '{raw}'") from exc


def _normalise_precision(value: str | None) -> str:
    if value is None:
        return "float64"
    value = value.strip().lower()
    if value not in _SUPPORTED_PRECISION:
        raise ConfigError(
            f"Unsupported precision '{value}'. Expected one of {sorted(_SUPPORTED_PRECISION)}."
        )
    return value


def _parse_split_policy(value: str | None) -> str:
    if value is None:
        return _DEFAULT_SPLIT_POLICY
    policy = value.strip().lower()
    if policy not in _SPLIT_POLICIES:
        raise ConfigError(
            f"Unsupported split policy '{policy}'. Expected one of {sorted(_SPLIT_POLICIES)}."
        )
    return policy


def _parse_batch_combine(value: str | None) -> str:
    if value is None:
        return _DEFAULT_BATCH_COMBINE
    mode = value.strip().lower()
    if mode not in _BATCH_COMBINE_MODES:
        raise ConfigError(
            f"Unsupported batch combine mode '{mode}'. Expected one of {sorted(_BATCH_COMBINE_MODES)}."
        )
    return mode


def _parse_log_level(value: str | None) -> str:
    level = (value or "INFO").strip().upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(f"Unsupported log level '{level}'. Expected one of {sorted(_LOG_LEVELS)}.")
    return level


def _parse_delimiter(value: str | None) -> str:
    if value is None or value == "":
        return _DEFAULT_DELIMITER
    if value == "\\t":
        return "\t"
    if len(value) != 1:
        raise ConfigError(f"Delimiter must be a single character, got {value!r}.")
    return value


@dataclass(frozen=True)
class RuntimeConfig:
    precision: str = "float64"
    enable_numba: bool = True
    enable_diagnostics: bool = True
    log_level: str = "INFO"
    split_policy: str = _DEFAULT_SPLIT_POLICY
    batch_combine: str = _DEFAULT_BATCH_COMBINE
    early_exit: bool = True
    sort_results: bool = False
    delimiter: str = _DEFAULT_DELIMITER
    max_dimension: int = _DEFAULT_MAX_DIMENSION

    def __post_init__(self) -> None:
        _normalise_precision(self.precision)
        _parse_split_policy(self.split_policy)
        _parse_batch_combine(self.batch_combine)
        _parse_log_level(self.log_level)
        _parse_delimiter(self.delimiter)
        if self.max_dimension < 0:
            raise ConfigError("max_dimension must be >= 0 (0 disables the limit).")

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        precision = _normalise_precision(os.getenv("NDRANGEX_PRECISION"))
        enable_numba = _bool_from_env(os.getenv("NDRANGEX_ENABLE_NUMBA"), default=True)
        enable_diagnostics = _bool_from_env(
            os.getenv("NDRANGEX_ENABLE_DIAGNOSTICS"), default=True
        )
        log_level = _parse_log_level(os.getenv("NDRANGEX_LOG_LEVEL"))
        split_policy = _parse_split_policy(os.getenv("NDRANGEX_SPLIT_POLICY"))
        batch_combine = _parse_batch_combine(os.getenv("NDRANGEX_BATCH_COMBINE"))
        early_exit = _bool_from_env(os.getenv("NDRANGEX_EARLY_EXIT"), default=True)
        sort_results = _bool_from_env(os.getenv("NDRANGEX_SORT_RESULTS"), default=False)
        delimiter = _parse_delimiter(os.getenv("NDRANGEX_DELIMITER"))
        raw_max_dimension = _parse_optional_int(os.getenv("NDRANGEX_MAX_DIMENSION"))
        if raw_max_dimension is None or raw_max_dimension <= 0:
            max_dimension = _DEFAULT_MAX_DIMENSION
        else:
            max_dimension = raw_max_dimension
        return cls(
            precision=precision,
            enable_numba=enable_numba,
            enable_diagnostics=enable_diagnostics,
            log_level=log_level,
            split_policy=split_policy,
            batch_combine=batch_combine,
            early_exit=early_exit,
            sort_results=sort_results,
            delimiter=delimiter,
            max_dimension=max_dimension,
        )


_ACTIVE_CONFIG: RuntimeConfig | None = None


@lru_cache(maxsize=None)
def _env_runtime_config() -> RuntimeConfig:
    config = RuntimeConfig.from_env()
    configure_logging(config.log_level)
    return config


def runtime_config() -> RuntimeConfig:
    """Return the active configuration, falling back to the environment view."""

    if _ACTIVE_CONFIG is not None:
        return _ACTIVE_CONFIG
    return _env_runtime_config()


def set_runtime_config(config: RuntimeConfig) -> RuntimeConfig:
    global _ACTIVE_CONFIG
    _ACTIVE_CONFIG = config
    configure_logging(config.log_level)
    _LOGGER.debug("Activated runtime configuration %s", config)
    return config


def reset_runtime_config_cache() -> None:
    _env_runtime_config.cache_clear()


def reset_runtime_context() -> None:
    """Drop any programmatic override and re-read the environment on next use."""

    global _ACTIVE_CONFIG
    _ACTIVE_CONFIG = None
    reset_runtime_config_cache()


def describe_runtime() -> Dict[str, Any]:
    """Return a serialisable view of the active runtime configuration."""

    config = runtime_config()
    return {
        "precision": config.precision,
        "enable_numba": config.enable_numba,
        "enable_diagnostics": config.enable_diagnostics,
        "log_level": config.log_level,
        "split_policy": config.split_policy,
        "batch_combine": config.batch_combine,
        "early_exit": config.early_exit,
        "sort_results": config.sort_results,
        "delimiter": config.delimiter,
        "max_dimension": config.max_dimension,
    }


__all__ = [
    "RuntimeConfig",
    "runtime_config",
    "set_runtime_config",
    "reset_runtime_config_cache",
    "reset_runtime_context",
    "describe_runtime",
]
