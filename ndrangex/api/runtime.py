from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict

from ndrangex import config as nx_config
from ndrangex.errors import ConfigError


_ATTR_TO_FIELD = {
    "precision": "precision",
    "enable_numba": "enable_numba",
    "diagnostics": "enable_diagnostics",
    "log_level": "log_level",
    "split_policy": "split_policy",
    "batch_combine": "batch_combine",
    "early_exit": "early_exit",
    "sort_results": "sort_results",
    "delimiter": "delimiter",
    "max_dimension": "max_dimension",
}


def _active_runtime_config() -> nx_config.RuntimeConfig:
    return nx_config.runtime_config()


@dataclass(frozen=True)
class Runtime:
    """Declarative runtime overrides that can be activated for the process.

    Unset fields (``None``) inherit from the base configuration, which is the
    currently active one unless given explicitly.
    """

    precision: str | None = None
    enable_numba: bool | None = None
    diagnostics: bool | None = None
    log_level: str | None = None
    split_policy: str | None = None
    batch_combine: str | None = None
    early_exit: bool | None = None
    sort_results: bool | None = None
    delimiter: str | None = None
    max_dimension: int | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def overrides(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for attr, field_name in _ATTR_TO_FIELD.items():
            value = getattr(self, attr)
            if value is not None:
                payload[field_name] = value
        for key, value in self.extra.items():
            if key not in nx_config.RuntimeConfig.__dataclass_fields__:
                raise ConfigError(f"Unknown runtime field '{key}'")
            payload[key] = value
        return payload

    def to_config(self, base: nx_config.RuntimeConfig | None = None) -> nx_config.RuntimeConfig:
        base_config = base if base is not None else _active_runtime_config()
        updates = self.overrides()
        if "log_level" in updates:
            updates["log_level"] = str(updates["log_level"]).upper()
        for key in ("precision", "batch_combine", "split_policy"):
            if key in updates:
                updates[key] = str(updates[key]).strip().lower()
        if "delimiter" in updates:
            updates["delimiter"] = nx_config._parse_delimiter(updates["delimiter"])
        if not updates:
            return base_config
        return replace(base_config, **updates)

    def activate(self) -> nx_config.RuntimeConfig:
        """Install this runtime as the active global configuration and return it."""

        config = self.to_config()
        return nx_config.set_runtime_config(config)

    def describe(self) -> Dict[str, Any]:
        config = self.to_config()
        return {
            "precision": config.precision,
            "enable_numba": config.enable_numba,
            "enable_diagnostics": config.enable_diagnostics,
            "split_policy": config.split_policy,
            "batch_combine": config.batch_combine,
            "early_exit": config.early_exit,
            "sort_results": config.sort_results,
            "max_dimension": config.max_dimension,
        }

    @classmethod
    def from_config(cls, config: nx_config.RuntimeConfig) -> "Runtime":
        return cls(
            precision=config.precision,
            enable_numba=config.enable_numba,
            diagnostics=config.enable_diagnostics,
            log_level=config.log_level,
            split_policy=config.split_policy,
            batch_combine=config.batch_combine,
            early_exit=config.early_exit,
            sort_results=config.sort_results,
            delimiter=config.delimiter,
            max_dimension=config.max_dimension,
        )


__all__ = ["Runtime"]
