from __future__ import annotations

from typing import Any, Mapping

from ndrangex.api import Runtime as ApiRuntime
from ndrangex.errors import ConfigError

_ENGINE_TO_NUMBA = {
    "numba": True,
    "python": False,
}


def _get_arg(source: Any, name: str, default: Any = None) -> Any:
    if isinstance(source, Mapping):
        return source.get(name, default)
    return getattr(source, name, default)


def runtime_from_args(
    args: Any,
    *,
    extra_overrides: Mapping[str, Any] | None = None,
) -> ApiRuntime:
    runtime_kwargs: dict[str, Any] = {}
    engine = _get_arg(args, "engine")
    if engine:
        key = str(engine).strip().lower()
        if key not in _ENGINE_TO_NUMBA:
            raise ConfigError(
                f"Unknown engine '{engine}'. Expected one of {sorted(_ENGINE_TO_NUMBA)}."
            )
        runtime_kwargs["enable_numba"] = _ENGINE_TO_NUMBA[key]
    precision = _get_arg(args, "precision")
    if precision:
        runtime_kwargs["precision"] = precision
    diagnostics = _get_arg(args, "diagnostics")
    if diagnostics is not None:
        runtime_kwargs["diagnostics"] = bool(diagnostics)
    log_level = _get_arg(args, "log_level")
    if log_level:
        runtime_kwargs["log_level"] = log_level
    split_policy = _get_arg(args, "split")
    if split_policy:
        runtime_kwargs["split_policy"] = split_policy
    combine = _get_arg(args, "combine")
    if combine:
        runtime_kwargs["batch_combine"] = combine
    early_exit = _get_arg(args, "early_exit")
    if early_exit is not None:
        runtime_kwargs["early_exit"] = bool(early_exit)
    sort_results = _get_arg(args, "sort")
    if sort_results is not None:
        runtime_kwargs["sort_results"] = bool(sort_results)
    delimiter = _get_arg(args, "delimiter")
    if delimiter:
        runtime_kwargs["delimiter"] = delimiter
    max_dimension = _get_arg(args, "max_dimension")
    if max_dimension is not None:
        runtime_kwargs["max_dimension"] = int(max_dimension)
    if extra_overrides:
        runtime_kwargs.update(extra_overrides)
    return ApiRuntime(**runtime_kwargs)


__all__ = ["runtime_from_args"]
