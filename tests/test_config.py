from types import SimpleNamespace

import pytest

from ndrangex import config as nx_config
from ndrangex.api import Runtime
from ndrangex.errors import ConfigError
from cli.runtime import runtime_from_args


def test_runtime_config_defaults():
    runtime = nx_config.runtime_config()

    assert runtime.precision == "float64"
    assert runtime.enable_numba is True
    assert runtime.enable_diagnostics is True
    assert runtime.log_level == "INFO"
    assert runtime.split_policy == "median"
    assert runtime.batch_combine == "sum"
    assert runtime.early_exit is True
    assert runtime.sort_results is False
    assert runtime.delimiter == ","
    assert runtime.max_dimension == 0


def test_runtime_config_reads_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NDRANGEX_PRECISION", "float32")
    monkeypatch.setenv("NDRANGEX_ENABLE_NUMBA", "0")
    monkeypatch.setenv("NDRANGEX_ENABLE_DIAGNOSTICS", "off")
    monkeypatch.setenv("NDRANGEX_LOG_LEVEL", "debug")
    monkeypatch.setenv("NDRANGEX_SPLIT_POLICY", "Midpoint")
    monkeypatch.setenv("NDRANGEX_BATCH_COMBINE", "OR")
    monkeypatch.setenv("NDRANGEX_EARLY_EXIT", "false")
    monkeypatch.setenv("NDRANGEX_SORT_RESULTS", "yes")
    monkeypatch.setenv("NDRANGEX_DELIMITER", "\\t")
    monkeypatch.setenv("NDRANGEX_MAX_DIMENSION", "64")
    nx_config.reset_runtime_config_cache()

    runtime = nx_config.runtime_config()

    assert runtime.precision == "float32"
    assert runtime.enable_numba is False
    assert runtime.enable_diagnostics is False
    assert runtime.log_level == "DEBUG"
    assert runtime.split_policy == "midpoint"
    assert runtime.batch_combine == "or"
    assert runtime.early_exit is False
    assert runtime.sort_results is True
    assert runtime.delimiter == "\t"
    assert runtime.max_dimension == 64


def test_runtime_config_is_cached_until_reset(monkeypatch: pytest.MonkeyPatch):
    first = nx_config.runtime_config()
    monkeypatch.setenv("NDRANGEX_BATCH_COMBINE", "and")

    assert nx_config.runtime_config() is first

    nx_config.reset_runtime_config_cache()
    assert nx_config.runtime_config().batch_combine == "and"


@pytest.mark.parametrize(
    "key, value",
    [
        ("NDRANGEX_PRECISION", "float16"),
        ("NDRANGEX_SPLIT_POLICY", "sah"),
        ("NDRANGEX_BATCH_COMBINE", "xor"),
        ("NDRANGEX_LOG_LEVEL", "chatty"),
        ("NDRANGEX_DELIMITER", ";;"),
        ("NDRANGEX_MAX_DIMENSION", "many"),
    ],
)
def test_invalid_environment_values_raise(monkeypatch: pytest.MonkeyPatch, key: str, value: str):
    monkeypatch.setenv(key, value)
    nx_config.reset_runtime_config_cache()

    with pytest.raises(ConfigError):
        nx_config.runtime_config()


def test_describe_runtime_reports_active_values():
    Runtime(batch_combine="first", enable_numba=False).activate()

    summary = nx_config.describe_runtime()

    assert summary["batch_combine"] == "first"
    assert summary["enable_numba"] is False
    assert summary["split_policy"] == "median"


def test_runtime_overrides_and_reset_context():
    config = Runtime(split_policy="MIDPOINT", sort_results=True, log_level="warning").activate()

    assert config.split_policy == "midpoint"
    assert nx_config.runtime_config() is config
    assert nx_config.runtime_config().log_level == "WARNING"

    nx_config.reset_runtime_context()
    assert nx_config.runtime_config().split_policy == "median"
    assert nx_config.runtime_config().sort_results is False


def test_runtime_rejects_invalid_values():
    with pytest.raises(ConfigError):
        Runtime(batch_combine="xor").to_config()
    with pytest.raises(ConfigError):
        Runtime(max_dimension=-1).to_config()
    with pytest.raises(ConfigError):
        Runtime(extra={"not_a_field": 1}).to_config()


def test_runtime_from_args_maps_cli_flags():
    args = SimpleNamespace(
        engine="python",
        combine="and",
        split="midpoint",
        sort=True,
        early_exit=False,
        log_level="DEBUG",
        diagnostics=False,
        max_dimension=12,
    )

    runtime = runtime_from_args(args)
    config = runtime.to_config()

    assert runtime.enable_numba is False
    assert config.batch_combine == "and"
    assert config.split_policy == "midpoint"
    assert config.sort_results is True
    assert config.early_exit is False
    assert config.enable_diagnostics is False
    assert config.max_dimension == 12


def test_runtime_from_args_rejects_unknown_engine():
    with pytest.raises(ConfigError):
        runtime_from_args({"engine": "cuda"})


def test_runtime_from_args_leaves_unset_fields_to_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NDRANGEX_BATCH_COMBINE", "or")
    nx_config.reset_runtime_config_cache()

    config = runtime_from_args({}).to_config()

    assert config.batch_combine == "or"


def test_runtime_from_config_round_trips():
    base = nx_config.RuntimeConfig(batch_combine="or", early_exit=False, delimiter=";")

    runtime = Runtime.from_config(base)

    assert runtime.to_config(base=nx_config.RuntimeConfig()) == base
    assert runtime.describe()["batch_combine"] == "or"
    assert runtime.describe()["early_exit"] is False
