from __future__ import annotations

import pytest

from ndrangex import config as nx_config

_ENV_KEYS = (
    "NDRANGEX_PRECISION",
    "NDRANGEX_ENABLE_NUMBA",
    "NDRANGEX_ENABLE_DIAGNOSTICS",
    "NDRANGEX_LOG_LEVEL",
    "NDRANGEX_SPLIT_POLICY",
    "NDRANGEX_BATCH_COMBINE",
    "NDRANGEX_EARLY_EXIT",
    "NDRANGEX_SORT_RESULTS",
    "NDRANGEX_DELIMITER",
    "NDRANGEX_MAX_DIMENSION",
)


@pytest.fixture(autouse=True)
def _isolated_runtime(monkeypatch: pytest.MonkeyPatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    nx_config.reset_runtime_context()
    yield
    nx_config.reset_runtime_context()
