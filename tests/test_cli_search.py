from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
from typer.testing import CliRunner

from cli.search.app import SearchCLIOptions, app, run_search
from ndrangex import config as nx_config
from ndrangex.core import results as nx_results

from tests.utils.datasets import gaussian_points, scenario_a_points, write_points_file


def _scenario_file(tmp_path: Path) -> Path:
    return write_points_file(tmp_path / "points.csv", scenario_a_points())


def test_help_exits_zero() -> None:
    runner = CliRunner()

    for flag in ("--help", "-h"):
        result = runner.invoke(app, [flag])
        assert result.exit_code == 0
        assert "--radius" in result.output
        assert "--knn" in result.output


def test_unknown_flag_exits_non_zero(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["--file", str(_scenario_file(tmp_path)), "--bogus"])

    assert result.exit_code != 0


def test_missing_file_option_is_usage_error() -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["--radius", "1.0"])

    assert result.exit_code == 2


def test_dump_prints_one_row_per_query(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["-f", str(_scenario_file(tmp_path)), "-r", "1.5", "-k", "4", "--sort", "--dump"],
    )

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "1 3" in lines
    assert "0 3" in lines
    assert "0 1" in lines
    assert "Avg neighbor/query: 1.5" in lines
    assert "Avg wrong neighbor/query: 0" in lines


def test_unreadable_source_exits_one(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["-f", str(tmp_path / "missing.csv")])

    assert result.exit_code == 1
    assert "error[ingestion]" in result.output


def test_malformed_input_exits_one(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("0,0,0\n1,2\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(app, ["-f", str(path)])

    assert result.exit_code == 1
    assert "error[ingestion]" in result.output
    assert "expected 3 fields" in result.output


def test_invalid_radius_is_usage_error(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["-f", str(_scenario_file(tmp_path)), "--radius=-2"])

    assert result.exit_code == 2
    assert "error[config]" in result.output


def test_invalid_combine_is_usage_error(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["-f", str(_scenario_file(tmp_path)), "--combine", "xor"])

    assert result.exit_code == 2
    assert "error[config]" in result.output


def test_max_dimension_guard(tmp_path: Path) -> None:
    path = write_points_file(tmp_path / "wide.csv", gaussian_points(np.random.default_rng(0), 4, 6))
    runner = CliRunner()

    result = runner.invoke(app, ["-f", str(path), "--max-dimension", "3"])

    assert result.exit_code == 1
    assert "exceeds" in result.output


def test_log_file_and_audit(tmp_path: Path) -> None:
    path = write_points_file(tmp_path / "p.csv", gaussian_points(np.random.default_rng(1), 30, 7))
    log_file = tmp_path / "telemetry" / "run.jsonl"
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "-f",
            str(path),
            "-r",
            "1.5",
            "-k",
            "8",
            "--engine",
            "python",
            "--combine",
            "or",
            "--audit",
            "--log-file",
            str(log_file),
            "--run-id",
            "cli-run",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Recall audit" in result.output
    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert {record["phase"] for record in records} == {
        "ingestion",
        "index_build",
        "query",
        "verification",
    }
    query = next(record for record in records if record["phase"] == "query")
    assert query["engine"] == "python"
    assert query["batch_combine"] == "or"
    assert query["run_id"] == "cli-run"


def test_run_search_resets_runtime_context(tmp_path: Path) -> None:
    options = SearchCLIOptions(file=_scenario_file(tmp_path), radius=1.5, knn=2, combine="first")

    assert run_search(options) == 0
    assert nx_config.runtime_config().batch_combine == "sum"


def test_exhausted_result_buffer_exits_one(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    original_full = np.full

    def _full(shape, *args, **kwargs):
        if isinstance(shape, tuple) and len(shape) == 2:
            raise MemoryError("no room for result rows")
        return original_full(shape, *args, **kwargs)

    monkeypatch.setattr(nx_results.np, "full", _full)
    runner = CliRunner()

    result = runner.invoke(app, ["-f", str(_scenario_file(tmp_path)), "-r", "1.5", "-k", "4"])

    assert result.exit_code == 1
    assert "error[query]" in result.output
