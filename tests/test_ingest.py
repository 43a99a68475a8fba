from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from ndrangex import config as nx_config
from ndrangex.errors import ConfigError, MalformedRow, SourceUnavailable
from ndrangex.ingest import (
    num_batches_for,
    pad_coordinates,
    parse_point_rows,
    point_cloud_from_array,
    read_point_cloud,
    split_batches,
)

from tests.utils.datasets import gaussian_points, write_points_file


@pytest.mark.parametrize(
    "dimension, expected",
    [(0, 0), (1, 1), (3, 1), (4, 2), (6, 2), (7, 3), (64, 22)],
)
def test_num_batches_is_ceil_of_dimension_over_three(dimension: int, expected: int) -> None:
    assert num_batches_for(dimension) == expected


def test_parse_point_rows_skips_blank_lines() -> None:
    cloud = parse_point_rows(["1,2,3\n", "\n", "  4, 5 ,6  \n", ""])

    assert cloud.num_points == 2
    assert cloud.dimension == 3
    np.testing.assert_allclose(cloud.coordinates, [[1, 2, 3], [4, 5, 6]])


def test_parse_point_rows_rejects_inconsistent_field_counts() -> None:
    with pytest.raises(MalformedRow) as excinfo:
        parse_point_rows(["1,2,3", "4,5"])

    err = excinfo.value
    assert err.line == 2
    assert err.expected == 3
    assert err.found == 2
    assert err.phase == "ingestion"


def test_parse_point_rows_rejects_non_numeric_field() -> None:
    with pytest.raises(MalformedRow, match="not a number"):
        parse_point_rows(["1,2,x"])


@pytest.mark.parametrize("token", ["nan", "inf", "-inf"])
def test_parse_point_rows_rejects_non_finite_field(token: str) -> None:
    with pytest.raises(MalformedRow, match="not finite") as excinfo:
        parse_point_rows(["1,2,3", f"1,2,{token}"])

    assert excinfo.value.line == 2
    assert excinfo.value.phase == "ingestion"


def test_parse_point_rows_empty_input_gives_empty_cloud() -> None:
    cloud = parse_point_rows([])

    assert cloud.is_empty()
    assert cloud.num_batches == 0


def test_coordinates_are_read_only() -> None:
    cloud = parse_point_rows(["1,2,3"])

    with pytest.raises(ValueError):
        cloud.coordinates[0, 0] = 9.0


def test_precision_follows_runtime_config() -> None:
    nx_config.set_runtime_config(nx_config.RuntimeConfig(precision="float32"))

    cloud = parse_point_rows(["1,2,3"])

    assert cloud.coordinates.dtype == np.float32


def test_custom_delimiter() -> None:
    cloud = parse_point_rows(["1\t2\t3\t4"], delimiter="\t")

    assert cloud.dimension == 4


def test_padding_and_batches_cover_all_coordinates() -> None:
    points = gaussian_points(np.random.default_rng(0), 10, 7)
    cloud = point_cloud_from_array(points)

    padded = pad_coordinates(cloud)
    batches = split_batches(cloud)

    assert padded.shape == (10, 9)
    np.testing.assert_allclose(padded[:, :7], points)
    assert np.all(padded[:, 7:] == 0.0)
    assert len(batches) == 3
    for batch in batches:
        assert batch.centers.shape == (10, 3)
        assert batch.centers.flags.c_contiguous
    np.testing.assert_allclose(np.concatenate([b.centers for b in batches], axis=1), padded)


def test_read_point_cloud_from_file(tmp_path: Path) -> None:
    path = write_points_file(tmp_path / "points.csv", [[0, 0, 0, 1], [1, 1, 1, 2]])

    cloud = read_point_cloud(path)

    assert cloud.num_points == 2
    assert cloud.dimension == 4
    assert cloud.source == str(path)


def test_read_point_cloud_missing_file_is_source_unavailable(tmp_path: Path) -> None:
    with pytest.raises(SourceUnavailable) as excinfo:
        read_point_cloud(tmp_path / "missing.csv")

    assert excinfo.value.phase == "ingestion"


def test_read_point_cloud_enforces_max_dimension(tmp_path: Path) -> None:
    path = write_points_file(tmp_path / "wide.csv", [[0.0] * 5])

    with pytest.raises(ConfigError, match="exceeds"):
        read_point_cloud(path, max_dimension=4)

    assert read_point_cloud(path, max_dimension=5).dimension == 5
