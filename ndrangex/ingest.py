"""Point-cloud ingestion and decomposition into 3-coordinate batches.

A D-dimensional cloud is split into ``ceil(D / 3)`` batches. Each batch is an
independent 3-D projection of the same point set and is indexed on its own.
The final partial triple is padded with zeros, which keeps every projected
distance bounded above by the true D-dimensional distance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from ndrangex import config as nx_config
from ndrangex.diagnostics import log_operation
from ndrangex.errors import PHASE_INGEST, ConfigError, MalformedRow, SourceUnavailable
from ndrangex.logging import get_logger

LOGGER = get_logger("ingest")

BATCH_WIDTH = 3


def _freeze(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def num_batches_for(dimension: int) -> int:
    if dimension <= 0:
        return 0
    return int(math.ceil(dimension / BATCH_WIDTH))


@dataclass(frozen=True)
class PointCloud:
    """Original coordinates of every point, one row per input line."""

    coordinates: np.ndarray
    source: str | None = None

    @property
    def num_points(self) -> int:
        return int(self.coordinates.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.coordinates.shape[1]) if self.coordinates.ndim == 2 else 0

    @property
    def num_batches(self) -> int:
        return num_batches_for(self.dimension)

    @property
    def padded_dimension(self) -> int:
        return self.num_batches * BATCH_WIDTH

    def is_empty(self) -> bool:
        return self.num_points == 0


@dataclass(frozen=True)
class PointBatch:
    """One 3-coordinate projection of the cloud; ``centers`` has shape ``(N, 3)``."""

    batch_id: int
    centers: np.ndarray

    @property
    def num_points(self) -> int:
        return int(self.centers.shape[0])


def _parse_row(text: str, delimiter: str, line_no: int) -> List[float]:
    fields = text.split(delimiter)
    values: List[float] = []
    for position, raw in enumerate(fields):
        token = raw.strip()
        try:
            value = float(token)
        except ValueError as exc:
            raise MalformedRow(
                f"line {line_no}: field {position + 1} ({token!r}) is not a number",
                line=line_no,
            ) from exc
        if not math.isfinite(value):
            raise MalformedRow(
                f"line {line_no}: field {position + 1} ({token!r}) is not finite",
                line=line_no,
            )
        values.append(value)
    return values


def parse_point_rows(
    lines: Iterable[str],
    *,
    delimiter: str | None = None,
    dtype: np.dtype | str | None = None,
    source: str | None = None,
) -> PointCloud:
    """Parse delimited rows into a :class:`PointCloud`.

    The dimensionality is the field count of the first non-blank row; any later
    row with a different count is rejected with :class:`MalformedRow`.
    """

    runtime = nx_config.runtime_config()
    delimiter = delimiter or runtime.delimiter
    dtype = np.dtype(dtype or runtime.precision)

    rows: List[List[float]] = []
    dimension = 0
    for line_no, line in enumerate(lines, start=1):
        text = line.strip()
        if not text:
            continue
        values = _parse_row(text, delimiter, line_no)
        if not rows:
            dimension = len(values)
        elif len(values) != dimension:
            raise MalformedRow(
                f"line {line_no}: expected {dimension} fields but found {len(values)}",
                line=line_no,
                expected=dimension,
                found=len(values),
            )
        rows.append(values)

    if not rows:
        coordinates = np.zeros((0, 0), dtype=dtype)
    else:
        coordinates = np.asarray(rows, dtype=dtype)
    return PointCloud(coordinates=_freeze(coordinates), source=source)


def read_point_cloud(
    path: str | Path,
    *,
    delimiter: str | None = None,
    dtype: np.dtype | str | None = None,
    max_dimension: int | None = None,
) -> PointCloud:
    """Load a delimited text file with one point per line."""

    runtime = nx_config.runtime_config()
    limit = runtime.max_dimension if max_dimension is None else int(max_dimension)
    path = Path(path)
    with log_operation(LOGGER, "ingest") as op_log:
        try:
            with path.open("r", encoding="utf-8") as handle:
                cloud = parse_point_rows(
                    handle,
                    delimiter=delimiter,
                    dtype=dtype,
                    source=str(path),
                )
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceUnavailable(f"cannot read point cloud '{path}': {exc}") from exc

        if limit > 0 and cloud.dimension > limit:
            raise ConfigError(
                f"dimension {cloud.dimension} exceeds the configured maximum of {limit}",
                phase=PHASE_INGEST,
            )
        op_log.add_metadata(
            points=cloud.num_points,
            dim=cloud.dimension,
            batches=cloud.num_batches,
        )
    LOGGER.info(
        "Loaded %d points of dimension %d (%d batches) from %s",
        cloud.num_points,
        cloud.dimension,
        cloud.num_batches,
        path,
    )
    return cloud


def point_cloud_from_array(points: Sequence[Sequence[float]] | np.ndarray, *, dtype: np.dtype | str | None = None) -> PointCloud:
    dtype = np.dtype(dtype or nx_config.runtime_config().precision)
    arr = np.array(points, dtype=dtype, copy=True)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1) if arr.size else arr.reshape(0, 0)
    if arr.ndim != 2:
        raise MalformedRow(f"points must be a 2-D array, got shape {arr.shape}")
    return PointCloud(coordinates=_freeze(arr))


def pad_coordinates(cloud: PointCloud) -> np.ndarray:
    """Return the ``(N, 3 * num_batches)`` zero-padded coordinate matrix."""

    padded = np.zeros(
        (cloud.num_points, cloud.padded_dimension),
        dtype=cloud.coordinates.dtype,
    )
    if cloud.dimension:
        padded[:, : cloud.dimension] = cloud.coordinates
    return padded


def split_batches(cloud: PointCloud) -> Tuple[PointBatch, ...]:
    padded = pad_coordinates(cloud)
    batches = []
    for batch_id in range(cloud.num_batches):
        start = batch_id * BATCH_WIDTH
        centers = np.ascontiguousarray(padded[:, start : start + BATCH_WIDTH])
        batches.append(PointBatch(batch_id=batch_id, centers=_freeze(centers)))
    return tuple(batches)


__all__ = [
    "BATCH_WIDTH",
    "PointBatch",
    "PointCloud",
    "num_batches_for",
    "pad_coordinates",
    "parse_point_rows",
    "point_cloud_from_array",
    "read_point_cloud",
    "split_batches",
]
