from __future__ import annotations

import math

import numpy as np
import pytest

from ndrangex.core.bvh import NO_NODE, build_bvh
from ndrangex.core.index import build_index
from ndrangex.errors import IndexBuildFailed
from ndrangex.ingest import point_cloud_from_array
from ndrangex.queries.range_search import iter_candidates

from tests.utils.datasets import clustered_points, gaussian_points


@pytest.mark.parametrize("policy", ["median", "midpoint"])
@pytest.mark.parametrize("count", [1, 2, 3, 17, 128])
def test_build_bvh_structure_is_valid(policy: str, count: int) -> None:
    centers = gaussian_points(np.random.default_rng(count), count, 3)

    bvh = build_bvh(centers, 0.5, split_policy=policy)

    bvh.validate()
    assert bvh.num_nodes == 2 * count - 1
    assert bvh.num_primitives == count
    assert bvh.split_policy == policy


def test_median_split_depth_is_logarithmic() -> None:
    centers = gaussian_points(np.random.default_rng(1), 1000, 3)

    bvh = build_bvh(centers, 0.1, split_policy="median")

    assert bvh.depth <= math.ceil(math.log2(1000))


def test_single_point_tree_is_one_leaf() -> None:
    bvh = build_bvh(np.zeros((1, 3)), 1.0)

    assert bvh.num_nodes == 1
    assert bvh.is_leaf(bvh.root)
    assert int(bvh.primitive[0]) == 0
    assert int(bvh.left[0]) == NO_NODE
    np.testing.assert_allclose(bvh.lower[0], [-1.0, -1.0, -1.0])
    np.testing.assert_allclose(bvh.upper[0], [1.0, 1.0, 1.0])


def test_duplicate_points_build() -> None:
    centers = np.ones((9, 3))

    bvh = build_bvh(centers, 0.25, split_policy="midpoint")

    bvh.validate()


def test_leaf_boxes_are_inflated_by_radius() -> None:
    centers = gaussian_points(np.random.default_rng(2), 20, 3)
    radius = 0.75

    bvh = build_bvh(centers, radius)

    leaves = np.nonzero(bvh.primitive >= 0)[0]
    for node in leaves:
        point = centers[bvh.primitive[node]]
        assert np.all(bvh.lower[node] <= point - radius)
        assert np.all(bvh.upper[node] >= point + radius)


def test_hierarchy_arrays_are_read_only() -> None:
    bvh = build_bvh(gaussian_points(np.random.default_rng(3), 5, 3), 1.0)

    with pytest.raises(ValueError):
        bvh.lower[0, 0] = 0.0


def test_build_bvh_rejects_empty_batch() -> None:
    with pytest.raises(IndexBuildFailed):
        build_bvh(np.zeros((0, 3)), 1.0)


@pytest.mark.parametrize("radius", [0.0, -1.0, float("nan"), float("inf")])
def test_build_bvh_rejects_bad_radius(radius: float) -> None:
    with pytest.raises(IndexBuildFailed):
        build_bvh(np.zeros((2, 3)), radius)


def test_build_bvh_rejects_non_finite_coordinates() -> None:
    centers = np.zeros((3, 3))
    centers[1, 2] = np.nan

    with pytest.raises(IndexBuildFailed, match="non-finite"):
        build_bvh(centers, 1.0)


def test_build_bvh_rejects_unknown_policy() -> None:
    with pytest.raises(IndexBuildFailed, match="split policy"):
        build_bvh(np.zeros((2, 3)), 1.0, split_policy="sah")


@pytest.mark.parametrize("policy", ["median", "midpoint"])
def test_candidates_include_every_point_within_radius(policy: str) -> None:
    rng = np.random.default_rng(4)
    centers = np.concatenate(
        [clustered_points(rng, 40, 3, spread=0.2), gaussian_points(rng, 60, 3)]
    )
    radius = 0.4
    bvh = build_bvh(centers, radius, split_policy=policy)

    for query in range(centers.shape[0]):
        found = set(iter_candidates(bvh, centers[query]))
        sq = np.sum((centers - centers[query]) ** 2, axis=1)
        expected = set(int(i) for i in np.nonzero(sq <= radius * radius)[0])
        assert expected <= found


def test_build_index_builds_one_hierarchy_per_batch() -> None:
    points = gaussian_points(np.random.default_rng(5), 30, 8)

    index = build_index(point_cloud_from_array(points), 1.0)

    assert index.num_batches == 3
    assert len(index.hierarchies) == 3
    packed = index.stacked()
    assert packed.lower.shape == (3, 59, 3)
    assert packed.centers.shape == (3, 30, 3)
    assert packed.max_depth == max(h.depth for h in index.hierarchies)


def test_build_index_rejects_empty_cloud() -> None:
    with pytest.raises(IndexBuildFailed) as excinfo:
        build_index(point_cloud_from_array(np.zeros((0, 0))), 1.0)

    assert excinfo.value.phase == "index_build"
