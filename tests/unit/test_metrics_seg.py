from itertools import combinations

import numpy as np
import pytest
import torch

from tedeval.data.volume import LabelVolume
from tedeval.metrics.metrics_seg import (
    TolerantEditDistanceMetric,
    detection_overlap,
    rand,
    rand_index,
    variation_of_information,
    voi,
)
from tedeval.metrics.overlap import OverlapTable


def _halves(shape=(10, 10, 20)):
    gt = np.ones(shape, dtype=np.int64)
    gt[..., shape[-1] // 2:] = 2
    return gt


def test_voi_of_merge_is_all_merge():
    gt = _halves()
    cand = np.full_like(gt, 7)
    voi_split, voi_merge = variation_of_information(
        OverlapTable.build(LabelVolume(gt), LabelVolume(cand))
    )
    assert voi_split == 0.0
    assert voi_merge > 0
    assert voi_merge == pytest.approx(1.0)


def test_voi_of_split_is_all_split():
    cand = _halves()
    gt = np.full_like(cand, 7)
    voi_split, voi_merge = voi(cand, gt)
    assert voi_split == pytest.approx(1.0)
    assert voi_merge == 0.0


def test_identical_partitions():
    rng = np.random.default_rng(0)
    data = rng.integers(0, 5, size=(3, 6, 6))
    assert voi(data, data) == (0.0, 0.0)
    assert rand(data, data) == pytest.approx(1.0)


def test_rand_index_matches_pair_enumeration():
    rng = np.random.default_rng(2)
    gt = rng.integers(0, 3, size=(1, 4, 10))
    cand = rng.integers(0, 4, size=(1, 4, 10))

    g = gt.ravel()
    c = cand.ravel()
    agree = sum(
        (g[i] == g[j]) == (c[i] == c[j]) for i, j in combinations(range(g.size), 2)
    )
    expected = agree / (g.size * (g.size - 1) / 2)

    table = OverlapTable.build(LabelVolume(gt), LabelVolume(cand))
    assert rand_index(table) == pytest.approx(expected)


def test_rand_of_single_voxel_is_one():
    assert rand_index(OverlapTable({(1, 1): 1})) == 1.0


def test_ignore_background_masks_ground_truth_background():
    gt = np.array([[[0, 0, 1, 1]]])
    cand = np.array([[[3, 4, 5, 5]]])
    # background voxels split into 3 and 4 would add VOI split
    assert voi(cand, gt, ignore_background=False)[0] > 0
    assert voi(cand, gt, ignore_background=True) == (0.0, 0.0)


def test_detection_overlap():
    assert detection_overlap(1, [0, 1, 2, 3, 4]) == pytest.approx(0.75)
    assert detection_overlap(0, [0]) == 1.0
    assert detection_overlap(1, [0, 1], ignore_background=False) == pytest.approx(0.5)


def test_ted_metric_accumulates_errors():
    gt = torch.from_numpy(_halves((2, 4, 8)))
    merged = torch.full_like(gt, 7)

    metric = TolerantEditDistanceMetric()
    metric.update(gt.clone(), gt)
    result = metric.compute()
    assert int(result["ted"]) == 0

    metric.update(merged, gt)
    result = metric.compute()
    assert int(result["merges"]) == 1
    assert int(result["ted"]) == 1
    assert int(metric.count) == 2


def test_ted_metric_handles_batches():
    gt = torch.from_numpy(np.stack([_halves((2, 4, 8))] * 3))
    metric = TolerantEditDistanceMetric(distance_threshold=1.0)
    metric.update(torch.full_like(gt, 7), gt)
    result = metric.compute()
    assert int(result["merges"]) == 3
    assert int(metric.count) == 3
