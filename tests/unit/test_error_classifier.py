import numpy as np
import pytest

from tedeval.data.volume import LabelVolume
from tedeval.evaluation.errors import ErrorClassifier, TedErrors, classify_errors
from tedeval.metrics.overlap import OverlapTable
from tedeval.utils.errors import ConfigurationError


def _merged_pair():
    """Two ground-truth regions of 1000 voxels each, merged into one candidate."""
    gt = np.ones((10, 10, 20), dtype=np.uint32)
    gt[:, :, 10:] = 2
    cand = np.full_like(gt, 7)
    return LabelVolume(gt), LabelVolume(cand)


def test_merged_regions_are_one_merge():
    gt, cand = _merged_pair()
    table = OverlapTable.build(gt, cand)
    errors = ErrorClassifier().classify(table, table)

    assert errors.merges == {7: [1, 2]}
    assert errors.merges_of(7) == [1, 2]
    assert errors.num_merges == 1
    assert errors.splits == {}
    assert errors.false_negatives == []
    assert errors.false_positives == []
    assert errors.total == 1


def test_overlap_below_threshold_is_ignored():
    table = OverlapTable({(1, 10): 9990, (1, 11): 10})

    errors = ErrorClassifier(min_overlap=50).classify(table)
    assert errors.num_splits == 0
    assert errors.matches == {1: 10}
    assert errors.total == 0

    errors = ErrorClassifier(min_overlap=1).classify(table)
    assert errors.splits == {1: [10, 11]}
    assert errors.num_splits == 1


def test_split_counts_each_extra_candidate():
    table = OverlapTable({(1, 4): 100, (1, 5): 100, (1, 6): 100})
    errors = classify_errors(table)
    assert errors.split_labels() == [1]
    assert errors.splits_of(1) == [4, 5, 6]
    assert errors.num_splits == 2


def test_false_negatives_and_positives_against_background():
    table = OverlapTable({(1, 0): 100, (2, 5): 100, (0, 0): 500, (0, 6): 40})
    errors = ErrorClassifier().classify(table)

    assert errors.false_negatives == [1]
    assert errors.false_positives == [6]
    assert errors.matches[2] == 5
    assert 1 not in errors.matches
    assert errors.num_false_negatives == 1
    assert errors.num_false_positives == 1
    assert errors.total == 2
    assert errors.has_background_label()


def test_without_background_no_false_positives_or_negatives():
    table = OverlapTable({(1, 0): 100, (2, 5): 100, (0, 0): 500, (0, 6): 40})
    errors = ErrorClassifier(have_background=False).classify(table)
    assert errors.false_negatives == []
    assert errors.false_positives == []
    assert not errors.has_background_label()


def test_false_negatives_use_uncorrected_overlaps():
    original = OverlapTable({(1, 0): 100, (0, 0): 500})
    corrected = OverlapTable({(1, 3): 100, (0, 0): 500})
    errors = ErrorClassifier().classify(corrected, original)
    assert errors.false_negatives == [1]
    # a false negative is not also reported as a match
    assert 1 not in errors.matches


def test_ignore_background_drops_label_zero_from_splits_and_merges():
    table = OverlapTable({(1, 5): 100, (1, 0): 30, (0, 0): 500, (0, 5): 20})

    errors = ErrorClassifier(ignore_background=False).classify(table)
    assert errors.splits == {1: [0, 5]}
    assert errors.merges == {5: [0, 1]}

    errors = ErrorClassifier(ignore_background=True).classify(table)
    assert errors.splits == {}
    assert errors.merges == {}
    assert errors.matches == {1: 5}


def test_split_source_can_also_be_merge_member():
    # gt 1 is split into 3 and 4; candidate 4 also merges gt 1 and 2
    table = OverlapTable({(1, 3): 50, (1, 4): 50, (2, 4): 50})
    errors = ErrorClassifier().classify(table)
    assert errors.splits == {1: [3, 4]}
    assert errors.merges == {4: [1, 2]}
    assert errors.matches == {}
    assert errors.total == 2


def test_invalid_min_overlap_raises():
    with pytest.raises(ConfigurationError):
        ErrorClassifier(min_overlap=-1)
    with pytest.raises(ConfigurationError):
        ErrorClassifier(min_overlap=2.5)


def test_errors_to_dict():
    errors = TedErrors(splits={1: [3, 4]}, false_negatives=[9])
    d = errors.to_dict()
    assert d["splits"] == {"1": [3, 4]}
    assert d["num_splits"] == 1
    assert d["num_false_negatives"] == 1
    assert d["total"] == 2


def test_background_is_only_a_member_of_splits_and_merges():
    # candidate 5 reaches into ground-truth background, candidate 0 leaks into gt 1
    table = OverlapTable({(0, 0): 500, (0, 5): 20, (0, 6): 20, (1, 5): 100, (1, 0): 30})

    errors = ErrorClassifier().classify(table)
    assert 0 not in errors.splits
    assert 0 not in errors.merges
    assert errors.splits == {1: [0, 5]}
    assert errors.merges == {5: [0, 1]}
    assert errors.false_positives == [6]
    assert errors.total == 3


def test_label_zero_is_a_region_without_background():
    table = OverlapTable({(0, 0): 500, (0, 5): 20, (1, 5): 100})

    errors = ErrorClassifier(have_background=False).classify(table)
    assert errors.splits == {0: [0, 5]}
    assert errors.merges == {5: [0, 1]}
    assert errors.total == 2
