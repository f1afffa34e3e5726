import numpy as np
import pytest

from tedeval.data.volume import LabelVolume
from tedeval.evaluation.errors import ErrorClassifier
from tedeval.evaluation.tolerance import ToleranceCorrector, correct_tolerance, neighbor_offsets
from tedeval.metrics.overlap import OverlapTable
from tedeval.utils.errors import ConfigurationError


def _cube_pair(resolution=(1.0, 1.0, 1.0)):
    """10x10x10 ground-truth cube and a candidate with one boundary voxel shifted."""
    gt = np.zeros((14, 14, 14), dtype=np.uint32)
    gt[2:12, 2:12, 2:12] = 1
    cand = gt.copy()
    cand[6, 6, 11] = 0  # boundary voxel leaves the cube...
    cand[6, 6, 12] = 1  # ...and reappears one voxel further out
    return (
        LabelVolume(gt, resolution, name="ground truth"),
        LabelVolume(cand, resolution, name="candidate"),
    )


def _shifted_halves(shift=1):
    """Two ground-truth halves; the candidate boundary sits ``shift`` voxels to the right."""
    gt = np.ones((4, 8, 12), dtype=np.uint32)
    gt[:, :, 6:] = 2
    cand = np.ones_like(gt)
    cand[:, :, 6 + shift:] = 2
    return LabelVolume(gt, name="ground truth"), LabelVolume(cand, name="candidate")


def _classify(gt, cand, corrected):
    return ErrorClassifier().classify(OverlapTable.build(gt, corrected), OverlapTable.build(gt, cand))


def test_zero_radius_is_identity():
    rng = np.random.default_rng(0)
    gt = LabelVolume(rng.integers(0, 4, size=(5, 6, 7)))
    cand = LabelVolume(rng.integers(0, 4, size=(5, 6, 7)))

    result = ToleranceCorrector(distance_threshold=0).correct(gt, cand)
    assert result.is_identity
    assert result.num_reassigned == 0
    np.testing.assert_array_equal(result.corrected.data, cand.data)


@pytest.mark.parametrize("radius", [0.0, 1.0, 3.5])
def test_identical_volumes_need_no_reassignment(radius):
    rng = np.random.default_rng(1)
    data = rng.integers(0, 6, size=(4, 9, 9))
    gt = LabelVolume(data)
    cand = LabelVolume(data)

    result = ToleranceCorrector(radius).correct(gt, cand)
    assert result.num_reassigned == 0
    assert result.num_unresolved == 0
    errors = _classify(gt, cand, result.corrected)
    assert errors.total == 0


def test_cube_with_shifted_voxel_is_tolerated():
    gt, cand = _cube_pair()
    result = ToleranceCorrector(distance_threshold=1.0).correct(gt, cand)

    assert result.num_reassigned == 2
    assert result.num_unresolved == 0
    np.testing.assert_array_equal(result.corrected.data, gt.data)
    np.testing.assert_array_equal(result.reassigned, [[6, 6, 11], [6, 6, 12]])

    errors = _classify(gt, cand, result.corrected)
    assert errors.num_splits == 0
    assert errors.num_merges == 0


def test_cube_with_shifted_voxel_without_tolerance_is_an_error():
    gt, cand = _cube_pair()
    result = ToleranceCorrector(distance_threshold=0.0).correct(gt, cand)
    errors = _classify(gt, cand, result.corrected)
    assert errors.num_splits + errors.num_merges > 0


def test_distance_uses_physical_resolution():
    gt = np.zeros((6, 6, 6), dtype=np.uint32)
    gt[1:4] = 1
    cand = np.zeros_like(gt)
    cand[2:5] = 1  # shifted by one slice along z

    # one slice is 10 units thick: outside a tolerance of 2
    coarse = ToleranceCorrector(2.0).correct(
        LabelVolume(gt, (10, 1, 1)), LabelVolume(cand, (10, 1, 1))
    )
    assert coarse.num_reassigned == 0

    fine = ToleranceCorrector(2.0).correct(LabelVolume(gt), LabelVolume(cand))
    np.testing.assert_array_equal(fine.corrected.data, gt)


def test_shifted_boundary_within_radius_is_corrected():
    gt, cand = _shifted_halves(shift=1)
    result = ToleranceCorrector(1.0).correct(gt, cand)
    np.testing.assert_array_equal(result.corrected.data, gt.data)
    assert result.num_reassigned == 4 * 8
    assert result.num_rounds == 1


def _random_blocks(seed):
    """Ground truth of 3-voxel blocks; the candidate copies a shifted neighbor label at random."""
    rng = np.random.default_rng(seed)
    blocks = rng.integers(0, 4, size=(2, 3, 3))
    gt = np.kron(blocks, np.ones((3, 3, 3), dtype=np.int64)).astype(np.uint32)
    shifted = np.roll(gt, 1, axis=int(rng.integers(0, 3)))
    cand = np.where(rng.random(gt.shape) < 0.3, shifted, gt).astype(np.uint32)
    return LabelVolume(gt, name="ground truth"), LabelVolume(cand, name="candidate")


def test_correction_is_idempotent():
    for shift, radius in [(1, 1.0), (2, 1.0), (2, 2.0)]:
        gt, cand = _shifted_halves(shift=shift)
        corrector = ToleranceCorrector(radius)
        first = corrector.correct(gt, cand)
        second = corrector.correct(gt, first.corrected)
        assert second.num_reassigned == 0
        np.testing.assert_array_equal(second.corrected.data, first.corrected.data)


@pytest.mark.parametrize("radius", [1.0, 1.5, 2.0])
@pytest.mark.parametrize("seed", [3, 11, 36, 58, 91])
def test_correction_is_idempotent_on_random_blocks(seed, radius):
    gt, cand = _random_blocks(seed)
    corrector = ToleranceCorrector(radius)
    first = corrector.correct(gt, cand)
    second = corrector.correct(gt, first.corrected)

    assert second.num_reassigned == 0
    assert second.num_unresolved == first.num_unresolved
    np.testing.assert_array_equal(second.corrected.data, first.corrected.data)


def test_rejected_claim_is_retried_after_the_region_changes():
    # candidate 5 is held together only by (1, 2), which belongs to the ground
    # truth of candidate 7; (2, 2) is a stray 7 voxel inside the 5 region
    gt = np.array(
        [[[2, 2, 2, 2, 2],
          [1, 1, 2, 1, 1],
          [1, 1, 1, 1, 1]]],
        dtype=np.uint32,
    )
    cand = np.array(
        [[[7, 7, 7, 7, 7],
          [5, 5, 5, 5, 5],
          [5, 5, 7, 5, 5]]],
        dtype=np.uint32,
    )
    corrector = ToleranceCorrector(1.0, connectivity=6)
    result = corrector.correct(LabelVolume(gt), LabelVolume(cand))

    # the first ring gives (2, 2) to 5, which reconnects 5 and frees (1, 2)
    assert result.num_rounds == 2
    assert result.num_unresolved == 0
    np.testing.assert_array_equal(result.reassigned, [[0, 1, 2], [0, 2, 2]])
    np.testing.assert_array_equal(result.corrected.data, np.where(gt == 2, 7, 5))

    again = corrector.correct(LabelVolume(gt), result.corrected)
    assert again.num_reassigned == 0


def test_unreachable_voxels_keep_their_label():
    # the boundary is two voxels off but the tolerance is one voxel: the
    # tolerated plane never touches a voxel carrying its target label
    gt, cand = _shifted_halves(shift=2)
    result = ToleranceCorrector(1.0).correct(gt, cand)
    assert result.num_reassigned == 0
    assert result.num_unresolved == 4 * 8
    np.testing.assert_array_equal(result.corrected.data, cand.data)


def test_reassignment_never_disconnects_the_region_it_leaves():
    # candidate label 5 covers the left and right ground-truth regions and is
    # connected only through one voxel of the thin ground-truth wall in between
    gt = np.full((1, 5, 7), 2, dtype=np.uint32)
    gt[:, :, 3] = 1
    gt[:, :, 4:] = 3
    cand = np.full((1, 5, 7), 5, dtype=np.uint32)
    cand[:, :, 3] = 7
    cand[0, 2, 3] = 5

    corrector = ToleranceCorrector(1.0, connectivity=6)
    result = corrector.correct(LabelVolume(gt), LabelVolume(cand))
    assert result.num_reassigned == 0
    assert result.num_unresolved == 1
    assert result.corrected.label_at(0, 2, 3) == 5

    again = corrector.correct(LabelVolume(gt), result.corrected)
    assert again.num_reassigned == 0
    assert again.num_unresolved == 1


def test_claim_on_a_closed_loop_is_accepted():
    # candidate 5 is a square loop; taking one voxel of its top edge cuts the
    # edge locally but the loop keeps the rest connected
    cand = np.full((1, 9, 9), 9, dtype=np.uint32)
    cand[0, 0, :] = 7
    cand[0, 1:8, 1:8] = 5
    cand[0, 2:7, 2:7] = 8
    gt = np.full((1, 9, 9), 4, dtype=np.uint32)
    gt[0, 0, :] = 2
    gt[0, 1:8, 1:8] = 1
    gt[0, 2:7, 2:7] = 3
    gt[0, 1, 4] = 2

    result = ToleranceCorrector(1.0, connectivity=6).correct(LabelVolume(gt), LabelVolume(cand))
    np.testing.assert_array_equal(result.reassigned, [[0, 1, 4]])
    assert result.num_unresolved == 0
    assert result.corrected.label_at(0, 1, 4) == 7


def test_correction_is_deterministic_and_leaves_inputs_untouched():
    rng = np.random.default_rng(7)
    gt_data = np.repeat(rng.integers(1, 4, size=(3, 4, 4)), 3, axis=2)
    cand_data = gt_data.copy()
    cand_data[rng.random(cand_data.shape) < 0.1] = 0
    gt = LabelVolume(gt_data)
    cand = LabelVolume(cand_data)

    first = correct_tolerance(gt, cand, 1.5)
    second = correct_tolerance(gt, cand, 1.5)
    np.testing.assert_array_equal(first.corrected.data, second.corrected.data)
    np.testing.assert_array_equal(first.reassigned, second.reassigned)
    np.testing.assert_array_equal(cand.data, cand_data)


def test_invalid_parameters_raise():
    with pytest.raises(ConfigurationError):
        ToleranceCorrector(-1.0)
    with pytest.raises(ConfigurationError):
        ToleranceCorrector(1.0, connectivity=4)


@pytest.mark.parametrize("connectivity, count", [(6, 6), (18, 18), (26, 26)])
def test_neighbor_offsets(connectivity, count):
    offsets = neighbor_offsets(connectivity)
    assert offsets.shape == (count, 3)
    assert not np.any(np.all(offsets == 0, axis=1))
