import numpy as np
import pytest

from tedeval.data.process import extract_ground_truth_labels, grow_slice, grow_slices
from tedeval.data.volume import LabelVolume


def test_grow_slice_fills_background_with_nearest_label():
    image = np.array([[1, 0, 0, 2]], dtype=np.uint64)
    np.testing.assert_array_equal(grow_slice(image), [[1, 1, 2, 2]])


def test_grow_slice_respects_pixel_size():
    image = np.zeros((3, 3), dtype=np.uint64)
    image[0, 1] = 1  # one row up
    image[1, 0] = 2  # one column left
    # rows are 3 units apart, columns 1 unit: the center is closer to label 2
    assert grow_slice(image, sampling=(3.0, 1.0))[1, 1] == 2
    assert grow_slice(image, sampling=(1.0, 3.0))[1, 1] == 1


def test_grow_slices_is_per_slice():
    data = np.zeros((2, 3, 3), dtype=np.uint32)
    data[0, 0, 0] = 4
    data[1, 2, 2] = 9
    grown = grow_slices(LabelVolume(data, resolution=(5, 1, 1)))

    assert grown.resolution == (5.0, 1.0, 1.0)
    assert np.all(grown.data[0] == 4)
    assert np.all(grown.data[1] == 9)


def test_grow_slices_warns_on_empty_slices():
    data = np.zeros((2, 3, 3), dtype=np.uint32)
    data[0, 1, 1] = 3
    with pytest.warns(UserWarning, match="only background"):
        grown = grow_slices(LabelVolume(data))
    assert np.all(grown.data[0] == 3)
    assert np.all(grown.data[1] == 0)


def test_grow_slices_parallel_matches_serial():
    rng = np.random.default_rng(0)
    data = rng.integers(0, 4, size=(6, 8, 8)) * (rng.random((6, 8, 8)) < 0.3)
    data[:, 0, 0] = 1
    vol = LabelVolume(data)
    np.testing.assert_array_equal(
        grow_slices(vol, num_workers=1).data, grow_slices(vol, num_workers=3).data
    )


def test_extract_ground_truth_labels_per_slice_components():
    image = np.full((2, 5, 5), 255, dtype=np.uint8)
    image[0, :, 0:2] = 0
    image[0, :, 3:5] = 0
    image[1] = 10

    labels = extract_ground_truth_labels(image, threshold=128)
    data = labels.data
    np.testing.assert_array_equal(np.unique(data), [0, 1, 2, 3])
    assert data[0, 0, 0] == 1
    assert data[0, 0, 4] == 2
    assert np.all(data[0, :, 2] == 0)
    assert np.all(data[1] == 3)


def test_extract_ground_truth_labels_uses_4_connectivity():
    image = np.full((3, 3), 200, dtype=np.uint8)
    image[0, 0] = 0
    image[1, 1] = 0  # touches (0, 0) only diagonally
    labels = extract_ground_truth_labels(image)
    assert labels.shape == (1, 3, 3)
    assert labels.label_at(0, 0, 0) != labels.label_at(0, 1, 1)
    assert set(np.unique(labels.data).tolist()) == {0, 1, 2}
