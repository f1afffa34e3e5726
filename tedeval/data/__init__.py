"""
Label volumes, volume I/O and volume preprocessing.

Import patterns:
    from tedeval.data import LabelVolume, check_same_shape
    from tedeval.data.io import read_label_volume
    from tedeval.data.process import grow_slices, extract_ground_truth_labels
"""

from .volume import LabelVolume, as_label_array, check_same_shape

__all__ = [
    "LabelVolume",
    "as_label_array",
    "check_same_shape",
]
