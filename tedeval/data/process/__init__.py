# Slice-wise background growing used before VOI/RAND
from .grow import grow_slice, grow_slices

# Ground-truth labels from foreground/background images
from .components import extract_ground_truth_labels

__all__ = [
    "grow_slice",
    "grow_slices",
    "extract_ground_truth_labels",
]
