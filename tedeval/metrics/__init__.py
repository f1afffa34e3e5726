"""
Evaluation metrics for tolerant edit distance evaluation.

This package provides:
- overlap.py: sparse ground-truth / candidate overlap table
- metrics_seg.py: VOI, RAND index, detection overlap and a torchmetrics
  accumulator of TED errors

Import patterns:
    from tedeval.metrics import OverlapTable, variation_of_information, rand_index
    from tedeval.metrics.metrics_seg import TolerantEditDistanceMetric
"""

from .overlap import OverlapTable, count_overlaps
from .metrics_seg import *  # noqa: F403

__all__ = [  # noqa: F405
    "OverlapTable",
    "count_overlaps",
    "variation_of_information",
    "rand_index",
    "detection_overlap",
    "voi",
    "rand",
    "TolerantEditDistanceMetric",
]
