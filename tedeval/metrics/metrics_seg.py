"""
Segmentation statistics computed from sparse overlap tables.

All statistics are closed-form functions of the per-pair overlap counts and
per-label totals, so their cost is linear in the number of distinct label
pairs rather than in the number of voxels (or voxel pairs).

Functions:
    - variation_of_information: VOI split/merge from an OverlapTable
    - rand_index: RAND index from an OverlapTable
    - detection_overlap: fraction of ground-truth regions that were detected
    - voi / rand: array-level convenience wrappers

Also provides a torchmetrics-compatible accumulator of tolerant edit distance
errors for online evaluation.
"""

from __future__ import annotations

from typing import Dict, Sequence, Tuple

import numpy as np
import torch
import torchmetrics

from tedeval.data.volume import LabelVolume
from .overlap import OverlapTable

__all__ = [
    "variation_of_information",
    "rand_index",
    "detection_overlap",
    "voi",
    "rand",
    "TolerantEditDistanceMetric",
]


def _marginals(table: OverlapTable) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Joint counts plus the matching row/column totals for every pair."""
    gt, cand, counts = table.as_arrays()
    _, gt_inv = np.unique(gt, return_inverse=True)
    _, cand_inv = np.unique(cand, return_inverse=True)
    gt_inv = gt_inv.ravel()
    cand_inv = cand_inv.ravel()
    row = np.bincount(gt_inv, weights=counts)
    col = np.bincount(cand_inv, weights=counts)
    return counts.astype(np.float64), row, col, row[gt_inv], col[cand_inv]


def variation_of_information(table: OverlapTable) -> Tuple[float, float]:
    """Compute the variation of information between two partitions.

    The split part is the conditional entropy of the candidate given the
    ground truth, H(cand | gt): it grows when ground-truth regions are
    fragmented. The merge part is H(gt | cand): it grows when the candidate
    joins ground-truth regions. Entropies use log base 2.

    Args:
        table: Overlap table of ground truth vs. candidate

    Returns:
        Tuple of (voi_split, voi_merge). Their sum is the VOI.
    """
    if table.num_voxels == 0:
        return 0.0, 0.0

    n, _, _, row_of_pair, col_of_pair = _marginals(table)
    total = float(table.num_voxels)
    p = n / total

    # H(cand | gt) = -sum p_ij log(p_ij / p_i)
    voi_split = -np.sum(p * np.log2(n / row_of_pair))
    # H(gt | cand) = -sum p_ij log(p_ij / p_j)
    voi_merge = -np.sum(p * np.log2(n / col_of_pair))

    # clamp tiny negative zeros from rounding
    return max(0.0, float(voi_split)), max(0.0, float(voi_merge))


def rand_index(table: OverlapTable) -> float:
    """Compute the RAND index in closed form.

    Counts voxel pairs on which both partitions agree (same region in both or
    different regions in both) without enumerating pairs:

        RI = 1 - (sum_i C(a_i, 2) + sum_j C(b_j, 2) - 2 sum_ij C(n_ij, 2)) / C(N, 2)

    Args:
        table: Overlap table of ground truth vs. candidate

    Returns:
        RAND index in [0, 1]; 1.0 for fewer than two voxels
    """
    total = float(table.num_voxels)
    if total < 2:
        return 1.0

    n, row, col, _, _ = _marginals(table)

    def pairs(x: np.ndarray) -> float:
        return float(np.sum(x * (x - 1.0)) / 2.0)

    together_both = pairs(n)
    together_gt = pairs(row)
    together_cand = pairs(col)
    all_pairs = total * (total - 1.0) / 2.0

    disagreements = together_gt + together_cand - 2.0 * together_both
    return float(1.0 - disagreements / all_pairs)


def detection_overlap(
    num_false_negatives: int,
    gt_labels: Sequence[int],
    ignore_background: bool = True,
) -> float:
    """Fraction of ground-truth regions with at least one significant candidate overlap.

    Args:
        num_false_negatives: Number of undetected ground-truth regions
        gt_labels: Ground-truth labels present in the volume
        ignore_background: Do not count label 0 as a region. Default: True

    Returns:
        ``1 - num_false_negatives / num_regions``; 1.0 when there are no regions
    """
    regions = [g for g in gt_labels if not (ignore_background and g == 0)]
    if not regions:
        return 1.0
    return 1.0 - float(num_false_negatives) / float(len(regions))


def _table_from_arrays(
    seg: np.ndarray, gt: np.ndarray, ignore_background: bool = False
) -> OverlapTable:
    gt_vol = LabelVolume(gt, name="ground truth")
    seg_vol = LabelVolume(seg, name="segmentation")
    mask = gt_vol.data != 0 if ignore_background else None
    return OverlapTable.build(gt_vol, seg_vol, mask=mask)


def voi(seg: np.ndarray, gt: np.ndarray, ignore_background: bool = False) -> Tuple[float, float]:
    """Return (voi_split, voi_merge) for label arrays of shape (Z, Y, X)."""
    return variation_of_information(_table_from_arrays(seg, gt, ignore_background))


def rand(seg: np.ndarray, gt: np.ndarray, ignore_background: bool = False) -> float:
    """Return the RAND index for label arrays of shape (Z, Y, X)."""
    return rand_index(_table_from_arrays(seg, gt, ignore_background))


class TolerantEditDistanceMetric(torchmetrics.Metric):
    """
    Torchmetrics-style accumulator of tolerant edit distance errors.

    Each ``update`` corrects and classifies one (prediction, target) pair of
    label volumes and adds its split, merge, false positive and false negative
    counts to the running totals, which are summed across processes.
    """

    full_state_update: bool = False

    def __init__(
        self,
        distance_threshold: float = 0.0,
        min_overlap: int = 1,
        ignore_background: bool = False,
        have_background: bool = True,
        resolution: Sequence[float] = (1.0, 1.0, 1.0),
        dist_sync_on_step: bool = False,
    ) -> None:
        super().__init__(dist_sync_on_step=dist_sync_on_step)
        self.distance_threshold = distance_threshold
        self.min_overlap = min_overlap
        self.ignore_background = ignore_background
        self.have_background = have_background
        self.resolution = tuple(resolution)
        for name in ("splits", "merges", "false_positives", "false_negatives"):
            self.add_state(name, default=torch.tensor(0), dist_reduce_fx="sum")
        self.add_state("count", default=torch.tensor(0), dist_reduce_fx="sum")

    def update(self, preds: torch.Tensor, target: torch.Tensor) -> None:
        from tedeval.evaluation.errors import ErrorClassifier
        from tedeval.evaluation.tolerance import ToleranceCorrector

        preds_np = preds.detach().cpu().numpy()
        target_np = target.detach().cpu().numpy()
        if preds_np.ndim == 4:
            pairs = zip(preds_np, target_np)
        else:
            pairs = [(preds_np, target_np)]

        corrector = ToleranceCorrector(
            self.distance_threshold, have_background=self.have_background
        )
        classifier = ErrorClassifier(
            self.min_overlap, self.ignore_background, self.have_background
        )
        for pred_vol, target_vol in pairs:
            gt = LabelVolume(target_vol, self.resolution, name="target")
            cand = LabelVolume(pred_vol, self.resolution, name="prediction")
            corrected = corrector.correct(gt, cand).corrected
            errors = classifier.classify(
                OverlapTable.build(gt, corrected), OverlapTable.build(gt, cand)
            )
            device = self.splits.device
            self.splits += torch.tensor(errors.num_splits, device=device)
            self.merges += torch.tensor(errors.num_merges, device=device)
            self.false_positives += torch.tensor(errors.num_false_positives, device=device)
            self.false_negatives += torch.tensor(errors.num_false_negatives, device=device)
            self.count += 1

    def compute(self) -> Dict[str, torch.Tensor]:
        total = self.splits + self.merges + self.false_positives + self.false_negatives
        return {
            "splits": self.splits,
            "merges": self.merges,
            "false_positives": self.false_positives,
            "false_negatives": self.false_negatives,
            "ted": total,
        }
