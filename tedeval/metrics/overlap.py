"""
Sparse ground-truth / candidate contingency table.

Counts, for every observed (ground-truth label, candidate label) pair, the
number of co-located voxels. Memory is bounded by the number of distinct
observed pairs rather than by the product of label counts, so volumes with
tens of thousands of labels stay tractable.

Counting runs over independent z-slabs which may be processed on a thread
pool; slab results are merged by counter accumulation, so the result does not
depend on completion order.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from tedeval.data.volume import LabelVolume, check_same_shape
from tedeval.utils.errors import ShapeError

__all__ = [
    "OverlapTable",
    "count_overlaps",
]

Pair = Tuple[int, int]


def _slab_bounds(depth: int, num_slabs: int) -> List[Tuple[int, int]]:
    num_slabs = max(1, min(num_slabs, depth))
    edges = np.linspace(0, depth, num_slabs + 1).astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]


def _count_slab(
    gt: np.ndarray, cand: np.ndarray, mask: Optional[np.ndarray]
) -> Counter:
    g = gt.ravel()
    c = cand.ravel()
    if mask is not None:
        m = mask.ravel()
        g = g[m]
        c = c[m]

    counts: Counter = Counter()
    if g.size == 0:
        return counts

    pairs, num = np.unique(np.stack([g, c], axis=1), axis=0, return_counts=True)
    for (gl, cl), n in zip(pairs.tolist(), num.tolist()):
        counts[(gl, cl)] += n
    return counts


def count_overlaps(
    gt: np.ndarray,
    cand: np.ndarray,
    mask: Optional[np.ndarray] = None,
    num_workers: int = 1,
) -> Counter:
    """Count co-located label pairs of two equally shaped (Z, Y, X) arrays.

    Args:
        gt: Ground-truth labels
        cand: Candidate labels
        mask: Optional boolean array; only voxels where it is True are counted
        num_workers: Number of threads for slab-parallel counting. Default: 1

    Returns:
        Counter mapping ``(gt_label, cand_label)`` to voxel counts
    """
    bounds = _slab_bounds(gt.shape[0], max(4, 2 * num_workers))

    def work(bound: Tuple[int, int]) -> Counter:
        z0, z1 = bound
        m = mask[z0:z1] if mask is not None else None
        return _count_slab(gt[z0:z1], cand[z0:z1], m)

    total: Counter = Counter()
    if num_workers > 1 and len(bounds) > 1:
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            for partial in executor.map(work, bounds):
                total.update(partial)
    else:
        for bound in bounds:
            total.update(work(bound))
    return total


class OverlapTable:
    """Immutable sparse contingency table between two label volumes.

    Use :meth:`build` to construct one from volumes; the constructor accepts
    precomputed pair counts.
    """

    def __init__(self, counts: Mapping[Pair, int]) -> None:
        self._counts: Dict[Pair, int] = {}
        self._by_gt: Dict[int, Dict[int, int]] = defaultdict(dict)
        self._by_cand: Dict[int, Dict[int, int]] = defaultdict(dict)
        self._gt_totals: Dict[int, int] = defaultdict(int)
        self._cand_totals: Dict[int, int] = defaultdict(int)

        for (g, c), n in sorted(counts.items()):
            n = int(n)
            if n <= 0:
                continue
            g, c = int(g), int(c)
            self._counts[(g, c)] = n
            self._by_gt[g][c] = n
            self._by_cand[c][g] = n
            self._gt_totals[g] += n
            self._cand_totals[c] += n

        self._by_gt = dict(self._by_gt)
        self._by_cand = dict(self._by_cand)
        self._gt_totals = dict(self._gt_totals)
        self._cand_totals = dict(self._cand_totals)
        self._num_voxels = sum(self._counts.values())

    @classmethod
    def build(
        cls,
        ground_truth: LabelVolume,
        candidate: LabelVolume,
        num_workers: int = 1,
        mask: Optional[np.ndarray] = None,
    ) -> "OverlapTable":
        """Count overlaps of two volumes in a single pass.

        Raises:
            ShapeError: If the volumes (or the mask) differ in shape
        """
        shape = check_same_shape(ground_truth, candidate)
        if mask is not None:
            mask = np.asarray(mask, dtype=bool)
            if mask.shape != shape:
                raise ShapeError(
                    f"Mask shape {mask.shape} does not match volume shape {shape}",
                    shapes=[mask.shape, shape],
                )
        counts = count_overlaps(ground_truth.data, candidate.data, mask, num_workers)
        return cls(counts)

    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._counts)

    def __iter__(self) -> Iterator[Pair]:
        return iter(self._counts)

    def __repr__(self) -> str:
        return (
            f"OverlapTable(pairs={len(self._counts)}, gt_labels={len(self._gt_totals)}, "
            f"candidate_labels={len(self._cand_totals)}, voxels={self._num_voxels})"
        )

    @property
    def num_voxels(self) -> int:
        return self._num_voxels

    def overlap_of(self, gt: int, cand: int) -> int:
        return self._counts.get((int(gt), int(cand)), 0)

    def total_gt(self, gt: int) -> int:
        return self._gt_totals.get(int(gt), 0)

    def total_candidate(self, cand: int) -> int:
        return self._cand_totals.get(int(cand), 0)

    def gt_labels(self) -> List[int]:
        return sorted(self._gt_totals)

    def candidate_labels(self) -> List[int]:
        return sorted(self._cand_totals)

    def candidates_of(self, gt: int) -> Dict[int, int]:
        """Candidate labels overlapping ``gt`` with their voxel counts."""
        return dict(self._by_gt.get(int(gt), {}))

    def ground_truths_of(self, cand: int) -> Dict[int, int]:
        """Ground-truth labels overlapping ``cand`` with their voxel counts."""
        return dict(self._by_cand.get(int(cand), {}))

    def pairs(self) -> Iterator[Tuple[int, int, int]]:
        """Iterate ``(gt, cand, count)`` sorted by gt then cand."""
        for (g, c), n in self._counts.items():
            yield g, c, n

    def best_candidate(self, gt: int) -> Optional[int]:
        """Candidate with the largest overlap; ties go to the lowest id."""
        row = self._by_gt.get(int(gt))
        if not row:
            return None
        return min(row, key=lambda c: (-row[c], c))

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(gt_labels, cand_labels, counts)`` as parallel arrays."""
        if not self._counts:
            empty = np.zeros(0, dtype=np.uint64)
            return empty, empty.copy(), np.zeros(0, dtype=np.int64)
        keys = np.array(list(self._counts.keys()), dtype=np.uint64)
        counts = np.fromiter(self._counts.values(), dtype=np.int64, count=len(self._counts))
        return keys[:, 0], keys[:, 1], counts

    def gt_totals(self) -> Dict[int, int]:
        return dict(self._gt_totals)

    def candidate_totals(self) -> Dict[int, int]:
        return dict(self._cand_totals)

    def check(self, num_voxels: Optional[int] = None) -> None:
        """Assert the row/column sum invariants.

        Raises:
            AssertionError: If sums are inconsistent (indicates a bug)
        """
        for g, row in self._by_gt.items():
            assert sum(row.values()) == self._gt_totals[g], f"row sum mismatch for gt label {g}"
        for c, col in self._by_cand.items():
            assert (
                sum(col.values()) == self._cand_totals[c]
            ), f"column sum mismatch for candidate label {c}"
        assert sum(self._gt_totals.values()) == self._num_voxels
        assert sum(self._cand_totals.values()) == self._num_voxels
        if num_voxels is not None:
            assert (
                self._num_voxels == num_voxels
            ), f"overlap table counts {self._num_voxels} voxels, expected {num_voxels}"
