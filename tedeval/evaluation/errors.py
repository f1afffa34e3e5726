"""
Split / merge / false-positive / false-negative classification.

Given the overlap table of ground truth against the corrected candidate, and
the overlap table against the uncorrected candidate (for detection against
background), partitions region relationships into:

    - matches: ground-truth g and candidate c overlap significantly only with
      each other
    - splits: ground-truth g overlaps more than one significant candidate
    - merges: candidate c overlaps more than one significant ground truth
    - false negatives: ground-truth regions covered only by candidate
      background
    - false positives: candidate regions covering only ground-truth
      background

An overlap is significant if it has at least ``min_overlap`` voxels. The
classification only depends on the tables, never on voxel traversal order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from tedeval.metrics.overlap import OverlapTable
from tedeval.utils.errors import ConfigurationError

__all__ = [
    "TedErrors",
    "ErrorClassifier",
    "classify_errors",
]

BACKGROUND = 0


@dataclass
class TedErrors:
    """Classified tolerant edit distance errors.

    Attributes:
        splits: ground-truth label -> sorted candidate labels it is split into
        merges: candidate label -> sorted ground-truth labels merged into it
        false_positives: sorted candidate labels without ground-truth counterpart
        false_negatives: sorted ground-truth labels without candidate counterpart
        matches: ground-truth label -> its one-to-one candidate label
        have_background: whether label 0 was treated as background
    """

    splits: Dict[int, List[int]] = field(default_factory=dict)
    merges: Dict[int, List[int]] = field(default_factory=dict)
    false_positives: List[int] = field(default_factory=list)
    false_negatives: List[int] = field(default_factory=list)
    matches: Dict[int, int] = field(default_factory=dict)
    have_background: bool = True

    # ------------------------------------------------------------------
    def split_labels(self) -> List[int]:
        return sorted(self.splits)

    def splits_of(self, gt_label: int) -> List[int]:
        return list(self.splits.get(int(gt_label), []))

    def merge_labels(self) -> List[int]:
        return sorted(self.merges)

    def merges_of(self, cand_label: int) -> List[int]:
        return list(self.merges.get(int(cand_label), []))

    def has_background_label(self) -> bool:
        return self.have_background

    # ------------------------------------------------------------------
    @property
    def num_splits(self) -> int:
        """Number of split errors: each extra candidate of a ground-truth region counts once."""
        return sum(len(cands) - 1 for cands in self.splits.values())

    @property
    def num_merges(self) -> int:
        return sum(len(gts) - 1 for gts in self.merges.values())

    @property
    def num_false_positives(self) -> int:
        return len(self.false_positives)

    @property
    def num_false_negatives(self) -> int:
        return len(self.false_negatives)

    @property
    def total(self) -> int:
        """Tolerant edit distance: total number of split, merge, fp and fn errors."""
        return (
            self.num_splits
            + self.num_merges
            + self.num_false_positives
            + self.num_false_negatives
        )

    def __repr__(self) -> str:
        return (
            f"TedErrors(splits={self.num_splits}, merges={self.num_merges}, "
            f"fp={self.num_false_positives}, fn={self.num_false_negatives})"
        )

    def to_dict(self) -> Dict[str, object]:
        """Plain-python representation for external serialization."""
        return {
            "splits": {str(k): list(v) for k, v in sorted(self.splits.items())},
            "merges": {str(k): list(v) for k, v in sorted(self.merges.items())},
            "false_positives": list(self.false_positives),
            "false_negatives": list(self.false_negatives),
            "num_splits": self.num_splits,
            "num_merges": self.num_merges,
            "num_false_positives": self.num_false_positives,
            "num_false_negatives": self.num_false_negatives,
            "total": self.total,
        }

    def check(self) -> None:
        """Assert the classification invariants.

        Raises:
            AssertionError: If matches, splits, merges, fp and fn overlap illegally
        """
        split_pairs = {(g, c) for g, cs in self.splits.items() for c in cs}
        merge_pairs = {(g, c) for c, gs in self.merges.items() for g in gs}
        match_pairs = set(self.matches.items())
        assert not (match_pairs & split_pairs), "pair is both a match and a split"
        assert not (match_pairs & merge_pairs), "pair is both a match and a merge"

        fn = set(self.false_negatives)
        fp = set(self.false_positives)
        involved_gt = set(self.matches) | set(self.splits) | {g for g, _ in merge_pairs}
        involved_cand = set(self.matches.values()) | set(self.merges) | {c for _, c in split_pairs}
        assert not (fn & involved_gt), f"false negatives {sorted(fn & involved_gt)} also matched"
        assert not (fp & involved_cand), f"false positives {sorted(fp & involved_cand)} also matched"


class ErrorClassifier:
    """Classify region relationships from overlap tables.

    Args:
        min_overlap: Overlaps below this many voxels are ignored as noise. Default: 1
        ignore_background: Exclude label 0 from split/merge consideration on
            both sides. Default: False
        have_background: Label 0 denotes background; enables false positive
            and false negative detection. Default: True
    """

    def __init__(
        self,
        min_overlap: int = 1,
        ignore_background: bool = False,
        have_background: bool = True,
    ) -> None:
        if int(min_overlap) != min_overlap or min_overlap < 0:
            raise ConfigurationError(
                f"min_overlap must be a non-negative integer, got {min_overlap}"
            )
        self.min_overlap = max(1, int(min_overlap))
        self.ignore_background = ignore_background
        self.have_background = have_background

    def classify(
        self,
        corrected: OverlapTable,
        original: Optional[OverlapTable] = None,
    ) -> TedErrors:
        """Classify errors.

        Args:
            corrected: Overlap table of ground truth vs. corrected candidate
            original: Overlap table of ground truth vs. uncorrected candidate,
                used for false positive/negative detection. Defaults to
                ``corrected``.

        Returns:
            TedErrors
        """
        original = original if original is not None else corrected

        false_negatives, false_positives = self._background_errors(original)
        fn_set = set(false_negatives)
        fp_set = set(false_positives)

        gt_sets, cand_sets = self._significant_sets(corrected, fn_set, fp_set)

        splits: Dict[int, List[int]] = {}
        matches: Dict[int, int] = {}
        for g, cands in gt_sets.items():
            # background is never split itself, it can only be a split member
            if self._is_background(g):
                continue
            if len(cands) > 1:
                splits[g] = sorted(cands)
            elif len(cands) == 1:
                (c,) = cands
                if cand_sets.get(c) == {g}:
                    matches[g] = c

        merges: Dict[int, List[int]] = {
            c: sorted(gts)
            for c, gts in cand_sets.items()
            if len(gts) > 1 and not self._is_background(c)
        }

        errors = TedErrors(
            splits=splits,
            merges=merges,
            false_positives=false_positives,
            false_negatives=false_negatives,
            matches=matches,
            have_background=self.have_background,
        )
        errors.check()
        return errors

    # ------------------------------------------------------------------
    def _excluded(self, label: int) -> bool:
        return self.ignore_background and label == BACKGROUND

    def _is_background(self, label: int) -> bool:
        return self.have_background and label == BACKGROUND

    def _significant_sets(
        self,
        table: OverlapTable,
        fn_set: Set[int],
        fp_set: Set[int],
    ) -> Tuple[Dict[int, Set[int]], Dict[int, Set[int]]]:
        gt_sets: Dict[int, Set[int]] = {}
        cand_sets: Dict[int, Set[int]] = {}
        for g, c, n in table.pairs():
            if n < self.min_overlap:
                continue
            if self._excluded(g) or self._excluded(c):
                continue
            if g in fn_set or c in fp_set:
                continue
            gt_sets.setdefault(g, set()).add(c)
            cand_sets.setdefault(c, set()).add(g)
        return gt_sets, cand_sets

    def _background_errors(self, table: OverlapTable) -> Tuple[List[int], List[int]]:
        """False negatives and false positives relative to the background label."""
        if not self.have_background:
            return [], []

        false_negatives = []
        for g in table.gt_labels():
            if g == BACKGROUND:
                continue
            row = table.candidates_of(g)
            significant = [c for c, n in row.items() if c != BACKGROUND and n >= self.min_overlap]
            if not significant and row.get(BACKGROUND, 0) >= self.min_overlap:
                false_negatives.append(g)

        false_positives = []
        for c in table.candidate_labels():
            if c == BACKGROUND:
                continue
            col = table.ground_truths_of(c)
            significant = [g for g, n in col.items() if g != BACKGROUND and n >= self.min_overlap]
            if not significant and col.get(BACKGROUND, 0) >= self.min_overlap:
                false_positives.append(c)

        return false_negatives, false_positives


def classify_errors(
    corrected: OverlapTable,
    original: Optional[OverlapTable] = None,
    min_overlap: int = 1,
    ignore_background: bool = False,
    have_background: bool = True,
) -> TedErrors:
    """Functional shortcut for :class:`ErrorClassifier`."""
    classifier = ErrorClassifier(
        min_overlap=min_overlap,
        ignore_background=ignore_background,
        have_background=have_background,
    )
    return classifier.classify(corrected, original)
