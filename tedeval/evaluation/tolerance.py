"""
Tolerant boundary correction of a candidate segmentation.

Candidate regions whose boundary sits within a physical distance of the true
boundary are relabeled so that the disagreement is not counted as an error.

Algorithm:
    1. Every ground-truth label g is matched to the candidate label m(g) with
       the largest overlap (ties go to the lowest candidate id).
    2. A voxel v with gt(v) = g and cand(v) = c != m(g) is *tolerated* if a
       ground-truth region g' with m(g') = c lies within the tolerance radius
       of v, i.e. c only overflowed its true boundary by at most the radius.
    3. Ground-truth regions claim tolerated voxels in bulk-synchronous rings,
       like a bounded dilation: a ring contains all tolerated voxels adjacent
       to a voxel that already carries their target label m(gt(v)). Claims are
       computed from a read-only snapshot of the previous ring and committed
       together, so the nearest claims are always resolved first.
    4. A group of claims is rejected if removing its voxels would disconnect
       the candidate region it leaves. Groups leaving the same label are
       tested in ascending ground-truth label order. Rejected claims are
       retried in later rings; rings stop once one commits nothing, and
       voxels still waiting then are reported as unresolved.

Voxels only ever receive the label matched to their own ground-truth region,
so a correction never merges candidate regions that are separate in ground
truth.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import cc3d
import numpy as np
from scipy.ndimage import (
    binary_dilation,
    distance_transform_edt,
    find_objects,
    generate_binary_structure,
)

from tedeval.data.volume import LabelVolume, check_same_shape
from tedeval.metrics.overlap import OverlapTable
from tedeval.utils.errors import ConfigurationError

__all__ = [
    "CorrectionResult",
    "ToleranceCorrector",
    "neighbor_offsets",
    "correct_tolerance",
]

SUPPORTED_CONNECTIVITY = (6, 18, 26)

# Guards ``distance <= radius`` against rounding in the distance transform
_DISTANCE_EPS = 1e-6

# Window around a claim group in which connectivity is checked first
_WINDOW_MARGIN = 2

# connectivity -> rank of the matching scipy structuring element
_STRUCTURE_RANK = {6: 1, 18: 2, 26: 3}


def neighbor_offsets(connectivity: int = 6) -> np.ndarray:
    """Return the (K, 3) voxel offsets of a 6-, 18- or 26-neighborhood."""
    if connectivity not in SUPPORTED_CONNECTIVITY:
        raise ConfigurationError(
            f"connectivity must be one of {SUPPORTED_CONNECTIVITY}, got {connectivity}"
        )
    offsets = []
    for dz in (-1, 0, 1):
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                order = abs(dz) + abs(dy) + abs(dx)
                if order == 0:
                    continue
                if connectivity == 6 and order > 1:
                    continue
                if connectivity == 18 and order > 2:
                    continue
                offsets.append((dz, dy, dx))
    return np.array(offsets, dtype=np.int64)


@dataclass(frozen=True)
class CorrectionResult:
    """Outcome of a tolerance correction.

    Attributes:
        corrected: Corrected candidate volume
        reassigned: (K, 3) array of reassigned (z, y, x) coordinates in
            canonical order
        num_unresolved: Voxels within tolerance that could not be legally
            reassigned (rejected claims or unreachable by any claim)
        num_rounds: Number of claim rings that committed at least one voxel
    """

    corrected: LabelVolume
    reassigned: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int64))
    num_unresolved: int = 0
    num_rounds: int = 0

    @property
    def num_reassigned(self) -> int:
        return int(self.reassigned.shape[0])

    @property
    def is_identity(self) -> bool:
        return self.num_reassigned == 0


class ToleranceCorrector:
    """Relabel candidate voxels whose disagreement lies within a tolerance radius.

    Args:
        distance_threshold: Tolerance radius in physical units (same units as
            the volume resolution). 0 disables correction. Default: 0
        connectivity: Voxel neighborhood used for claims and region
            connectivity (6, 18 or 26). Default: 6
        have_background: Treat label 0 as background. Background may be
            fragmented freely by claims. Default: True
        verbose: Print progress. Default: False
    """

    def __init__(
        self,
        distance_threshold: float = 0.0,
        connectivity: int = 6,
        have_background: bool = True,
        verbose: bool = False,
    ) -> None:
        if distance_threshold < 0 or not math.isfinite(distance_threshold):
            raise ConfigurationError(
                f"distance_threshold must be a non-negative number, got {distance_threshold}"
            )
        self.distance_threshold = float(distance_threshold)
        self.connectivity = int(connectivity)
        self.offsets = neighbor_offsets(self.connectivity)
        self.structure = generate_binary_structure(3, _STRUCTURE_RANK[self.connectivity])
        self.have_background = have_background
        self.verbose = verbose

    def __repr__(self) -> str:
        return (
            f"ToleranceCorrector(distance_threshold={self.distance_threshold}, "
            f"connectivity={self.connectivity}, have_background={self.have_background})"
        )

    # ------------------------------------------------------------------
    def correct(self, ground_truth: LabelVolume, candidate: LabelVolume) -> CorrectionResult:
        """Produce a corrected copy of ``candidate``. Inputs are not modified.

        Raises:
            ShapeError: If the volumes differ in shape
        """
        shape = check_same_shape(ground_truth, candidate)
        corrected_name = f"corrected {candidate.name}"

        if self.distance_threshold == 0:
            return CorrectionResult(corrected=candidate.with_data(candidate.data, corrected_name))

        gt = ground_truth.data
        cand = candidate.data
        resolution = ground_truth.resolution

        # arena of ground-truth labels: compact indices into ``gt_labels``
        gt_labels, gt_index = np.unique(gt, return_inverse=True)
        gt_index = gt_index.reshape(shape)

        table = OverlapTable.build(ground_truth, candidate)
        match = np.array([table.best_candidate(g) for g in gt_labels.tolist()], dtype=np.uint64)
        target = match[gt_index]

        disagree = cand != target
        if not disagree.any():
            return CorrectionResult(corrected=candidate.with_data(cand, corrected_name))

        tolerated = self._tolerated_voxels(cand, target, disagree, match, resolution)
        num_tolerated = int(tolerated.sum())
        if self.verbose:
            print(
                f"  [tolerance] {int(disagree.sum())} disagreeing voxels, "
                f"{num_tolerated} within {self.distance_threshold}"
            )

        labels = cand.ravel().copy()
        accepted, num_rounds = self._claim_rings(
            labels,
            target.ravel(),
            gt_index.ravel(),
            np.flatnonzero(tolerated),
            shape,
        )

        reassigned = np.stack(np.unravel_index(accepted, shape), axis=1).astype(np.int64)
        result = CorrectionResult(
            corrected=candidate.with_data(labels.reshape(shape), corrected_name),
            reassigned=reassigned,
            num_unresolved=num_tolerated - int(accepted.size),
            num_rounds=num_rounds,
        )
        if self.verbose:
            print(
                f"  [tolerance] reassigned {result.num_reassigned} voxels in "
                f"{num_rounds} rings, {result.num_unresolved} unresolved"
            )
        return result

    # ------------------------------------------------------------------
    def _margin(self, resolution: Sequence[float]) -> Tuple[int, int, int]:
        return tuple(int(math.ceil(self.distance_threshold / r)) + 1 for r in resolution)

    def _tolerated_voxels(
        self,
        cand: np.ndarray,
        target: np.ndarray,
        disagree: np.ndarray,
        match: np.ndarray,
        resolution: Sequence[float],
    ) -> np.ndarray:
        """Disagreeing voxels lying within the radius of a region matched to their label."""
        tolerated = np.zeros(cand.shape, dtype=bool)

        # only labels that are the match of some ground-truth region can be tolerated
        matched_labels = np.unique(match)
        dis_labels = cand[disagree]
        relevant = np.isin(dis_labels, matched_labels)
        if not relevant.any():
            return tolerated

        labels_of_interest = np.unique(dis_labels[relevant])
        index_volume = np.zeros(cand.shape, dtype=np.int64)
        dis_coords = np.nonzero(disagree)
        positions = np.searchsorted(labels_of_interest, dis_labels)
        positions = np.clip(positions, 0, labels_of_interest.size - 1)
        hit = relevant & (labels_of_interest[positions] == dis_labels)
        index_volume[tuple(c[hit] for c in dis_coords)] = positions[hit] + 1

        margin = self._margin(resolution)
        for position, bbox in enumerate(find_objects(index_volume)):
            if bbox is None:
                continue
            label = labels_of_interest[position]
            crop = tuple(
                slice(max(0, s.start - m), min(n, s.stop + m))
                for s, m, n in zip(bbox, margin, cand.shape)
            )
            region = target[crop] == label
            if not region.any():
                continue
            distance = distance_transform_edt(~region, sampling=resolution)
            within = distance <= self.distance_threshold + _DISTANCE_EPS
            tolerated[crop] |= within & (index_volume[crop] == position + 1)

        return tolerated

    def _claim_rings(
        self,
        labels: np.ndarray,
        target: np.ndarray,
        gt_index: np.ndarray,
        pending: np.ndarray,
        shape: Tuple[int, int, int],
    ) -> Tuple[np.ndarray, int]:
        """Run claim rings in place on the flat ``labels`` array.

        Rejected claims stay pending: a later ring may reshape the region
        they would leave and make them legal. Rings stop once one commits
        nothing, so the result is a fixed point of the correction.

        Returns:
            Sorted flat indices of accepted voxels and the number of rings
        """
        boxes = _LabelBoxes(labels.reshape(shape))
        accepted_chunks: List[np.ndarray] = []
        num_rounds = 0

        while pending.size:
            frontier = pending[self._touches_target(pending, labels, target, shape)]
            if frontier.size == 0:
                break

            accepted, rejected = self._resolve_claims(frontier, labels, gt_index, shape, boxes)
            if self.verbose and rejected.size:
                print(f"  [tolerance] ring {num_rounds + 1}: rejected {rejected.size} claims")
            if accepted.size == 0:
                break

            # commit the ring atomically
            labels[accepted] = target[accepted]
            boxes.extend(labels[accepted], accepted, shape)
            accepted_chunks.append(accepted)
            num_rounds += 1
            pending = np.setdiff1d(pending, accepted, assume_unique=True)

        if not accepted_chunks:
            return np.zeros(0, dtype=np.int64), 0
        return np.sort(np.concatenate(accepted_chunks)), num_rounds

    def _touches_target(
        self,
        pending: np.ndarray,
        labels: np.ndarray,
        target: np.ndarray,
        shape: Tuple[int, int, int],
    ) -> np.ndarray:
        """Boolean mask of pending voxels with a neighbor already carrying their target."""
        coords = np.stack(np.unravel_index(pending, shape), axis=1)
        wanted = target[pending]
        touches = np.zeros(pending.size, dtype=bool)
        upper = np.array(shape)
        for offset in self.offsets:
            neighbors = coords + offset
            valid = np.all((neighbors >= 0) & (neighbors < upper), axis=1)
            if not valid.any():
                continue
            flat = np.ravel_multi_index(tuple(neighbors[valid].T), shape)
            touches[valid] |= labels[flat] == wanted[valid]
        return touches

    def _resolve_claims(
        self,
        frontier: np.ndarray,
        labels: np.ndarray,
        gt_index: np.ndarray,
        shape: Tuple[int, int, int],
        boxes: "_LabelBoxes",
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Split a ring's claims into accepted and rejected voxel indices."""
        sources = labels[frontier]
        claimants = gt_index[frontier]
        accepted: List[np.ndarray] = []
        rejected: List[np.ndarray] = []

        volume = labels.reshape(shape)
        for source in np.unique(sources):
            in_source = sources == source
            voxels = frontier[in_source]

            if self.have_background and source == 0:
                accepted.append(voxels)
                continue

            taken: List[np.ndarray] = []
            groups = claimants[in_source]
            for claimant in np.unique(groups):
                group = voxels[groups == claimant]
                if self._keeps_connected(volume, int(source), group, taken, boxes):
                    accepted.append(group)
                    taken.append(group)
                else:
                    rejected.append(group)

        def _join(chunks: List[np.ndarray]) -> np.ndarray:
            if not chunks:
                return np.zeros(0, dtype=np.int64)
            return np.concatenate(chunks).astype(np.int64)

        return _join(accepted), _join(rejected)

    def _keeps_connected(
        self,
        volume: np.ndarray,
        source: int,
        group: np.ndarray,
        taken: List[np.ndarray],
        boxes: "_LabelBoxes",
    ) -> bool:
        """Whether ``source`` loses no connectivity when ``group`` leaves it.

        Voxels in ``taken`` already left ``source`` earlier in the ring. The
        test first looks at a small window around the group: if all remaining
        source voxels next to the group are connected inside the window, the
        region cannot fall apart. Only otherwise are the components of the
        whole label counted.
        """
        shape = volume.shape
        coords = np.stack(np.unravel_index(group, shape), axis=1)
        lo = np.maximum(coords.min(axis=0) - _WINDOW_MARGIN, 0)
        hi = np.minimum(coords.max(axis=0) + _WINDOW_MARGIN + 1, shape)
        window = tuple(slice(int(a), int(b)) for a, b in zip(lo, hi))

        region = _source_mask(volume, source, window, taken)
        claimed = np.zeros(region.shape, dtype=bool)
        claimed[tuple((coords - lo).T)] = True
        region &= ~claimed

        touching = region & binary_dilation(claimed, structure=self.structure)
        if not touching.any():
            return True
        components = cc3d.connected_components(
            region.astype(np.uint8), connectivity=self.connectivity
        )
        if np.unique(components[touching]).size == 1:
            return True

        box = boxes.get(source, shape)
        before = _source_mask(volume, source, box, taken)
        after = _source_mask(volume, source, box, taken + [group])
        return _count_components(after, self.connectivity) <= _count_components(
            before, self.connectivity
        )


class _LabelBoxes:
    """Bounding boxes of candidate labels, grown as labels claim voxels."""

    def __init__(self, volume: np.ndarray) -> None:
        self._boxes: Dict[int, np.ndarray] = {}
        labels, inverse = np.unique(volume, return_inverse=True)
        for label, bbox in zip(labels.tolist(), find_objects(inverse.reshape(volume.shape) + 1)):
            if bbox is None:
                continue
            self._boxes[label] = np.array([[s.start, s.stop] for s in bbox], dtype=np.int64)

    def get(self, label: int, shape: Tuple[int, int, int]) -> Tuple[slice, slice, slice]:
        box = self._boxes.get(label)
        if box is None:
            return tuple(slice(0, n) for n in shape)
        return tuple(slice(int(a), int(b)) for a, b in box)

    def extend(self, new_labels: np.ndarray, indices: np.ndarray, shape: Tuple[int, int, int]) -> None:
        coords = np.stack(np.unravel_index(indices, shape), axis=1)
        for label in np.unique(new_labels).tolist():
            pts = coords[new_labels == label]
            lo = pts.min(axis=0)
            hi = pts.max(axis=0) + 1
            box = self._boxes.get(label)
            if box is None:
                self._boxes[label] = np.stack([lo, hi], axis=1)
            else:
                box[:, 0] = np.minimum(box[:, 0], lo)
                box[:, 1] = np.maximum(box[:, 1], hi)


def _source_mask(
    volume: np.ndarray,
    source: int,
    crop: Tuple[slice, slice, slice],
    taken: List[np.ndarray],
) -> np.ndarray:
    """Voxels of ``source`` inside ``crop``, minus the flat indices in ``taken``."""
    mask = volume[crop] == source
    if not taken:
        return mask
    coords = np.stack(np.unravel_index(np.concatenate(taken), volume.shape), axis=1)
    lo = np.array([s.start for s in crop])
    hi = np.array([s.stop for s in crop])
    inside = np.all((coords >= lo) & (coords < hi), axis=1)
    mask[tuple((coords[inside] - lo).T)] = False
    return mask


def _count_components(mask: np.ndarray, connectivity: int) -> int:
    if not mask.any():
        return 0
    _, num = cc3d.connected_components(
        mask.astype(np.uint8), connectivity=connectivity, return_N=True
    )
    return int(num)


def correct_tolerance(
    ground_truth: LabelVolume,
    candidate: LabelVolume,
    distance_threshold: float,
    connectivity: int = 6,
    have_background: bool = True,
    verbose: bool = False,
) -> CorrectionResult:
    """Functional shortcut for :class:`ToleranceCorrector`."""
    corrector = ToleranceCorrector(
        distance_threshold=distance_threshold,
        connectivity=connectivity,
        have_background=have_background,
        verbose=verbose,
    )
    return corrector.correct(ground_truth, candidate)
