"""
Structured configuration for tolerant edit distance evaluation.

The dataclasses double as OmegaConf schemas: YAML files and command-line
overrides are merged on top of these defaults and type-checked by OmegaConf.

Sections:
    - EvaluationConfig: tolerance, significance and report toggles
    - IOConfig: input volumes and output locations used by the driver
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class EvaluationConfig:
    """Options of the evaluation core.

    Attributes:
        distance_threshold: Tolerance radius in physical units. 0 disables
            boundary tolerance.
        min_overlap: Overlaps with fewer voxels are treated as noise.
        ignore_background: Drop ground-truth background voxels from VOI/RAND
            and label 0 from split/merge classification.
        grow_slices: Fill candidate background slice-wise before VOI/RAND.
        report_voi: Compute the variation of information.
        report_rand: Compute the RAND index.
        report_detection_overlap: Compute the detection overlap.
        report_ted: Compute the tolerant edit distance.
        header_only: Only the report header is requested; no volumes needed.
        have_background: Label 0 is background (enables fp/fn detection).
        connectivity: Voxel adjacency used by the corrector (6, 18 or 26).
        num_workers: Threads for overlap counting and slice growing.
        statistics_on_corrected: Compute VOI/RAND on the corrected candidate.
        verbose: Print progress.
    """

    distance_threshold: float = 0.0
    min_overlap: int = 1
    ignore_background: bool = False
    grow_slices: bool = False
    report_voi: bool = False
    report_rand: bool = False
    report_detection_overlap: bool = True
    report_ted: bool = True
    header_only: bool = False
    have_background: bool = True
    connectivity: int = 6
    num_workers: int = 1
    statistics_on_corrected: bool = False
    verbose: bool = False


@dataclass
class IOConfig:
    """Input and output locations of the command-line driver.

    Volumes are given as ``file.h5:dataset`` or as an image stack path.
    """

    ground_truth: str = "groundtruth"
    reconstruction: str = "reconstruction"
    # (rz, ry, rx); overrides the HDF5 resolution attribute when set
    resolution: Optional[List[float]] = None
    extract_ground_truth_labels: bool = False
    export_ground_truth: Optional[str] = None
    plot_file: Optional[str] = None
    ted_error_files: Optional[str] = None


@dataclass
class TedConfig:
    """Top-level configuration."""

    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    io: IOConfig = field(default_factory=IOConfig)


__all__ = [
    "EvaluationConfig",
    "IOConfig",
    "TedConfig",
]
