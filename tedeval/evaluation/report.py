"""
Error report: composition of correction, classification and statistics.

``ErrorReport`` runs the evaluation for one ground-truth / reconstruction pair
and exposes its results as named outputs:

    - "error report header": tab-separated column names (needs no volumes)
    - "error report": one tab-separated line of values
    - "human readable error report": multi-line summary
    - "ted corrected reconstruction": the tolerance-corrected LabelVolume
    - "ted errors": the classified TedErrors
    - "report record": the immutable ReportRecord

Requesting an output that the configuration disabled raises ``NoSuchOutput``,
which callers treat as "not available".
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from tedeval.config.ted_config import EvaluationConfig, TedConfig
from tedeval.data.process.grow import grow_slices
from tedeval.data.volume import LabelVolume, check_same_shape
from tedeval.metrics.metrics_seg import detection_overlap, rand_index, variation_of_information
from tedeval.metrics.overlap import OverlapTable
from tedeval.utils.errors import NoSuchOutput

from .errors import ErrorClassifier, TedErrors
from .tolerance import CorrectionResult, ToleranceCorrector

__all__ = [
    "OUTPUT_NAMES",
    "ReportRecord",
    "ErrorReport",
    "report_columns",
    "evaluate_ted",
]

OUTPUT_NAMES = (
    "error report header",
    "error report",
    "human readable error report",
    "ted corrected reconstruction",
    "ted errors",
    "report record",
)


@dataclass(frozen=True)
class ReportRecord:
    """Snapshot of all statistics of one evaluation run.

    Statistics that were disabled by the configuration are None.
    """

    voi_split: Optional[float] = None
    voi_merge: Optional[float] = None
    rand_index: Optional[float] = None
    detection_overlap: Optional[float] = None
    num_splits: Optional[int] = None
    num_merges: Optional[int] = None
    num_false_positives: Optional[int] = None
    num_false_negatives: Optional[int] = None
    num_reassigned: Optional[int] = None
    num_unresolved: Optional[int] = None
    errors: Optional[TedErrors] = None
    correction: Optional[CorrectionResult] = None

    @property
    def voi(self) -> Optional[float]:
        if self.voi_split is None or self.voi_merge is None:
            return None
        return self.voi_split + self.voi_merge

    @property
    def ted(self) -> Optional[int]:
        if self.errors is None:
            return None
        return self.errors.total

    def to_dict(self) -> Dict[str, Any]:
        """Scalar fields only; errors and correction are summarized by counts."""
        return {
            "voi_split": self.voi_split,
            "voi_merge": self.voi_merge,
            "voi": self.voi,
            "rand_index": self.rand_index,
            "detection_overlap": self.detection_overlap,
            "num_splits": self.num_splits,
            "num_merges": self.num_merges,
            "num_false_positives": self.num_false_positives,
            "num_false_negatives": self.num_false_negatives,
            "ted": self.ted,
            "num_reassigned": self.num_reassigned,
            "num_unresolved": self.num_unresolved,
        }


def report_columns(config: EvaluationConfig) -> List[Tuple[str, str]]:
    """(column name, ReportRecord key) pairs of the single-line report.

    Depends on the configuration only, never on data.
    """
    columns: List[Tuple[str, str]] = []
    if config.report_voi:
        columns += [("voi_split", "voi_split"), ("voi_merge", "voi_merge"), ("voi", "voi")]
    if config.report_rand:
        columns.append(("rand", "rand_index"))
    if config.report_detection_overlap:
        columns.append(("detection_overlap", "detection_overlap"))
    if config.report_ted:
        columns += [
            ("ted_splits", "num_splits"),
            ("ted_merges", "num_merges"),
            ("ted_fps", "num_false_positives"),
            ("ted_fns", "num_false_negatives"),
            ("ted", "ted"),
        ]
    return columns


def _format_value(value: Any) -> str:
    if value is None:
        return "nan"
    if isinstance(value, float):
        return f"{value:.6f}"
    return str(value)


class ErrorReport:
    """Evaluate a reconstruction against ground truth and expose named outputs.

    Args:
        config: EvaluationConfig (or a TedConfig, whose evaluation section is
            used). Defaults to EvaluationConfig().
        **overrides: Field overrides applied on top of ``config``

    Example:
        >>> report = ErrorReport(distance_threshold=2.0, report_voi=True)
        >>> report.set_input(ground_truth, reconstruction)
        >>> print(report.get_output("human readable error report"))
    """

    def __init__(
        self,
        config: Optional[Union[EvaluationConfig, TedConfig]] = None,
        **overrides: Any,
    ) -> None:
        if isinstance(config, TedConfig):
            config = config.evaluation
        config = config if config is not None else EvaluationConfig()
        self.config = dataclasses.replace(config, **overrides) if overrides else config

        self.corrector = ToleranceCorrector(
            distance_threshold=self.config.distance_threshold,
            connectivity=self.config.connectivity,
            have_background=self.config.have_background,
            verbose=self.config.verbose,
        )
        self.classifier = ErrorClassifier(
            min_overlap=self.config.min_overlap,
            ignore_background=self.config.ignore_background,
            have_background=self.config.have_background,
        )

        self._ground_truth: Optional[LabelVolume] = None
        self._reconstruction: Optional[LabelVolume] = None
        self._record: Optional[ReportRecord] = None

    def __repr__(self) -> str:
        return f"ErrorReport({self.config})"

    # ------------------------------------------------------------------
    def set_input(self, ground_truth: LabelVolume, reconstruction: LabelVolume) -> None:
        """Set the volumes to compare. Previously computed results are discarded.

        Raises:
            ShapeError: If the volumes differ in shape
        """
        check_same_shape(ground_truth, reconstruction)
        self._ground_truth = ground_truth
        self._reconstruction = reconstruction
        self._record = None

    def evaluate(
        self,
        ground_truth: Optional[LabelVolume] = None,
        reconstruction: Optional[LabelVolume] = None,
    ) -> ReportRecord:
        """Run the evaluation (once) and return its ReportRecord."""
        if ground_truth is not None or reconstruction is not None:
            if ground_truth is None or reconstruction is None:
                raise ValueError("ground_truth and reconstruction must be given together")
            self.set_input(ground_truth, reconstruction)
        if self._record is None:
            self._record = self._compute()
        return self._record

    @property
    def record(self) -> ReportRecord:
        return self.evaluate()

    def header(self) -> str:
        return "\t".join(name for name, _ in report_columns(self.config))

    def available_outputs(self) -> List[str]:
        """Names of the outputs that can be requested under this configuration."""
        if self.config.header_only:
            return ["error report header"]
        names = ["error report header", "error report", "human readable error report"]
        if self.config.report_ted:
            names += ["ted corrected reconstruction", "ted errors"]
        names.append("report record")
        return names

    def get_output(self, name: str) -> Any:
        """Return a named output.

        Raises:
            NoSuchOutput: If the output does not exist, was disabled by the
                configuration, or no volumes were set
        """
        if name not in OUTPUT_NAMES:
            raise NoSuchOutput(name, "unknown output", available=self.available_outputs())
        if name == "error report header":
            return self.header()
        if self.config.header_only:
            raise NoSuchOutput(name, "only the header was requested", self.available_outputs())
        if name not in self.available_outputs():
            raise NoSuchOutput(name, "report_ted is disabled", self.available_outputs())
        if self._ground_truth is None:
            raise NoSuchOutput(name, "no input volumes were set", self.available_outputs())

        record = self.evaluate()
        if name == "error report":
            return self._tab_line(record)
        if name == "human readable error report":
            return self._human_readable(record)
        if name == "ted corrected reconstruction":
            return record.correction.corrected
        if name == "ted errors":
            return record.errors
        return record

    # ------------------------------------------------------------------
    def _compute(self) -> ReportRecord:
        cfg = self.config
        gt = self._ground_truth
        rec = self._reconstruction
        if gt is None or rec is None:
            raise NoSuchOutput("report record", "no input volumes were set", self.available_outputs())

        if cfg.verbose:
            print(f"Evaluating {rec.name} against {gt.name}, shape {gt.shape}")
        if cfg.have_background and (cfg.report_ted or cfg.report_detection_overlap):
            if not gt.has_background() and not rec.has_background():
                warnings.warn(
                    "have_background is set but neither volume contains label 0; "
                    "no false positives or false negatives can be detected",
                    UserWarning,
                )

        values: Dict[str, Any] = {}
        original_table: Optional[OverlapTable] = None
        correction: Optional[CorrectionResult] = None
        errors: Optional[TedErrors] = None

        if cfg.report_ted or cfg.report_detection_overlap:
            original_table = OverlapTable.build(gt, rec, num_workers=cfg.num_workers)

        if cfg.report_ted:
            correction = self.corrector.correct(gt, rec)
            if correction.is_identity:
                corrected_table = original_table
            else:
                corrected_table = OverlapTable.build(
                    gt, correction.corrected, num_workers=cfg.num_workers
                )
            errors = self.classifier.classify(corrected_table, original_table)
            values.update(
                errors=errors,
                correction=correction,
                num_splits=errors.num_splits,
                num_merges=errors.num_merges,
                num_false_positives=errors.num_false_positives,
                num_false_negatives=errors.num_false_negatives,
                num_reassigned=correction.num_reassigned,
                num_unresolved=correction.num_unresolved,
            )
            if cfg.verbose:
                print(f"  {errors}")

        if cfg.report_detection_overlap:
            # false negatives only depend on the uncorrected overlaps
            detection_errors = errors if errors is not None else self.classifier.classify(original_table)
            values["detection_overlap"] = detection_overlap(
                detection_errors.num_false_negatives,
                original_table.gt_labels(),
                ignore_background=cfg.have_background or cfg.ignore_background,
            )

        if cfg.report_voi or cfg.report_rand:
            stats_table = self._statistics_table(gt, rec, correction, original_table)
            if cfg.report_voi:
                values["voi_split"], values["voi_merge"] = variation_of_information(stats_table)
            if cfg.report_rand:
                values["rand_index"] = rand_index(stats_table)

        return ReportRecord(**values)

    def _statistics_table(
        self,
        gt: LabelVolume,
        rec: LabelVolume,
        correction: Optional[CorrectionResult],
        original_table: Optional[OverlapTable],
    ) -> OverlapTable:
        """Overlap table used for VOI and RAND."""
        cfg = self.config
        candidate = rec
        if cfg.statistics_on_corrected and correction is not None:
            candidate = correction.corrected
        if cfg.grow_slices:
            candidate = grow_slices(candidate, num_workers=cfg.num_workers, verbose=cfg.verbose)

        if not cfg.ignore_background and candidate is rec and original_table is not None:
            return original_table

        mask = gt.data != 0 if cfg.ignore_background else None
        return OverlapTable.build(gt, candidate, num_workers=cfg.num_workers, mask=mask)

    def _tab_line(self, record: ReportRecord) -> str:
        return "\t".join(
            _format_value(getattr(record, key)) for _, key in report_columns(self.config)
        )

    def _human_readable(self, record: ReportRecord) -> str:
        cfg = self.config
        lines = [f"Error report for {self._reconstruction.name} vs. {self._ground_truth.name}"]
        if cfg.report_voi:
            lines.append(f"  VOI split:          {record.voi_split:.6f}")
            lines.append(f"  VOI merge:          {record.voi_merge:.6f}")
            lines.append(f"  VOI total:          {record.voi:.6f}")
        if cfg.report_rand:
            lines.append(f"  RAND index:         {record.rand_index:.6f}")
        if cfg.report_detection_overlap:
            lines.append(f"  detection overlap:  {100.0 * record.detection_overlap:.2f}%")
        if cfg.report_ted:
            errors = record.errors
            lines.append(f"  TED (tolerance {cfg.distance_threshold:g}): {errors.total}")
            lines.append(f"    splits:           {errors.num_splits}")
            lines.append(f"    merges:           {errors.num_merges}")
            if errors.has_background_label():
                lines.append(f"    false positives:  {errors.num_false_positives}")
                lines.append(f"    false negatives:  {errors.num_false_negatives}")
            lines.append(
                f"    reassigned voxels: {record.num_reassigned} "
                f"({record.num_unresolved} unresolved)"
            )
            for g in errors.split_labels():
                lines.append(f"    split {g} -> {', '.join(map(str, errors.splits_of(g)))}")
            for c in errors.merge_labels():
                lines.append(f"    merge {', '.join(map(str, errors.merges_of(c)))} -> {c}")
        return "\n".join(lines)


def evaluate_ted(
    ground_truth: LabelVolume,
    reconstruction: LabelVolume,
    config: Optional[Union[EvaluationConfig, TedConfig]] = None,
    **overrides: Any,
) -> ReportRecord:
    """Functional shortcut: evaluate one pair and return its ReportRecord."""
    return ErrorReport(config, **overrides).evaluate(ground_truth, reconstruction)
