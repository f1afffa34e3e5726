"""
Tolerant edit distance evaluation.

This package provides:
- tolerance.py: boundary-tolerant correction of a candidate segmentation
- errors.py: split / merge / false positive / false negative classification
- report.py: composition of correction, classification and statistics
- writer.py: error label list and plot file writers

Import patterns:
    from tedeval.evaluation import ErrorReport, evaluate_ted
    from tedeval.evaluation import ToleranceCorrector, ErrorClassifier
    from tedeval.evaluation.writer import write_ted_errors
"""

from .tolerance import CorrectionResult, ToleranceCorrector, correct_tolerance, neighbor_offsets
from .errors import ErrorClassifier, TedErrors, classify_errors
from .report import OUTPUT_NAMES, ErrorReport, ReportRecord, evaluate_ted, report_columns
from .writer import (
    append_report_line,
    build_config_path,
    build_corrected_path,
    build_report_path,
    volume_stem,
    write_ted_errors,
)

__all__ = [
    # Correction
    "CorrectionResult",
    "ToleranceCorrector",
    "correct_tolerance",
    "neighbor_offsets",
    # Classification
    "ErrorClassifier",
    "TedErrors",
    "classify_errors",
    # Report
    "OUTPUT_NAMES",
    "ErrorReport",
    "ReportRecord",
    "evaluate_ted",
    "report_columns",
    # Writers
    "append_report_line",
    "build_config_path",
    "build_corrected_path",
    "build_report_path",
    "volume_stem",
    "write_ted_errors",
]
