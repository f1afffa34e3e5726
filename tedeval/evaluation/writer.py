"""
Writers for evaluation results.

Functions:
    - build_corrected_path: ``<root>/corrected_<stem>`` for the corrected volume
    - build_report_path: ``<root>/<stem>.<type>.data`` for error label lists
    - build_config_path: ``<root>/<stem>.ted.yaml`` for the resolved run config
    - write_ted_errors: split / merge (and fp / fn) label list files
    - append_report_line: append a line to a plot file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from tedeval.data.io import split_volume_option

from .errors import TedErrors

__all__ = [
    "volume_stem",
    "build_corrected_path",
    "build_report_path",
    "build_config_path",
    "write_ted_errors",
    "append_report_line",
]


def volume_stem(reconstruction: str) -> str:
    """Stem of a volume option, e.g. ``seg`` for ``data/seg.h5:main`` or ``data/seg/``."""
    path, _ = split_volume_option(reconstruction)
    return Path(path.rstrip("/\\")).stem


def build_corrected_path(root: Optional[str], reconstruction: str) -> str:
    return os.path.join(root or "", f"corrected_{volume_stem(reconstruction)}")


def build_report_path(root: Optional[str], reconstruction: str, kind: str) -> str:
    return os.path.join(root or "", f"{volume_stem(reconstruction)}.{kind}.data")


def build_config_path(root: Optional[str], reconstruction: str) -> str:
    return os.path.join(root or "", f"{volume_stem(reconstruction)}.ted.yaml")


def write_ted_errors(errors: TedErrors, root: str, reconstruction: str) -> List[str]:
    """Write one file per error category.

    ``<stem>.splits.data`` holds one line per split ground-truth label followed
    by the candidate labels it was split into; ``<stem>.merges.data`` one line
    per merging candidate label followed by the merged ground-truth labels.
    With a background label, ``<stem>.fps.data`` and ``<stem>.fns.data`` list
    false positive and false negative labels, one per line.

    Returns:
        Paths of the written files
    """
    if root:
        os.makedirs(root, exist_ok=True)

    written = []

    path = build_report_path(root, reconstruction, "splits")
    with open(path, "w") as f:
        for gt_label in errors.split_labels():
            f.write("\t".join(str(label) for label in [gt_label, *errors.splits_of(gt_label)]) + "\n")
    written.append(path)

    path = build_report_path(root, reconstruction, "merges")
    with open(path, "w") as f:
        for cand_label in errors.merge_labels():
            f.write("\t".join(str(label) for label in [cand_label, *errors.merges_of(cand_label)]) + "\n")
    written.append(path)

    if errors.has_background_label():
        for kind, labels in (("fps", errors.false_positives), ("fns", errors.false_negatives)):
            path = build_report_path(root, reconstruction, kind)
            with open(path, "w") as f:
                for label in labels:
                    f.write(f"{label}\n")
            written.append(path)

    return written


def append_report_line(plot_file: str, line: str) -> None:
    """Append one line (header or values) to a tab-separated plot file."""
    parent = os.path.dirname(plot_file)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(plot_file, "a") as f:
        f.write(line + "\n")
