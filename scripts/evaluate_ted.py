#!/usr/bin/env python3
"""
Tolerant edit distance evaluation of a reconstruction against ground truth.

Reads two label volumes, runs the error report and writes the requested
outputs: the human readable report to stdout, a tab-separated line to a plot
file, per-category error label lists, the corrected reconstruction and the
resolved config of the run.

Usage:
    # HDF5 volumes (the dataset's "resolution" attribute is used if present)
    python scripts/evaluate_ted.py --groundTruth gt.h5:main --reconstruction seg.h5:main \\
        --distanceThreshold 2.0 --reportVoi --reportRand

    # Directories of label images, error files and corrected volume into out/
    python scripts/evaluate_ted.py --groundTruth gt/ --reconstruction seg/ --tedErrorFiles out

    # Append the column header to a plot file (no volumes are read)
    python scripts/evaluate_ted.py --plotFile results.tsv --plotFileHeader --reportVoi

    # YAML config plus dotlist overrides
    python scripts/evaluate_ted.py --config ted.yaml evaluation.min_overlap=50
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from tedeval.config import (
    TedConfig,
    load_config,
    merge_configs,
    save_config,
    update_from_cli,
    validate_config,
)
from tedeval.data.io import read_label_volume, save_label_volume
from tedeval.data.process import extract_ground_truth_labels
from tedeval.evaluation import (
    ErrorReport,
    append_report_line,
    build_config_path,
    build_corrected_path,
    write_ted_errors,
)
from tedeval.utils.errors import NoSuchOutput, TedError

# command line flag -> (config section, field)
FLAG_TO_CONFIG = {
    "groundTruth": ("io", "ground_truth"),
    "reconstruction": ("io", "reconstruction"),
    "extractGroundTruthLabels": ("io", "extract_ground_truth_labels"),
    "exportGroundTruth": ("io", "export_ground_truth"),
    "plotFile": ("io", "plot_file"),
    "tedErrorFiles": ("io", "ted_error_files"),
    "plotFileHeader": ("evaluation", "header_only"),
    "reportVoi": ("evaluation", "report_voi"),
    "reportRand": ("evaluation", "report_rand"),
    "reportDetectionOverlap": ("evaluation", "report_detection_overlap"),
    "reportTed": ("evaluation", "report_ted"),
    "ignoreBackground": ("evaluation", "ignore_background"),
    "growSlices": ("evaluation", "grow_slices"),
    "distanceThreshold": ("evaluation", "distance_threshold"),
    "minOverlap": ("evaluation", "min_overlap"),
    "numWorkers": ("evaluation", "num_workers"),
    "verbose": ("evaluation", "verbose"),
}


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Tolerant edit distance evaluation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config file")
    parser.add_argument(
        "--groundTruth", type=str, help="Ground truth: image stack path or file.h5:dataset"
    )
    parser.add_argument(
        "--reconstruction", type=str, help="Reconstruction: image stack path or file.h5:dataset"
    )
    parser.add_argument(
        "--extractGroundTruthLabels",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Ground truth is a dark/bright foreground/background image; each "
        "4-connected foreground component of a slice is one region",
    )
    parser.add_argument(
        "--exportGroundTruth",
        type=str,
        default=None,
        help="With --extractGroundTruthLabels, write the labeled ground truth here",
    )
    parser.add_argument(
        "--plotFile", type=str, help="Append a tab-separated single-line report to this file"
    )
    parser.add_argument(
        "--plotFileHeader",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Instead of evaluating, append the column header to the plot file",
    )
    parser.add_argument(
        "--tedErrorFiles",
        type=str,
        help="Folder for <stem>.splits.data, <stem>.merges.data (with background "
        "also .fps.data and .fns.data) and the corrected reconstruction",
    )
    for flag, text in (
        ("reportVoi", "Compute the variation of information"),
        ("reportRand", "Compute the RAND index"),
        ("reportDetectionOverlap", "Compute the detection overlap (default: on)"),
        ("reportTed", "Compute the tolerant edit distance (default: on)"),
        ("ignoreBackground", "Do not consider ground truth background voxels for VOI and RAND"),
        ("growSlices", "Grow reconstruction slices into background before VOI and RAND"),
        ("verbose", "Print progress"),
    ):
        parser.add_argument(f"--{flag}", action=argparse.BooleanOptionalAction, default=None, help=text)
    parser.add_argument(
        "--distanceThreshold", type=float, default=None, help="Tolerance radius in physical units"
    )
    parser.add_argument(
        "--minOverlap", type=int, default=None, help="Minimum voxels for a significant overlap"
    )
    parser.add_argument("--numWorkers", type=int, default=None, help="Worker threads")
    parser.add_argument(
        "overrides",
        nargs="*",
        help="Config overrides in key=value format (e.g., evaluation.connectivity=26)",
    )
    return parser.parse_args(argv)


def setup_config(args) -> TedConfig:
    """Build the validated config from YAML, flags and dotlist overrides."""
    if args.config:
        print(f"📄 Loading config: {args.config}")
        cfg = load_config(args.config)
    else:
        cfg = TedConfig()

    flag_overrides = {}
    for flag, (section, key) in FLAG_TO_CONFIG.items():
        value = getattr(args, flag)
        if value is not None:
            flag_overrides.setdefault(section, {})[key] = value
    if flag_overrides:
        cfg = merge_configs(cfg, flag_overrides)

    if args.overrides:
        cfg = update_from_cli(cfg, args.overrides)

    validate_config(cfg)
    return cfg


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        cfg = setup_config(args)
        report = ErrorReport(cfg)

        if cfg.evaluation.header_only:
            header = report.get_output("error report header")
            if cfg.io.plot_file:
                append_report_line(cfg.io.plot_file, header)
            else:
                print(header)
            return 0

        resolution = cfg.io.resolution
        if cfg.io.extract_ground_truth_labels:
            if cfg.evaluation.verbose:
                print("Extracting ground truth labels from connected components")
            image = read_label_volume(cfg.io.ground_truth, resolution, "ground truth", image_type="image")
            ground_truth = extract_ground_truth_labels(
                image.data, resolution=image.resolution, verbose=cfg.evaluation.verbose
            )
            if cfg.io.export_ground_truth:
                save_label_volume(cfg.io.export_ground_truth, ground_truth)
        else:
            ground_truth = read_label_volume(cfg.io.ground_truth, resolution, "ground truth")
        reconstruction = read_label_volume(cfg.io.reconstruction, resolution, "reconstruction")

        report.set_input(ground_truth, reconstruction)

        try:
            corrected = report.get_output("ted corrected reconstruction")
            save_label_volume(
                build_corrected_path(cfg.io.ted_error_files, cfg.io.reconstruction), corrected
            )
        except NoSuchOutput:
            # corrected volume is optional
            pass

        print(report.get_output("human readable error report"))

        if cfg.io.ted_error_files:
            try:
                errors = report.get_output("ted errors")
                write_ted_errors(errors, cfg.io.ted_error_files, cfg.io.reconstruction)
            except NoSuchOutput as e:
                print(f"Skipping error files: {e}", file=sys.stderr)
            save_config(cfg, build_config_path(cfg.io.ted_error_files, cfg.io.reconstruction))

        if cfg.io.plot_file:
            append_report_line(cfg.io.plot_file, report.get_output("error report"))

    except (TedError, OSError) as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
