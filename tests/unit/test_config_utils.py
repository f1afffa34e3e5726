from pathlib import Path

import pytest

from tedeval.config import (
    EvaluationConfig,
    TedConfig,
    load_config,
    merge_configs,
    save_config,
    update_from_cli,
    validate_config,
)
from tedeval.utils.errors import ConfigurationError


def test_defaults_follow_command_line_tool():
    cfg = TedConfig()
    assert cfg.evaluation.report_ted is True
    assert cfg.evaluation.report_detection_overlap is True
    assert cfg.evaluation.report_voi is False
    assert cfg.evaluation.report_rand is False
    assert cfg.evaluation.distance_threshold == 0.0
    assert cfg.io.ground_truth == "groundtruth"
    assert cfg.io.reconstruction == "reconstruction"
    validate_config(cfg)


def test_load_config_with_base_relative_path(tmp_path: Path):
    base = tmp_path / "base.yaml"
    base.write_text(
        """
evaluation:
  distance_threshold: 10.0
  report_voi: true
io:
  ground_truth: gt.h5:main
"""
    )

    child = tmp_path / "child.yaml"
    child.write_text(
        """
_base_: base.yaml
evaluation:
  distance_threshold: 25.0
"""
    )

    cfg = load_config(child)
    assert cfg.evaluation.distance_threshold == 25.0
    assert cfg.evaluation.report_voi is True
    assert cfg.io.ground_truth == "gt.h5:main"
    assert isinstance(cfg.evaluation, EvaluationConfig)


def test_load_config_with_multiple_bases_order(tmp_path: Path):
    (tmp_path / "base_a.yaml").write_text("evaluation:\n  min_overlap: 10\n  grow_slices: true\n")
    (tmp_path / "base_b.yaml").write_text("evaluation:\n  min_overlap: 20\n")
    child = tmp_path / "child.yaml"
    child.write_text("_base_:\n  - base_a.yaml\n  - base_b.yaml\n")

    cfg = load_config(child)
    # Later bases override earlier ones.
    assert cfg.evaluation.min_overlap == 20
    assert cfg.evaluation.grow_slices is True


def test_load_config_with_cyclic_base_raises(tmp_path: Path):
    a = tmp_path / "a.yaml"
    b = tmp_path / "b.yaml"
    a.write_text("_base_: b.yaml\n")
    b.write_text("_base_: a.yaml\n")

    with pytest.raises(ValueError, match="cyclic _base_ config inheritance"):
        load_config(a)


def test_update_from_cli_dotlist():
    cfg = update_from_cli(
        TedConfig(), ["evaluation.distance_threshold=2.5", "io.plot_file=results.tsv"]
    )
    assert cfg.evaluation.distance_threshold == 2.5
    assert cfg.io.plot_file == "results.tsv"


def test_merge_configs_with_dict():
    cfg = merge_configs(TedConfig(), {"evaluation": {"report_rand": True, "num_workers": 4}})
    assert cfg.evaluation.report_rand is True
    assert cfg.evaluation.num_workers == 4
    assert cfg.evaluation.report_ted is True


def test_saved_config_loads_back(tmp_path: Path):
    cfg = merge_configs(
        TedConfig(), {"evaluation": {"min_overlap": 50}, "io": {"resolution": [4.0, 1.0, 1.0]}}
    )

    path = tmp_path / "saved" / "ted.yaml"
    save_config(cfg, path)
    loaded = load_config(path)
    assert loaded.evaluation.min_overlap == 50
    assert list(loaded.io.resolution) == [4.0, 1.0, 1.0]


@pytest.mark.parametrize(
    "overrides, match",
    [
        ({"evaluation": {"distance_threshold": -1.0}}, "distance_threshold"),
        ({"evaluation": {"connectivity": 4}}, "connectivity"),
        ({"evaluation": {"num_workers": 0}}, "num_workers"),
        ({"io": {"resolution": [1.0, 1.0]}}, "resolution"),
        ({"io": {"export_ground_truth": "gt_out"}}, "extract_ground_truth_labels"),
    ],
)
def test_validate_config_rejects_invalid_values(overrides, match):
    cfg = merge_configs(TedConfig(), overrides)
    with pytest.raises(ConfigurationError, match=match):
        validate_config(cfg)


def test_base_must_be_path_or_list(tmp_path: Path):
    child = tmp_path / "child.yaml"
    child.write_text("_base_:\n  key: value\n")
    with pytest.raises(ConfigurationError, match="_base_"):
        load_config(child)


def test_merge_configs_rejects_unknown_types():
    with pytest.raises(TypeError):
        merge_configs(TedConfig(), ["evaluation.min_overlap=3"])
