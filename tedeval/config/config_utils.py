"""
Loading, merging and validation of evaluation configs.

YAML files may inherit from other YAML files through a ``_base_`` key (a
path or a list of paths, relative to the including file). Bases are merged in
order, then the including file on top, then everything on top of the
``TedConfig`` defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple, Union

from omegaconf import DictConfig, ListConfig, OmegaConf

from ..utils.errors import ConfigurationError
from .ted_config import TedConfig

BASE_KEY = "_base_"


def _base_paths(conf: DictConfig, config_path: Path) -> List[Path]:
    entries = conf.pop(BASE_KEY, None)
    if entries is None:
        return []
    if isinstance(entries, str):
        entries = [entries]
    elif not isinstance(entries, (list, ListConfig)):
        raise ConfigurationError(
            f"{BASE_KEY} in {config_path} must be a path or a list of paths, "
            f"got {type(entries).__name__}"
        )

    paths = []
    for entry in entries:
        path = Path(str(entry))
        if not path.is_absolute():
            path = (config_path.parent / path).resolve()
        if not path.exists():
            raise FileNotFoundError(f"Base config {entry} of {config_path} not found at {path}")
        paths.append(path)
    return paths


def _load_yaml_tree(config_path: Path, chain: Tuple[Path, ...] = ()) -> DictConfig:
    config_path = config_path.resolve()
    if config_path in chain:
        cycle = " -> ".join(str(p) for p in (*chain, config_path))
        raise ConfigurationError(f"Detected cyclic _base_ config inheritance: {cycle}")
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    conf = OmegaConf.load(config_path) or OmegaConf.create({})
    if not isinstance(conf, DictConfig):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

    merged = OmegaConf.create({})
    for base in _base_paths(conf, config_path):
        merged = OmegaConf.merge(merged, _load_yaml_tree(base, (*chain, config_path)))
    return OmegaConf.merge(merged, conf)


def load_config(config_path: Union[str, Path]) -> TedConfig:
    """
    Load an evaluation config from YAML, resolving ``_base_`` inheritance.

    Args:
        config_path: Path to the YAML file

    Returns:
        TedConfig with defaults for every key the files leave out
    """
    merged = OmegaConf.merge(OmegaConf.structured(TedConfig), _load_yaml_tree(Path(config_path)))
    return OmegaConf.to_object(merged)


def save_config(cfg: TedConfig, save_path: Union[str, Path]) -> None:
    """Write the fully resolved config, so a run can be repeated with ``--config``."""
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    OmegaConf.save(OmegaConf.structured(cfg), save_path)


def merge_configs(base_cfg: TedConfig, *override_cfgs: Union[TedConfig, Dict]) -> TedConfig:
    """
    Apply overrides on top of a config.

    Args:
        base_cfg: Config to start from
        *override_cfgs: TedConfig objects or nested dicts such as
            ``{"evaluation": {"report_voi": True}}``, applied in order

    Returns:
        New TedConfig; ``base_cfg`` is not modified
    """
    result = OmegaConf.structured(base_cfg)
    for override in override_cfgs:
        if isinstance(override, TedConfig):
            override = OmegaConf.structured(override)
        elif not isinstance(override, (dict, DictConfig)):
            raise TypeError(f"Unsupported config type: {type(override)}")
        result = OmegaConf.merge(result, override)
    return OmegaConf.to_object(result)


def update_from_cli(cfg: TedConfig, overrides: List[str]) -> TedConfig:
    """
    Apply dotted ``key=value`` overrides, e.g. ``evaluation.connectivity=26``.

    Raises:
        omegaconf.errors.ConfigKeyError: For keys that do not exist
    """
    merged = OmegaConf.merge(OmegaConf.structured(cfg), OmegaConf.from_dotlist(overrides))
    return OmegaConf.to_object(merged)


def validate_config(cfg: TedConfig) -> None:
    """
    Check option values and combinations.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    ev = cfg.evaluation
    if ev.distance_threshold < 0:
        raise ConfigurationError("evaluation.distance_threshold must be non-negative")
    if ev.min_overlap < 0:
        raise ConfigurationError("evaluation.min_overlap must be non-negative")
    if ev.connectivity not in (6, 18, 26):
        raise ConfigurationError(
            f"evaluation.connectivity must be 6, 18 or 26 (got {ev.connectivity})"
        )
    if ev.num_workers < 1:
        raise ConfigurationError("evaluation.num_workers must be at least 1")
    if ev.statistics_on_corrected and not ev.report_ted:
        raise ConfigurationError(
            "evaluation.statistics_on_corrected requires evaluation.report_ted"
        )

    io = cfg.io
    if io.resolution is not None:
        if len(io.resolution) != 3:
            raise ConfigurationError(
                f"io.resolution must have 3 entries (rz, ry, rx), got {len(io.resolution)}"
            )
        if any(r <= 0 for r in io.resolution):
            raise ConfigurationError("io.resolution entries must be positive")
    if io.export_ground_truth and not io.extract_ground_truth_labels:
        raise ConfigurationError(
            "io.export_ground_truth requires io.extract_ground_truth_labels"
        )


__all__ = [
    "load_config",
    "save_config",
    "merge_configs",
    "update_from_cli",
    "validate_config",
]
