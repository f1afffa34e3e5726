"""
Configuration for tolerant edit distance evaluation.

Import patterns:
    from tedeval.config import TedConfig, load_config, update_from_cli
    from tedeval.config import EvaluationConfig
"""

from .ted_config import EvaluationConfig, IOConfig, TedConfig
from .config_utils import (
    load_config,
    save_config,
    merge_configs,
    update_from_cli,
    validate_config,
)

__all__ = [
    "EvaluationConfig",
    "IOConfig",
    "TedConfig",
    "load_config",
    "save_config",
    "merge_configs",
    "update_from_cli",
    "validate_config",
]
