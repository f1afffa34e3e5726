"""
tedeval: tolerant edit distance evaluation of 3D segmentations.

Import patterns:
    from tedeval import LabelVolume, ErrorReport, evaluate_ted
    from tedeval.config import TedConfig, load_config
    from tedeval.data.io import read_label_volume
"""

__version__ = "0.1.0"

from .data.volume import LabelVolume, check_same_shape
from .evaluation import ErrorReport, ReportRecord, TedErrors, evaluate_ted
from .metrics import OverlapTable
from .utils.errors import ConfigurationError, NoSuchOutput, ShapeError, TedError

__all__ = [
    "LabelVolume",
    "check_same_shape",
    "ErrorReport",
    "ReportRecord",
    "TedErrors",
    "evaluate_ted",
    "OverlapTable",
    "ConfigurationError",
    "NoSuchOutput",
    "ShapeError",
    "TedError",
]
