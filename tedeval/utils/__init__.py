"""
Utility helpers for tedeval.

- errors.py: exception taxonomy shared by all modules

Import patterns:
    from tedeval.utils import ShapeError, ConfigurationError, NoSuchOutput
"""

from .errors import ConfigurationError, NoSuchOutput, ShapeError, TedError

__all__ = [
    "TedError",
    "ShapeError",
    "ConfigurationError",
    "NoSuchOutput",
]
