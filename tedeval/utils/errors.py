"""
Exception types raised by the evaluation core.

Error taxonomy:
    - ShapeError: volumes of mismatched or inconsistent dimensions (fatal)
    - ConfigurationError: inconsistent options or invalid label data
    - NoSuchOutput: a named report output was disabled or never computed

Internal invariant violations (e.g. an overlap table whose sums disagree with
the voxel count) are raised as ``AssertionError`` and indicate a bug.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "TedError",
    "ShapeError",
    "ConfigurationError",
    "NoSuchOutput",
]


class TedError(Exception):
    """Base class for all evaluation errors."""


class ShapeError(TedError, ValueError):
    """Raised when volume dimensions are inconsistent."""

    def __init__(self, message: str, shapes: Optional[Sequence[tuple]] = None) -> None:
        super().__init__(message)
        self.shapes = tuple(shapes) if shapes is not None else ()


class ConfigurationError(TedError, ValueError):
    """Raised for invalid or inconsistent configuration and label data."""


class NoSuchOutput(ConfigurationError, KeyError):
    """Raised when a named output is not available under the current configuration.

    Callers should treat this as "not available" rather than as a fatal error.
    """

    def __init__(self, name: str, reason: str = "", available: Sequence[str] = ()) -> None:
        self.name = name
        self.reason = reason
        self.available = tuple(available)
        message = f"No such output '{name}'"
        if reason:
            message += f": {reason}"
        if self.available:
            message += f". Available outputs: [{', '.join(self.available)}]"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]
