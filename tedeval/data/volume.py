"""
Read-only 3D label volumes.

A ``LabelVolume`` wraps a dense ``(Z, Y, X)`` array of non-negative integer
labels together with the physical voxel size ``(rz, ry, rx)``. Label 0 denotes
background when background-aware processing is requested.
"""

from __future__ import annotations

from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from tedeval.utils.errors import ConfigurationError, ShapeError

__all__ = [
    "LabelVolume",
    "as_label_array",
    "check_same_shape",
]

LABEL_DTYPE = np.uint64


def as_label_array(data: np.ndarray, name: str = "volume") -> np.ndarray:
    """Convert an array to the canonical unsigned 64-bit label type.

    Integral floating-point labels (a common artefact of image readers) are
    accepted; fractional or negative values are rejected.

    Raises:
        ConfigurationError: If labels are fractional, negative or non-finite
    """
    arr = np.asarray(data)

    if arr.dtype == np.bool_:
        return arr.astype(LABEL_DTYPE)

    if np.issubdtype(arr.dtype, np.floating):
        if arr.size and not np.all(np.isfinite(arr)):
            raise ConfigurationError(f"{name} contains non-finite labels")
        if arr.size and not np.array_equal(arr, np.round(arr)):
            bad = arr[arr != np.round(arr)].flat[0]
            raise ConfigurationError(
                f"{name} contains fractional label {bad!r}; labels must be integral"
            )
    elif not np.issubdtype(arr.dtype, np.integer):
        raise ConfigurationError(f"{name} has unsupported label dtype {arr.dtype}")

    if np.issubdtype(arr.dtype, np.signedinteger) or np.issubdtype(arr.dtype, np.floating):
        if arr.size and arr.min() < 0:
            raise ConfigurationError(f"{name} contains negative label {arr.min()}")

    return arr.astype(LABEL_DTYPE, copy=False)


class LabelVolume:
    """Immutable 3D grid of region labels with physical resolution.

    Args:
        data: Label array of shape (Z, Y, X). 2D arrays are promoted to a
            single slice.
        resolution: Physical voxel size (rz, ry, rx). Default: (1, 1, 1)
        name: Name used in error messages

    Raises:
        ShapeError: If the data is not 2D/3D or the resolution is malformed
        ConfigurationError: If the labels are not non-negative integers
    """

    def __init__(
        self,
        data: np.ndarray,
        resolution: Sequence[float] = (1.0, 1.0, 1.0),
        name: str = "volume",
    ) -> None:
        arr = np.asarray(data)
        if arr.ndim == 2:
            arr = arr[np.newaxis, ...]
        if arr.ndim != 3:
            raise ShapeError(
                f"{name} must be a 3D (Z, Y, X) label volume, got shape {arr.shape}",
                shapes=[arr.shape],
            )

        resolution = tuple(float(r) for r in resolution)
        if len(resolution) != 3:
            raise ShapeError(
                f"{name} resolution must have 3 entries (rz, ry, rx), got {resolution}"
            )
        if any(r <= 0 for r in resolution):
            raise ConfigurationError(f"{name} resolution must be positive, got {resolution}")

        labels = np.array(as_label_array(arr, name=name), dtype=LABEL_DTYPE, order="C")
        labels.flags.writeable = False

        self._data = labels
        self._resolution: Tuple[float, float, float] = resolution
        self.name = name

    @classmethod
    def from_buffer(
        cls,
        values: Sequence[int],
        shape: Sequence[int],
        resolution: Sequence[float] = (1.0, 1.0, 1.0),
        name: str = "volume",
    ) -> "LabelVolume":
        """Build a volume from a flat buffer in canonical (Z, Y, X) order.

        Raises:
            ShapeError: If ``len(values)`` does not match ``prod(shape)``
        """
        shape = tuple(int(s) for s in shape)
        flat = np.asarray(values).ravel()
        expected = int(np.prod(shape)) if shape else 0
        if len(shape) != 3 or flat.size != expected:
            raise ShapeError(
                f"{name}: buffer of {flat.size} voxels does not match dimensions {shape}",
                shapes=[shape],
            )
        return cls(flat.reshape(shape), resolution=resolution, name=name)

    # ------------------------------------------------------------------
    @property
    def data(self) -> np.ndarray:
        """Read-only label array of shape (Z, Y, X)."""
        return self._data

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self._data.shape

    @property
    def resolution(self) -> Tuple[float, float, float]:
        return self._resolution

    @property
    def size(self) -> int:
        return int(self._data.size)

    def __len__(self) -> int:
        return self.shape[0]

    def __repr__(self) -> str:
        return (
            f"LabelVolume(name={self.name!r}, shape={self.shape}, "
            f"resolution={self._resolution})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabelVolume):
            return NotImplemented
        return (
            self.shape == other.shape
            and self._resolution == other._resolution
            and np.array_equal(self._data, other._data)
        )

    __hash__ = None  # type: ignore[assignment]

    # ------------------------------------------------------------------
    def label_at(self, z: int, y: int, x: int) -> int:
        return int(self._data[z, y, x])

    def voxels(self) -> Iterator[Tuple[int, int, int, int]]:
        """Iterate ``(z, y, x, label)`` in increasing Z, then Y, then X."""
        zdim, ydim, xdim = self.shape
        flat = self._data.ravel()
        for index in range(flat.size):
            z, rem = divmod(index, ydim * xdim)
            y, x = divmod(rem, xdim)
            yield z, y, x, int(flat[index])

    def labels(self) -> np.ndarray:
        """Sorted array of distinct labels."""
        return np.unique(self._data)

    def has_background(self) -> bool:
        return bool((self._data == 0).any())

    def slice(self, z: int) -> np.ndarray:
        return self._data[z]

    def with_data(self, data: np.ndarray, name: Optional[str] = None) -> "LabelVolume":
        """New volume with the same resolution and different labels."""
        return LabelVolume(data, resolution=self._resolution, name=name or self.name)


def check_same_shape(*volumes: LabelVolume) -> Tuple[int, int, int]:
    """Check that all volumes share identical (Z, Y, X) dimensions.

    Raises:
        ShapeError: If any two volumes differ in shape
    """
    if not volumes:
        raise ShapeError("No volumes given")
    shapes = [v.shape for v in volumes]
    if any(s != shapes[0] for s in shapes[1:]):
        names = ", ".join(f"{v.name}={v.shape}" for v in volumes)
        raise ShapeError(f"Volumes must have identical dimensions, got {names}", shapes=shapes)
    return shapes[0]
