"""
Consolidated I/O operations for label volumes.

This module provides I/O functions for:
- HDF5 files (.h5, .hdf5), including the ``resolution`` dataset attribute
- Image stacks (directory of images, glob pattern, multi-page TIFF)
- High-level LabelVolume operations driven by ``file.h5:dataset`` options
"""

from __future__ import annotations

import glob
import os
from typing import List, Optional, Sequence, Tuple, Union

import h5py
import imageio
import numpy as np
import tifffile

from ..volume import LabelVolume

# =============================================================================
# HDF5 I/O
# =============================================================================

RESOLUTION_ATTRIBUTE = "resolution"


def read_hdf5(filename: str, dataset: Optional[str] = None) -> np.ndarray:
    """Read data from HDF5 file.

    Args:
        filename: Path to the HDF5 file
        dataset: Name of the dataset to read. If None, reads the first dataset

    Returns:
        Data from the HDF5 file as numpy array
    """
    with h5py.File(filename, "r") as file_handle:
        if dataset is None:
            dataset = list(file_handle)[0]
        return np.array(file_handle[dataset])


def read_hdf5_resolution(filename: str, dataset: str) -> Optional[Tuple[float, float, float]]:
    """Read the voxel size stored with a dataset.

    The attribute is stored x-first, ``(rx, ry, rz)``, and returned in array
    order ``(rz, ry, rx)``.

    Returns:
        Resolution tuple, or None if the dataset has no resolution attribute
    """
    with h5py.File(filename, "r") as file_handle:
        attrs = file_handle[dataset].attrs
        if RESOLUTION_ATTRIBUTE not in attrs:
            return None
        values = np.asarray(attrs[RESOLUTION_ATTRIBUTE], dtype=np.float64).ravel()
    if values.size != 3:
        raise ValueError(
            f"Attribute '{RESOLUTION_ATTRIBUTE}' of {filename}:{dataset} must have 3 "
            f"entries, got {values.size}"
        )
    rx, ry, rz = (float(v) for v in values)
    return rz, ry, rx


def write_hdf5(
    filename: str,
    data_array: Union[np.ndarray, List[np.ndarray]],
    dataset: Union[str, List[str]] = "main",
    compression: str = "gzip",
    compression_level: int = 4,
    resolution: Optional[Sequence[float]] = None,
) -> None:
    """Write data to HDF5 file.

    Args:
        filename: Path to the output HDF5 file
        data_array: Data to write as numpy array or list of arrays
        dataset: Name of the dataset(s) to create
        compression: Compression algorithm ('gzip', 'lzf', or None)
        compression_level: Compression level (0-9 for gzip)
        resolution: Optional voxel size (rz, ry, rx) attached to every dataset
    """
    if isinstance(dataset, list):
        items = list(zip(dataset, data_array))
    else:
        items = [(dataset, data_array)]

    with h5py.File(filename, "w") as file_handle:
        for dataset_name, data in items:
            handle = file_handle.create_dataset(
                dataset_name,
                data=data,
                compression=compression,
                compression_opts=compression_level if compression == "gzip" else None,
                dtype=data.dtype,
            )
            if resolution is not None:
                rz, ry, rx = (float(r) for r in resolution)
                handle.attrs[RESOLUTION_ATTRIBUTE] = np.array([rx, ry, rz], dtype=np.float32)


# =============================================================================
# Image I/O
# =============================================================================

SUPPORTED_IMAGE_FORMATS = ["png", "tif", "tiff", "jpg", "jpeg"]


def rgb_to_seg(image: np.ndarray) -> np.ndarray:
    """Decode an RGB-encoded label image (R * 2^16 + G * 2^8 + B)."""
    image = image.astype(np.uint64)
    return (image[..., 0] << 16) + (image[..., 1] << 8) + image[..., 2]


def read_image(filename: str, image_type: str = "image") -> np.ndarray:
    """Read a single image file.

    Args:
        filename: Path to the image file
        image_type: 'seg' decodes RGB-encoded labels, 'image' keeps intensities

    Returns:
        Image data as numpy array with shape (H, W) or (H, W, C)

    Raises:
        FileNotFoundError: If the file does not exist
    """
    if not os.path.exists(filename):
        raise FileNotFoundError(f"Image not found: {filename}")

    if filename.lower().endswith((".tif", ".tiff")):
        image = tifffile.imread(filename)
    else:
        image = np.asarray(imageio.imread(filename))
    if image_type == "seg" and image.ndim == 3 and image.shape[-1] in (3, 4):
        image = rgb_to_seg(image)
    return image


def list_image_files(path: str) -> List[str]:
    """Sorted image files of a directory or glob pattern."""
    if os.path.isdir(path):
        candidates = glob.glob(os.path.join(path, "*"))
    else:
        candidates = glob.glob(path)
    return sorted(
        f
        for f in candidates
        if os.path.isfile(f) and f.rsplit(".", 1)[-1].lower() in SUPPORTED_IMAGE_FORMATS
    )


def read_images(filename_pattern: str, image_type: str = "image") -> np.ndarray:
    """Read multiple images from a directory or filename pattern.

    Args:
        filename_pattern: Directory or glob pattern for matching image files

    Returns:
        Stack of images as numpy array with shape (N, H, W) or (N, H, W, C)

    Raises:
        ValueError: If no files are found or image sizes differ
    """
    file_list = list_image_files(filename_pattern)
    if len(file_list) == 0:
        raise ValueError(f"No files found matching pattern: {filename_pattern}")

    first_image = read_image(file_list[0], image_type=image_type)
    data = np.zeros((len(file_list), *first_image.shape), dtype=first_image.dtype)
    data[0] = first_image
    for i, filepath in enumerate(file_list[1:], start=1):
        image = read_image(filepath, image_type=image_type)
        if image.shape != first_image.shape:
            raise ValueError(
                f"Image {filepath} has shape {image.shape}, expected {first_image.shape}"
            )
        data[i] = image

    return data


def save_images(directory: str, data: np.ndarray, prefix: str = "", format: str = "tif") -> None:
    """Save a stack of images to a directory.

    Label stacks should use 'tif', which keeps 64-bit integer labels.

    Args:
        directory: Output directory path
        data: Image stack with shape (N, H, W)
        prefix: Filename prefix (default: '')
        format: Image format (default: 'tif')
    """
    os.makedirs(directory, exist_ok=True)

    for i in range(data.shape[0]):
        filename = os.path.join(directory, f"{prefix}{i:04d}.{format}")
        if format in ["tif", "tiff"]:
            tifffile.imwrite(filename, data[i], compression="zlib", photometric="minisblack")
        else:
            imageio.imwrite(filename, data[i])


# =============================================================================
# High-level Volume I/O
# =============================================================================


def split_volume_option(option: str) -> Tuple[str, Optional[str]]:
    """Split ``file.h5:dataset`` into its path and dataset parts.

    Options without a separator are image stack paths with dataset None.
    """
    path, sep, dataset = option.partition(":")
    if not sep:
        return option, None
    if not dataset:
        raise ValueError(f"Missing dataset name in volume option '{option}'")
    return path, dataset


def read_volume(filename: str, dataset: Optional[str] = None, image_type: str = "seg") -> np.ndarray:
    """Load volumetric data from HDF5, TIFF or an image stack.

    Args:
        filename: HDF5 file, multi-page TIFF, directory of images or glob pattern
        dataset: HDF5 dataset name (only used for HDF5 files)
        image_type: Passed on to image readers

    Returns:
        Volume data as numpy array with shape (D, H, W)

    Raises:
        ValueError: If file format is not recognized
        FileNotFoundError: If a single file does not exist
    """
    if os.path.isdir(filename) or "*" in filename or "?" in filename:
        return read_images(filename, image_type=image_type)

    if not os.path.exists(filename):
        raise FileNotFoundError(f"File not found: {filename}")

    image_suffix = filename[filename.rfind(".") + 1 :].lower()
    if image_suffix in ["h5", "hdf5"]:
        data = read_hdf5(filename, dataset)
    elif "tif" in image_suffix:
        # single file or multi-page TIFF
        data = tifffile.imread(filename)
    elif image_suffix in SUPPORTED_IMAGE_FORMATS:
        data = read_image(filename, image_type=image_type)
    else:
        raise ValueError(
            f"Unrecognizable file format for {filename}. "
            f"Expected: h5, hdf5, tif, tiff, png, or a directory of images"
        )

    if data.ndim == 2:
        data = data[np.newaxis, ...]
    return data


def save_volume(
    filename: str,
    volume: np.ndarray,
    dataset: str = "main",
    file_format: str = "h5",
    resolution: Optional[Sequence[float]] = None,
) -> None:
    """Save volumetric data in specified format.

    Args:
        filename: Output filename or directory path
        volume: Volume data to save
        dataset: Dataset name for HDF5 format
        file_format: Output format ('h5', 'tiff' or 'png'/'tif' directory)
        resolution: Voxel size (rz, ry, rx) stored with HDF5 output

    Raises:
        ValueError: If file format is not supported
    """
    if file_format == "h5":
        write_hdf5(filename, volume, dataset=dataset, resolution=resolution)
    elif file_format == "tiff":
        tifffile.imwrite(filename, volume, compression="zlib", photometric="minisblack")
    elif file_format in ["png", "tif"]:
        save_images(filename, volume, format=file_format)
    else:
        raise ValueError(
            f"Unsupported format: {file_format}. Supported formats: h5, tiff, png, tif"
        )


def read_label_volume(
    option: str,
    resolution: Optional[Sequence[float]] = None,
    name: str = "volume",
    image_type: str = "seg",
) -> LabelVolume:
    """Read a LabelVolume from a ``file.h5:dataset`` option or an image stack path.

    Args:
        option: ``path/to/file.h5:dataset`` or a directory / glob / TIFF path
        resolution: Voxel size (rz, ry, rx). Overrides the HDF5 attribute;
            defaults to (1, 1, 1) when neither is given.
        name: Volume name used in error messages
        image_type: 'seg' for label stacks, 'image' for raw intensities

    Returns:
        LabelVolume
    """
    path, dataset = split_volume_option(option)
    data = read_volume(path, dataset, image_type=image_type)

    if resolution is None and dataset is not None:
        resolution = read_hdf5_resolution(path, dataset)
    if resolution is None:
        resolution = (1.0, 1.0, 1.0)
    return LabelVolume(data, resolution=resolution, name=name)


def save_label_volume(path: str, volume: LabelVolume) -> None:
    """Write a LabelVolume as ``file.h5:dataset`` or as a directory of TIFF slices."""
    target, dataset = split_volume_option(path)
    if dataset is not None or target.lower().endswith((".h5", ".hdf5")):
        save_volume(
            target, volume.data, dataset=dataset or "main", resolution=volume.resolution
        )
    else:
        save_volume(target, volume.data, file_format="tif")


__all__ = [
    # HDF5 I/O
    "read_hdf5",
    "read_hdf5_resolution",
    "write_hdf5",
    "RESOLUTION_ATTRIBUTE",
    # Image I/O
    "rgb_to_seg",
    "read_image",
    "list_image_files",
    "read_images",
    "save_images",
    "SUPPORTED_IMAGE_FORMATS",
    # High-level volume I/O
    "split_volume_option",
    "read_volume",
    "save_volume",
    "read_label_volume",
    "save_label_volume",
]
