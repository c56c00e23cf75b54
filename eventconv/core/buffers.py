"""Dense pixel-major feature buffers and coordinate helpers.

A :class:`FeatureMap` stores an ``H x W`` image with ``C`` channels as a
contiguous ``(H * W, C)`` array. Pixel ``(row, col)`` lives at linear index
``row * W + col``; all row gathers, per-pixel norms and reshapes used by the
incremental engine go through this class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from .errors import IndexOutOfRangeError, ShapeMismatchError
from .types import Array

FLOAT_DTYPE = np.float64


@dataclass(eq=False)
class FeatureMap:
    """Row-major ``(H * W, C)`` feature buffer with pixel accessors."""

    data: Array
    height: int
    width: int

    def __post_init__(self) -> None:
        self.data = np.ascontiguousarray(self.data, dtype=FLOAT_DTYPE)
        if self.data.ndim != 2:
            raise ShapeMismatchError(
                f"Feature buffer must be 2-D (pixels, channels), got shape {self.data.shape}"
            )
        if self.data.shape[0] != self.height * self.width:
            raise ShapeMismatchError(
                f"Feature buffer has {self.data.shape[0]} rows, "
                f"expected {self.height} x {self.width} = {self.height * self.width}"
            )

    @classmethod
    def zeros(cls, height: int, width: int, channels: int) -> "FeatureMap":
        return cls(np.zeros((height * width, channels), dtype=FLOAT_DTYPE), height, width)

    @classmethod
    def from_image(cls, image: Array, channels: int) -> "FeatureMap":
        """Build a buffer from an ``(H, W * C)`` or ``(H, W, C)`` array."""

        image = np.asarray(image)
        if image.ndim not in (2, 3):
            raise ShapeMismatchError(f"Expected a 2-D or 3-D feature map, got shape {image.shape}")
        height = int(image.shape[0])
        flat_cols = int(np.prod(image.shape[1:]))
        if image.ndim == 3 and image.shape[2] != channels:
            raise ShapeMismatchError(
                f"Feature map has {image.shape[2]} channels, expected {channels}"
            )
        if channels <= 0 or flat_cols % channels != 0:
            raise ShapeMismatchError(
                f"Feature map width {flat_cols} is not a multiple of {channels} channels"
            )
        width = flat_cols // channels
        return cls(image.reshape(height * width, channels), height, width)

    @property
    def channels(self) -> int:
        return int(self.data.shape[1])

    @property
    def num_pixels(self) -> int:
        return int(self.data.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    def rows(self, indices: Array) -> Array:
        """Gather the feature vectors at linear ``indices``."""

        return self.data[np.asarray(indices, dtype=np.int64)]

    def l1_norms(self, indices: Array | None = None) -> Array:
        """Return the per-pixel L1 norm, optionally restricted to ``indices``."""

        rows = self.data if indices is None else self.rows(indices)
        return np.abs(rows).sum(axis=1)

    def to_image(self) -> Array:
        """Return an ``(H, W, C)`` view of the buffer."""

        return self.data.reshape(self.height, self.width, self.channels)

    def copy(self) -> "FeatureMap":
        return FeatureMap(self.data.copy(), self.height, self.width)


def as_locations(locations: Array | Iterable[Sequence[int]] | None) -> Array:
    """Normalise ``locations`` to an ``(N, 2)`` integer array of ``(row, col)``."""

    if locations is None:
        return np.zeros((0, 2), dtype=np.int64)
    arr = np.asarray(locations, dtype=np.int64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.int64)
    if arr.ndim == 1 and arr.shape[0] == 2:
        arr = arr.reshape(1, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ShapeMismatchError(f"Update locations must have shape (N, 2), got {arr.shape}")
    return arr


def check_locations(locations: Array, height: int, width: int) -> None:
    """Raise :class:`IndexOutOfRangeError` for coordinates outside ``[0,H) x [0,W)``."""

    if locations.shape[0] == 0:
        return
    rows, cols = locations[:, 0], locations[:, 1]
    bad = (rows < 0) | (rows >= height) | (cols < 0) | (cols >= width)
    if np.any(bad):
        first = locations[np.argmax(bad)]
        raise IndexOutOfRangeError(
            f"Update location ({int(first[0])}, {int(first[1])}) outside {height} x {width} map"
        )


def linearize(locations: Array, width: int) -> Array:
    return locations[:, 1] + width * locations[:, 0]


def delinearize(indices: Array, width: int) -> Array:
    indices = np.asarray(indices, dtype=np.int64)
    out = np.empty((indices.shape[0], 2), dtype=np.int64)
    out[:, 0] = indices // width
    out[:, 1] = indices % width
    return out


__all__ = [
    "FLOAT_DTYPE",
    "FeatureMap",
    "as_locations",
    "check_locations",
    "linearize",
    "delinearize",
]
