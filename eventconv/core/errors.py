"""Exceptions raised while validating layer inputs."""

from __future__ import annotations


class SparseConvError(Exception):
    """Base class for incremental convolution failures."""


class ShapeMismatchError(SparseConvError, ValueError):
    """Parameters or feature maps disagree with the layer configuration."""


class IndexOutOfRangeError(SparseConvError, IndexError):
    """An update coordinate lies outside the feature map."""


class UnsupportedResizeError(SparseConvError, RuntimeError):
    """A layer was driven with a different spatial size than it was allocated for."""


__all__ = [
    "SparseConvError",
    "ShapeMismatchError",
    "IndexOutOfRangeError",
    "UnsupportedResizeError",
]
