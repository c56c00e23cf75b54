"""Incremental convolution layers."""

from .conv import AsyncSparseConv2D

__all__ = ["AsyncSparseConv2D"]
