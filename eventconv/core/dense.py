"""Dense submanifold convolution used as the ground truth for incremental updates."""

from __future__ import annotations

import numpy as np

from .buffers import FeatureMap
from .rulebook import kernel_grid
from .types import Array


def submanifold_conv2d(
    feature_map: FeatureMap,
    active: Array,
    weights: Array,
    bias: Array,
    filter_size: int,
    *,
    use_bias: bool = True,
) -> FeatureMap:
    """Convolve ``feature_map`` over every pixel and keep only ``active`` outputs.

    ``weights`` uses the layer layout: one row per kernel offset, reshaped
    row-major to ``(n_out, n_in)``. Offset ``k`` reads the input at
    ``output + kernel_grid[k] - filter_size // 2``.
    """

    height, width = feature_map.shape
    n_in = feature_map.channels
    n_out = int(np.asarray(bias).shape[0])
    pad = filter_size // 2
    image = feature_map.to_image()
    padded = np.pad(image, ((pad, filter_size - 1 - pad), (pad, filter_size - 1 - pad), (0, 0)))

    out = np.zeros((height, width, n_out), dtype=feature_map.data.dtype)
    for k, (ky, kx) in enumerate(kernel_grid(filter_size, 2)):
        block = np.asarray(weights[k]).reshape(n_out, n_in)
        out += padded[ky : ky + height, kx : kx + width, :] @ block.T
    if use_bias:
        out += np.asarray(bias)
    out[~np.asarray(active, dtype=bool).reshape(height, width)] = 0.0
    return FeatureMap(out.reshape(height * width, n_out), height, width)


def dense_mac_count(height: int, width: int, n_in: int, n_out: int, filter_volume: int) -> int:
    """Multiply-accumulates needed to recompute a full map from scratch."""

    return height * width * filter_volume * n_in * n_out


__all__ = ["dense_mac_count", "submanifold_conv2d"]
