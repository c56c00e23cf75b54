"""Parameter persistence for incremental convolution layers."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping

import numpy as np

from .core.types import Array
from .layers.conv import AsyncSparseConv2D


def save_parameters(path: str | Path, layer: AsyncSparseConv2D) -> str:
    """Write ``layer``'s bias and weights to a compressed ``.npz`` archive."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        np.savez_compressed(handle, **layer.state_dict())
    return str(path)


def read_parameters(path: str | Path) -> Dict[str, Array]:
    with np.load(Path(path)) as archive:
        return {name: archive[name].copy() for name in archive.files}


def load_parameters(path: str | Path, layer: AsyncSparseConv2D) -> Mapping[str, Array]:
    """Load an archive written by :func:`save_parameters` into ``layer``."""

    state = read_parameters(path)
    layer.load_state_dict(state)
    return state


__all__ = ["load_parameters", "read_parameters", "save_parameters"]
