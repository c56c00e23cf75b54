"""eventconv public API."""

from .config import LayerConfig, NetworkConfig, config_hash, load_network_config
from .core import buffers, dense, types  # noqa: F401
from .core.buffers import FeatureMap
from .core.classifier import init_classification
from .core.errors import (
    IndexOutOfRangeError,
    ShapeMismatchError,
    SparseConvError,
    UnsupportedResizeError,
)
from .core.rulebook import RuleBook, RuleBookBuilder
from .core.types import Site, UpdateStats
from .layers import AsyncSparseConv2D
from .params import load_parameters, save_parameters

__all__ = [
    "AsyncSparseConv2D",
    "FeatureMap",
    "IndexOutOfRangeError",
    "LayerConfig",
    "NetworkConfig",
    "RuleBook",
    "RuleBookBuilder",
    "ShapeMismatchError",
    "Site",
    "SparseConvError",
    "UnsupportedResizeError",
    "UpdateStats",
    "buffers",
    "config_hash",
    "dense",
    "init_classification",
    "load_network_config",
    "load_parameters",
    "save_parameters",
    "types",
]
