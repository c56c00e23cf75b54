"""Layer and network configuration loading."""

from __future__ import annotations

import hashlib
import json
import warnings
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import numpy as np

_ALIASES = {"nIn": "n_in", "nOut": "n_out"}
_FIELDS = ("dimension", "n_in", "n_out", "filter_size", "first_layer", "use_bias")


def _normalise(value: Any) -> Any:
    """Reduce ``value`` to JSON types with layer aliases resolved."""

    if isinstance(value, LayerConfig):
        return _normalise(value.to_dict())
    if isinstance(value, Mapping):
        return {_ALIASES.get(str(k), str(k)): _normalise(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise(v) for v in value]
    if isinstance(value, np.ndarray):
        return _normalise(value.tolist())
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Path):
        return str(value)
    return value


def config_hash(config: Mapping[str, object]) -> str:
    """Return a stable 12-character hash for ``config``.

    ``nIn``/``nOut`` spellings, numpy scalars and :class:`LayerConfig`
    entries hash the same as their plain equivalents.
    """

    canonical = json.dumps(_normalise(config), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return digest[:12]


@dataclass(frozen=True)
class LayerConfig:
    """Immutable description of one incremental convolution layer."""

    dimension: int
    n_in: int
    n_out: int
    filter_size: int
    first_layer: bool = False
    use_bias: bool = True

    def __post_init__(self) -> None:
        for name in ("dimension", "n_in", "n_out", "filter_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"LayerConfig.{name} must be a positive integer, got {value!r}")
        if self.filter_size % 2 == 0:
            warnings.warn(
                f"filter_size={self.filter_size} is even; padding {self.filter_size // 2} "
                "leaves the receptive field skewed towards negative offsets",
                UserWarning,
                stacklevel=3,
            )

    @property
    def filter_volume(self) -> int:
        return self.filter_size**self.dimension

    @property
    def padding(self) -> Tuple[int, ...]:
        """Per-axis ``(before, after)`` padding, flattened to ``2 * dimension`` entries."""

        return (self.filter_size // 2,) * (2 * self.dimension)

    @property
    def weight_shape(self) -> Tuple[int, int]:
        return self.filter_volume, self.n_in * self.n_out

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "LayerConfig":
        if not isinstance(raw, Mapping):
            raise TypeError(f"Layer config must be a mapping, got {type(raw).__name__}")
        values: Dict[str, Any] = {}
        for key, value in raw.items():
            name = _ALIASES.get(key, key)
            if name not in _FIELDS:
                raise ValueError(f"Unknown layer config key: {key}")
            values[name] = value
        values.setdefault("dimension", 2)
        for required in ("n_in", "n_out", "filter_size"):
            if required not in values:
                raise ValueError(f"Layer config missing field '{required}'")
        for flag in ("first_layer", "use_bias"):
            if flag in values:
                values[flag] = bool(values[flag])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NetworkConfig:
    """Ordered stack of layer configurations."""

    layers: Tuple[LayerConfig, ...]
    version: int = 1

    @property
    def config_id(self) -> str:
        return config_hash({"version": self.version, "layers": self.layers})


def _validate_chain(layers: List[LayerConfig]) -> None:
    if not layers:
        raise ValueError("Network config must declare at least one layer")
    for idx, layer in enumerate(layers):
        if idx == 0:
            continue
        if layer.first_layer:
            raise ValueError(f"Layer {idx} is marked first_layer but is not first in the stack")
        previous = layers[idx - 1]
        if layer.n_in != previous.n_out:
            raise ValueError(
                f"Layer {idx} expects {layer.n_in} input channels, "
                f"previous layer produces {previous.n_out}"
            )


def network_from_mapping(raw: Mapping[str, Any]) -> NetworkConfig:
    entries = raw.get("layers")
    if not isinstance(entries, list):
        raise TypeError("Network config 'layers' must be a list")
    layers = [LayerConfig.from_mapping(entry) for entry in entries]
    _validate_chain(layers)
    return NetworkConfig(layers=tuple(layers), version=int(raw.get("version", 1)))


def load_network_config(path: str | Path) -> NetworkConfig:
    """Load and validate a JSON network description."""

    raw = json.loads(Path(path).read_text())
    if not isinstance(raw, Mapping):
        raise TypeError("Network config file must contain a JSON object")
    return network_from_mapping(raw)


__all__ = [
    "LayerConfig",
    "NetworkConfig",
    "config_hash",
    "load_network_config",
    "network_from_mapping",
]
