"""Persistent per-layer feature buffers."""

from __future__ import annotations

from dataclasses import dataclass, field

from .buffers import FeatureMap
from .errors import UnsupportedResizeError


@dataclass
class FeatureMapState:
    """Previous input and persisted output of one layer.

    The state starts unconfigured. The first :meth:`ensure_allocated` call
    sizes both buffers to the observed ``(H, W)``; from then on only that size
    is accepted until :meth:`reset` is called.
    """

    n_in: int
    n_out: int
    previous_input: FeatureMap | None = field(default=None, init=False, repr=False)
    output: FeatureMap | None = field(default=None, init=False, repr=False)

    @property
    def allocated(self) -> bool:
        return self.output is not None

    @property
    def shape(self) -> tuple[int, int] | None:
        if self.output is None:
            return None
        return self.output.shape

    def check_shape(self, height: int, width: int) -> None:
        """Raise if ``(height, width)`` differs from the allocated size."""

        if self.output is not None and self.output.shape != (height, width):
            raise UnsupportedResizeError(
                f"Layer buffers were allocated for {self.output.height} x {self.output.width}, "
                f"got {height} x {width}; call reset() before starting a new stream"
            )

    def ensure_allocated(self, height: int, width: int) -> None:
        self.check_shape(height, width)
        if self.output is not None:
            return
        self.previous_input = FeatureMap.zeros(height, width, self.n_in)
        self.output = FeatureMap.zeros(height, width, self.n_out)

    def commit(self, input_map: FeatureMap, output_map: FeatureMap) -> None:
        """Replace both buffers with the results of a finished update."""

        self.previous_input = input_map.copy()
        self.output = output_map

    def reset(self) -> None:
        self.previous_input = None
        self.output = None


__all__ = ["FeatureMapState"]
