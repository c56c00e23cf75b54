"""Rule-book construction for incremental submanifold convolution.

A rule pairs one input pixel with one output pixel for a single kernel
offset. The rule book holds, per offset, exactly the pairs whose
multiply-accumulate contribution changed since the previous call; the layer
consumes them and never re-derives neighbourhoods itself.

:class:`RuleBookBuilder` is the contract a layer relies on. :class:`RuleBook`
is the reference implementation: output active sites coincide with input
active sites, so a layer's classification can be handed unchanged to the next
layer of the stack.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Tuple

import numpy as np

from .errors import ShapeMismatchError
from .types import CLASSIFICATION_DTYPE, Array, Site

logger = logging.getLogger(__name__)

_LIVE = (Site.ACTIVE, Site.NEW_ACTIVE)
_CHANGED = (Site.ACTIVE, Site.NEW_ACTIVE, Site.NEW_INACTIVE)


def kernel_grid(filter_size: int, dimension: int) -> Array:
    """Return the ``(filter_size ** dimension, dimension)`` grid position of every offset."""

    volume = filter_size**dimension
    grid = np.unravel_index(np.arange(volume), (filter_size,) * dimension)
    return np.stack(grid, axis=1).astype(np.int64)


class RuleBookBuilder(Protocol):
    """Contract of the collaborator that decides which rules a step needs."""

    H: int
    W: int
    filter_size: int

    def initialize(self, height: int, width: int, filter_size: int, dimension: int) -> None:
        """Size the builder's spatial metadata."""

    def update_rulebooks(
        self,
        was_inactive: Array,
        became_zero: Array,
        update_indices: Array,
        classification: Array,
    ) -> Tuple[Array, Array]:
        """Return the revised classification and the pixels whose output changes."""

    def nrules(self, kernel_index: int) -> int:
        """Number of rules recorded for ``kernel_index``."""

    def get_rules(self, kernel_index: int) -> Tuple[Array, Array]:
        """Return parallel ``(input_indices, output_indices)`` for ``kernel_index``."""


class RuleBook:
    """Reference rule-book builder for 2-D submanifold convolution."""

    def __init__(self) -> None:
        self.H = 0
        self.W = 0
        self.filter_size = 0
        self.dimension = 2
        self._offsets = np.zeros((0, 2), dtype=np.int64)
        self._inputs: List[Array] = []
        self._outputs: List[Array] = []

    @property
    def initialized(self) -> bool:
        return self.W > 0

    @property
    def filter_volume(self) -> int:
        return int(self._offsets.shape[0])

    @property
    def offsets(self) -> Array:
        """Spatial ``(d_row, d_col)`` displacement from output to input per offset."""

        return self._offsets.copy()

    def initialize(self, height: int, width: int, filter_size: int, dimension: int = 2) -> None:
        if dimension != 2:
            raise ValueError(f"RuleBook only supports 2-D maps, got dimension={dimension}")
        if height <= 0 or width <= 0 or filter_size <= 0:
            raise ValueError(
                f"Invalid rule book geometry: {height} x {width}, filter_size={filter_size}"
            )
        if (height, width, filter_size) == (self.H, self.W, self.filter_size):
            return
        self.H, self.W = int(height), int(width)
        self.filter_size = int(filter_size)
        self.dimension = dimension
        self._offsets = kernel_grid(filter_size, dimension) - filter_size // 2
        self.clear()

    def clear(self) -> None:
        empty = np.zeros(0, dtype=np.int64)
        self._inputs = [empty] * self.filter_volume
        self._outputs = [empty] * self.filter_volume

    def nrules(self, kernel_index: int) -> int:
        return int(self._inputs[kernel_index].shape[0])

    def get_rules(self, kernel_index: int) -> Tuple[Array, Array]:
        return self._inputs[kernel_index], self._outputs[kernel_index]

    def total_rules(self) -> int:
        return int(sum(rules.shape[0] for rules in self._inputs))

    def update_rulebooks(
        self,
        was_inactive: Array,
        became_zero: Array,
        update_indices: Array,
        classification: Array,
    ) -> Tuple[Array, Array]:
        if not self.initialized:
            raise RuntimeError("RuleBook.initialize() must be called before update_rulebooks()")

        num_pixels = self.H * self.W
        status = np.array(classification, dtype=CLASSIFICATION_DTYPE, copy=True).reshape(-1)
        if status.shape[0] != num_pixels:
            raise ShapeMismatchError(
                f"Classification has {status.shape[0]} entries, rule book tracks {num_pixels} pixels"
            )
        update_indices = np.asarray(update_indices, dtype=np.int64).reshape(-1)
        was_inactive = np.asarray(was_inactive, dtype=bool).reshape(-1)
        became_zero = np.asarray(became_zero, dtype=bool).reshape(-1)
        if was_inactive.shape != update_indices.shape or became_zero.shape != update_indices.shape:
            raise ShapeMismatchError("Activity hints must have one entry per update location")

        self._apply_hints(status, update_indices, was_inactive, became_zero)

        _, first_seen = np.unique(update_indices, return_index=True)
        updated = update_indices[np.sort(first_seen)]
        updated_status = status[updated]

        targets = updated[updated_status == Site.NEW_ACTIVE]
        sources = updated[np.isin(updated_status, _CHANGED)]
        live = np.isin(status, _LIVE)
        steady = status == Site.ACTIVE

        touched: List[Array] = [updated[np.isin(updated_status, (Site.NEW_ACTIVE, Site.NEW_INACTIVE))]]
        for k, offset in enumerate(self._offsets):
            full_in, full_out = self._shift(targets, offset, live, forward=True)
            delta_in, delta_out = self._shift(sources, offset, steady, forward=False)
            self._inputs[k] = np.concatenate([full_in, delta_in])
            self._outputs[k] = np.concatenate([full_out, delta_out])
            touched.append(self._outputs[k])

        new_update_indices = np.unique(np.concatenate(touched))
        logger.debug(
            "rule book: %d updates -> %d rules, %d propagated",
            updated.shape[0],
            self.total_rules(),
            new_update_indices.shape[0],
        )
        return status, new_update_indices

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def _apply_hints(
        status: Array, indices: Array, was_inactive: Array, became_zero: Array
    ) -> None:
        status[indices[was_inactive & ~became_zero]] = Site.NEW_ACTIVE
        status[indices[~was_inactive & became_zero]] = Site.NEW_INACTIVE
        status[indices[was_inactive & became_zero]] = Site.INACTIVE

    def _shift(
        self, pixels: Array, offset: Array, mask: Array, *, forward: bool
    ) -> Tuple[Array, Array]:
        """Pair ``pixels`` with their neighbours at ``offset`` that satisfy ``mask``.

        With ``forward`` the pixels are outputs and the neighbours the inputs
        feeding them; otherwise the pixels are inputs and the neighbours the
        outputs they feed. Returns ``(input_indices, output_indices)``.
        """

        sign = 1 if forward else -1
        rows = pixels // self.W + sign * offset[0]
        cols = pixels % self.W + sign * offset[1]
        inside = (rows >= 0) & (rows < self.H) & (cols >= 0) & (cols < self.W)
        neighbours = rows[inside] * self.W + cols[inside]
        keep = mask[neighbours]
        pixels, neighbours = pixels[inside][keep], neighbours[keep]
        if forward:
            return neighbours, pixels
        return pixels, neighbours

    def describe(self) -> str:
        """Human-readable dump of the non-empty rule lists."""

        lines = [f"RuleBook {self.H}x{self.W} filter_size={self.filter_size}"]
        for k in range(self.filter_volume):
            if not self.nrules(k):
                continue
            pairs = ", ".join(
                f"{int(i)}->{int(o)}" for i, o in zip(self._inputs[k], self._outputs[k])
            )
            lines.append(f"  offset {k} {tuple(int(v) for v in self._offsets[k])}: {pairs}")
        return "\n".join(lines)


__all__ = ["RuleBook", "RuleBookBuilder", "kernel_grid"]
