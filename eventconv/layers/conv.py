"""Event-driven sparse 2-D convolution layer.

The layer keeps the previous input and the last output of a stream. Each call
only touches the (input, output) pixel pairs a rule book reports as changed,
so the cost follows the number of events instead of the image size while the
output stays equal to the submanifold convolution of the current input.
"""

from __future__ import annotations

import logging
import time
from typing import Mapping, Sequence, Tuple

import numpy as np

from ..config import LayerConfig
from ..core.buffers import (
    FLOAT_DTYPE,
    FeatureMap,
    as_locations,
    check_locations,
    delinearize,
    linearize,
)
from ..core.classifier import init_classification
from ..core.errors import ShapeMismatchError
from ..core.rulebook import RuleBook, RuleBookBuilder, kernel_grid
from ..core.state import FeatureMapState
from ..core.types import CLASSIFICATION_DTYPE, Array, Site, UpdateStats

logger = logging.getLogger(__name__)

ForwardResult = Tuple[Array, Array, Array, RuleBookBuilder]


class AsyncSparseConv2D:
    """Stateful incremental convolution layer.

    A layer instance belongs to one stream and must be driven by one caller
    with strictly ordered calls. ``callbacks`` receive ``on_step(step,
    metrics)`` after every update; objects may also implement
    ``on_rulebook_start``, ``on_rulebook_end``, ``on_accumulate_start`` and
    ``on_accumulate_end`` (called with the layer).
    """

    def __init__(
        self,
        dimension: int,
        n_in: int,
        n_out: int,
        filter_size: int,
        first_layer: bool = False,
        use_bias: bool = True,
        *,
        callbacks: Sequence[object] | None = None,
        name: str | None = None,
    ) -> None:
        self.config = LayerConfig(
            dimension=dimension,
            n_in=n_in,
            n_out=n_out,
            filter_size=filter_size,
            first_layer=first_layer,
            use_bias=use_bias,
        )
        self.name = name or "conv"
        self.callbacks = list(callbacks or [])
        self.kernel_indices = kernel_grid(filter_size, dimension)
        self.padding = self.config.padding
        self.bias = np.zeros(n_out, dtype=FLOAT_DTYPE)
        self.weights = np.zeros(self.config.weight_shape, dtype=FLOAT_DTYPE)
        self.state = FeatureMapState(n_in=n_in, n_out=n_out)
        self.last_stats: UpdateStats | None = None
        self._step = 0

    @classmethod
    def from_config(
        cls,
        config: LayerConfig,
        *,
        callbacks: Sequence[object] | None = None,
        name: str | None = None,
    ) -> "AsyncSparseConv2D":
        return cls(
            config.dimension,
            config.n_in,
            config.n_out,
            config.filter_size,
            config.first_layer,
            config.use_bias,
            callbacks=callbacks,
            name=name,
        )

    @property
    def filter_volume(self) -> int:
        return self.config.filter_volume

    # ------------------------------------------------------------------
    # Parameters

    def set_parameters(self, bias: Array, weights: Array) -> None:
        bias = np.asarray(bias, dtype=FLOAT_DTYPE)
        weights = np.asarray(weights, dtype=FLOAT_DTYPE)
        if bias.shape != (self.config.n_out,):
            raise ShapeMismatchError(
                f"bias must have shape ({self.config.n_out},), got {bias.shape}"
            )
        if weights.shape != self.config.weight_shape:
            raise ShapeMismatchError(
                f"weights must have shape {self.config.weight_shape}, got {weights.shape}"
            )
        self.bias = bias.copy()
        self.weights = weights.copy()

    def state_dict(self) -> Mapping[str, Array]:
        return {"bias": self.bias.copy(), "weights": self.weights.copy()}

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        for key in ("bias", "weights"):
            if key not in state:
                raise KeyError(f"Missing parameter {key} in state dict")
        self.set_parameters(state["bias"], state["weights"])

    def reset(self) -> None:
        """Forget the stream history so the layer can process a new stream."""

        self.state.reset()
        self._step = 0

    # ------------------------------------------------------------------
    # Forward

    def forward(
        self,
        update_locations: Array | Sequence[Sequence[int]] | None,
        feature_map: Array,
        classification: Array | None = None,
        rule_book: RuleBookBuilder | None = None,
    ) -> ForwardResult:
        """Process one step of the stream.

        ``feature_map`` is the full current input, shaped ``(H, W * n_in)`` or
        ``(H, W, n_in)``. A first layer derives the classification from the
        map itself; downstream layers must pass the classification returned
        by the layer before them. Returns ``(new_update_locations,
        output_map, classification, rule_book)`` with the output shaped
        ``(H, W, n_out)`` and the classification ``(H, W)``.
        """

        input_map = FeatureMap.from_image(feature_map, self.config.n_in)
        height, width = input_map.shape
        locations = as_locations(update_locations)
        no_updates = locations.shape[0] == 0
        if no_updates:
            locations = np.zeros((1, 2), dtype=np.int64)
        check_locations(locations, height, width)
        self.state.check_shape(height, width)
        if rule_book is None:
            rule_book = RuleBook()

        if self.config.first_layer:
            classification = init_classification(input_map, locations)
        else:
            classification = self._incoming_classification(classification, height * width)
        # a rule book handed down the stack still carries the previous layer's kernel
        rule_book.initialize(height, width, self.config.filter_size, self.config.dimension)

        new_locations, output, classification = self.update(
            locations,
            input_map,
            classification,
            rule_book,
            no_update_locations=no_updates,
        )
        return (
            new_locations,
            output.to_image(),
            classification.reshape(height, width),
            rule_book,
        )

    __call__ = forward

    def update(
        self,
        update_locations: Array,
        input_feature_map: FeatureMap | Array,
        classification: Array,
        rule_book: RuleBookBuilder,
        no_update_locations: bool = False,
    ) -> Tuple[Array, FeatureMap, Array]:
        """Apply one incremental step and persist the new state.

        ``input_feature_map`` is a :class:`FeatureMap` or a pixel-major
        ``(H * W, n_in)`` array sized by ``rule_book``. Returns the ``(row,
        col)`` pixels whose output changed, a copy of the output buffer and
        the revised classification.
        """

        if isinstance(input_feature_map, FeatureMap):
            input_map = input_feature_map
        else:
            input_map = FeatureMap(np.asarray(input_feature_map), rule_book.H, rule_book.W)
        height, width = input_map.shape
        locations = as_locations(update_locations)
        classification = np.asarray(classification, dtype=CLASSIFICATION_DTYPE).reshape(-1)
        self._validate(input_map, locations, classification, rule_book)
        self.state.ensure_allocated(height, width)
        previous = self.state.previous_input
        self._step += 1

        indices = linearize(locations, rule_book.W)
        was_inactive = np.zeros(indices.shape[0], dtype=bool)
        became_zero = np.zeros(indices.shape[0], dtype=bool)
        if self.config.first_layer:
            became_zero = input_map.l1_norms(indices) == 0
            was_inactive = previous.l1_norms(indices) == 0

        self._notify("on_rulebook_start")
        started = time.perf_counter()
        if no_update_locations:
            new_classification = classification.copy()
            new_indices = np.zeros(0, dtype=np.int64)
        else:
            new_classification, new_indices = rule_book.update_rulebooks(
                was_inactive, became_zero, indices, classification
            )
            new_classification = np.asarray(
                new_classification, dtype=CLASSIFICATION_DTYPE
            ).reshape(-1)
        rulebook_seconds = time.perf_counter() - started
        self._notify("on_rulebook_end")
        logger.debug(
            "%s step %d: %d update(s), %d to propagate",
            self.name,
            self._step,
            0 if no_update_locations else indices.shape[0],
            new_indices.shape[0],
        )

        self._notify("on_accumulate_start")
        started = time.perf_counter()
        output = self.state.output.copy()
        new_active = new_classification == Site.NEW_ACTIVE
        new_inactive = new_classification == Site.NEW_INACTIVE
        num_rules = 0
        if not no_update_locations:
            num_rules = self._accumulate(output, input_map, previous, new_active, rule_book)
        output.data[new_inactive] = 0.0
        if self.config.use_bias:
            output.data[new_active] += self.bias
        accumulate_seconds = time.perf_counter() - started
        self._notify("on_accumulate_end")
        logger.debug("%s step %d: applied %d rule(s)", self.name, self._step, num_rules)

        self.state.commit(input_map, output)

        stats = UpdateStats(
            num_updates=0 if no_update_locations else int(np.unique(indices).shape[0]),
            num_rules=num_rules,
            num_new_active=int(new_active.sum()),
            num_new_inactive=int(new_inactive.sum()),
            num_propagated=int(new_indices.shape[0]),
            rulebook_seconds=rulebook_seconds,
            accumulate_seconds=accumulate_seconds,
        )
        self.last_stats = stats
        self._emit_step(stats)
        return delinearize(new_indices, rule_book.W), output.copy(), new_classification

    # ------------------------------------------------------------------
    # Internal helpers

    def _accumulate(
        self,
        output: FeatureMap,
        input_map: FeatureMap,
        previous: FeatureMap,
        new_active: Array,
        rule_book: RuleBookBuilder,
    ) -> int:
        n_in, n_out = self.config.n_in, self.config.n_out
        applied = 0
        for kernel_index in range(self.filter_volume):
            nrules = rule_book.nrules(kernel_index)
            if nrules == 0:
                continue
            block = self.weights[kernel_index].reshape(n_out, n_in)
            inputs, outputs = rule_book.get_rules(kernel_index)
            inputs = np.asarray(inputs, dtype=np.int64)
            outputs = np.asarray(outputs, dtype=np.int64)
            delta = input_map.rows(inputs)
            # outputs that just became active have no partial sum to correct
            correct = ~new_active[outputs]
            delta[correct] -= previous.rows(inputs[correct])
            np.add.at(output.data, outputs, delta @ block.T)
            applied += nrules
        return applied

    def _incoming_classification(self, classification: Array | None, num_pixels: int) -> Array:
        if classification is None:
            raise ValueError(
                f"{self.name}: downstream layers need the classification produced upstream"
            )
        flat = np.asarray(classification, dtype=CLASSIFICATION_DTYPE).reshape(-1)
        if flat.shape[0] != num_pixels:
            raise ShapeMismatchError(
                f"Classification has {flat.shape[0]} entries, feature map has {num_pixels} pixels"
            )
        return flat

    def _check_rule_book(self, rule_book: RuleBookBuilder, height: int, width: int) -> None:
        expected = (height, width, self.config.filter_size)
        tracked = (rule_book.H, rule_book.W, rule_book.filter_size)
        if tracked != expected:
            raise ShapeMismatchError(
                "Rule book tracks {} x {} with filter_size={}, layer needs {} x {} with "
                "filter_size={}".format(*tracked, *expected)
            )

    def _validate(
        self,
        input_map: FeatureMap,
        locations: Array,
        classification: Array,
        rule_book: RuleBookBuilder,
    ) -> None:
        if input_map.channels != self.config.n_in:
            raise ShapeMismatchError(
                f"Feature map has {input_map.channels} channels, layer expects {self.config.n_in}"
            )
        self._check_rule_book(rule_book, input_map.height, input_map.width)
        if classification.shape[0] != input_map.num_pixels:
            raise ShapeMismatchError(
                f"Classification has {classification.shape[0]} entries, "
                f"feature map has {input_map.num_pixels} pixels"
            )
        check_locations(locations, input_map.height, input_map.width)
        self.state.check_shape(input_map.height, input_map.width)

    def _notify(self, hook: str) -> None:
        for callback in self.callbacks:
            if hasattr(callback, hook):
                getattr(callback, hook)(self)

    def _emit_step(self, stats: UpdateStats) -> None:
        metrics = stats.as_metrics()
        for callback in self.callbacks:
            if hasattr(callback, "on_step"):
                callback.on_step(self._step, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(self._step, metrics)


__all__ = ["AsyncSparseConv2D", "ForwardResult"]
