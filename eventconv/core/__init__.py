"""Core numerical primitives for eventconv."""

from . import buffers, classifier, dense, errors, rulebook, state, types

__all__ = ["buffers", "classifier", "dense", "errors", "rulebook", "state", "types"]
