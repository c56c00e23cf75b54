"""Core typing contracts for eventconv."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Dict

import numpy as np

Array = np.ndarray

CLASSIFICATION_DTYPE = np.int8


class Site(IntEnum):
    """Activity state of a single pixel.

    ``NEW_ACTIVE`` and ``NEW_INACTIVE`` only live for the duration of one
    update call; they mark pixels that switched state during that call.
    """

    INACTIVE = 0
    ACTIVE = 1
    NEW_ACTIVE = 2
    NEW_INACTIVE = 3


@dataclass(frozen=True)
class UpdateStats:
    """Counters and timings for one incremental update."""

    num_updates: int
    num_rules: int
    num_new_active: int
    num_new_inactive: int
    num_propagated: int
    rulebook_seconds: float = 0.0
    accumulate_seconds: float = 0.0

    def as_metrics(self) -> Dict[str, float]:
        return {key: float(value) for key, value in asdict(self).items()}


def empty_classification(num_pixels: int) -> Array:
    """Return a flat classification with every pixel ``INACTIVE``."""

    return np.full(num_pixels, Site.INACTIVE, dtype=CLASSIFICATION_DTYPE)


__all__ = [
    "Array",
    "CLASSIFICATION_DTYPE",
    "Site",
    "UpdateStats",
    "empty_classification",
]
