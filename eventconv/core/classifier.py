"""Initial active-site classification for the first layer of a stream."""

from __future__ import annotations

import numpy as np

from .buffers import FeatureMap, linearize
from .types import Array, Site, empty_classification


def init_classification(feature_map: FeatureMap, update_locations: Array) -> Array:
    """Classify every pixel of ``feature_map`` as ``ACTIVE`` or ``INACTIVE``.

    A pixel is active when its feature vector has a non-zero L1 norm or when
    it is named in ``update_locations``; an explicit touch always counts as
    activity, whatever the value written.
    """

    classification = empty_classification(feature_map.num_pixels)
    classification[feature_map.l1_norms() > 0] = Site.ACTIVE
    if update_locations.shape[0]:
        classification[linearize(update_locations, feature_map.width)] = Site.ACTIVE
    return classification


def active_mask(classification: Array) -> Array:
    """Boolean mask of the pixels that are live once the update has been applied."""

    return np.isin(classification, (Site.ACTIVE, Site.NEW_ACTIVE))


__all__ = ["active_mask", "init_classification"]
