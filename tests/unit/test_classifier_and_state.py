import numpy as np
import pytest

from eventconv.core.buffers import FeatureMap, as_locations
from eventconv.core.classifier import active_mask, init_classification
from eventconv.core.errors import UnsupportedResizeError
from eventconv.core.state import FeatureMapState
from eventconv.core.types import Site


def test_nonzero_and_touched_pixels_start_active():
    fm = FeatureMap(np.array([[5.0], [0.0], [0.0], [-1.0]]), 2, 2)
    classification = init_classification(fm, as_locations([(0, 1)]))
    assert classification.tolist() == [Site.ACTIVE, Site.ACTIVE, Site.INACTIVE, Site.ACTIVE]


def test_untouched_zero_map_is_inactive():
    fm = FeatureMap.zeros(2, 3, 2)
    classification = init_classification(fm, as_locations([]))
    assert np.all(classification == Site.INACTIVE)


def test_active_mask_counts_new_active_but_not_new_inactive():
    classification = np.array(
        [Site.INACTIVE, Site.ACTIVE, Site.NEW_ACTIVE, Site.NEW_INACTIVE], dtype=np.int8
    )
    assert active_mask(classification).tolist() == [False, True, True, False]


def test_state_allocates_once():
    state = FeatureMapState(n_in=2, n_out=3)
    assert not state.allocated
    state.ensure_allocated(4, 5)
    assert state.previous_input.data.shape == (20, 2)
    assert state.output.data.shape == (20, 3)
    assert not np.any(state.output.data)
    state.output.data[0, 0] = 1.0
    state.ensure_allocated(4, 5)
    assert state.output.data[0, 0] == 1.0


def test_state_rejects_resize_until_reset():
    state = FeatureMapState(n_in=1, n_out=1)
    state.ensure_allocated(2, 2)
    with pytest.raises(UnsupportedResizeError):
        state.ensure_allocated(3, 2)
    assert state.shape == (2, 2)
    state.reset()
    assert state.shape is None
    state.ensure_allocated(3, 2)
    assert state.shape == (3, 2)
