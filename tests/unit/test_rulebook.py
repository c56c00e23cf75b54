import numpy as np
import pytest

from eventconv.core.errors import ShapeMismatchError
from eventconv.core.rulebook import RuleBook, kernel_grid
from eventconv.core.types import Site, empty_classification


def _book(height=3, width=3, filter_size=3):
    book = RuleBook()
    book.initialize(height, width, filter_size, 2)
    return book


def _rules(book):
    out = {}
    for k in range(book.filter_volume):
        inputs, outputs = book.get_rules(k)
        if len(inputs):
            out[k] = sorted(zip(inputs.tolist(), outputs.tolist()))
    return out


def _classification(num_pixels, active=()):
    classification = empty_classification(num_pixels)
    classification[list(active)] = Site.ACTIVE
    return classification


def test_kernel_grid_is_row_major():
    grid = kernel_grid(3, 2)
    assert grid.shape == (9, 2)
    assert grid[5].tolist() == [1, 2]
    assert grid[7].tolist() == [2, 1]


def test_offsets_for_even_kernels_are_skewed():
    book = _book(filter_size=2)
    assert book.offsets.tolist() == [[-1, -1], [-1, 0], [0, -1], [0, 0]]


def test_initialize_validates_geometry():
    book = RuleBook()
    with pytest.raises(ValueError):
        book.initialize(4, 4, 3, 3)
    with pytest.raises(RuntimeError):
        book.update_rulebooks([], [], [], np.zeros(0, dtype=np.int8))


def test_isolated_activation_yields_single_center_rule():
    book = _book()
    classification = _classification(9, active=[4])
    status, propagate = book.update_rulebooks([True], [False], [4], classification)
    assert status[4] == Site.NEW_ACTIVE
    assert _rules(book) == {4: [(4, 4)]}
    assert propagate.tolist() == [4]
    assert classification[4] == Site.ACTIVE


def test_activation_next_to_active_neighbour():
    book = _book()
    classification = _classification(9, active=[0, 4])
    status, propagate = book.update_rulebooks([True], [False], [4], classification)
    assert status[0] == Site.ACTIVE
    assert status[4] == Site.NEW_ACTIVE
    # full recompute of 4 reads 0 (offset -1,-1) and itself; 0 receives a delta from 4
    assert _rules(book) == {0: [(0, 4)], 4: [(4, 4)], 8: [(4, 0)]}
    assert propagate.tolist() == [0, 4]
    assert book.total_rules() == 3


def test_deactivation_only_corrects_steady_neighbours():
    book = _book()
    classification = _classification(9, active=[0, 4])
    status, propagate = book.update_rulebooks([False], [True], [4], classification)
    assert status[4] == Site.NEW_INACTIVE
    assert _rules(book) == {8: [(4, 0)]}
    assert propagate.tolist() == [0, 4]


def test_touch_that_stays_zero_is_inactive_and_silent():
    book = _book()
    classification = _classification(9, active=[0, 4])
    status, propagate = book.update_rulebooks([True], [True], [4], classification)
    assert status[4] == Site.INACTIVE
    assert book.total_rules() == 0
    assert propagate.size == 0


def test_steady_change_updates_every_active_output_in_reach():
    book = _book()
    classification = _classification(9, active=[0, 1, 4, 8])
    _, propagate = book.update_rulebooks([False], [False], [4], classification)
    rules = _rules(book)
    assert sorted(o for pairs in rules.values() for _, o in pairs) == [0, 1, 4, 8]
    assert all(i == 4 for pairs in rules.values() for i, _ in pairs)
    assert propagate.tolist() == [0, 1, 4, 8]


def test_corner_update_stays_in_bounds():
    book = _book()
    classification = _classification(9, active=[0, 1, 3, 4])
    book.update_rulebooks([True], [False], [0], classification)
    rules = _rules(book)
    assert sorted(i for i, o in sum(rules.values(), []) if o == 0) == [0, 1, 3, 4]


def test_downstream_classification_is_authoritative():
    book = _book()
    classification = _classification(9, active=[0])
    classification[4] = Site.NEW_ACTIVE
    classification[8] = Site.NEW_INACTIVE
    status, propagate = book.update_rulebooks(
        np.zeros(2, dtype=bool), np.zeros(2, dtype=bool), [4, 8], classification
    )
    assert np.array_equal(status, classification)
    assert status is not classification
    assert propagate.tolist() == [0, 4, 8]


def test_duplicate_updates_do_not_duplicate_rules():
    single, double = _book(), _book()
    classification = _classification(9, active=[0, 4])
    single.update_rulebooks([True], [False], [4], classification)
    double.update_rulebooks([True, True], [False, False], [4, 4], classification)
    assert _rules(single) == _rules(double)


def test_rules_are_unique_across_offsets():
    rng = np.random.default_rng(3)
    book = _book(6, 7, 3)
    classification = empty_classification(42)
    classification[rng.choice(42, size=20, replace=False)] = Site.ACTIVE
    updates = rng.choice(42, size=10, replace=False)
    was_inactive = classification[updates] == Site.INACTIVE
    became_zero = rng.random(10) < 0.3
    book.update_rulebooks(was_inactive, became_zero, updates, classification)
    pairs = [pair for rules in _rules(book).values() for pair in rules]
    assert len(pairs) == len(set(pairs)) == book.total_rules()


def test_hint_length_and_classification_size_are_checked():
    book = _book()
    with pytest.raises(ShapeMismatchError):
        book.update_rulebooks([True], [False], [1, 2], _classification(9))
    with pytest.raises(ShapeMismatchError):
        book.update_rulebooks([True], [False], [1], _classification(8))


def test_describe_lists_rules():
    book = _book()
    book.update_rulebooks([True], [False], [4], _classification(9, active=[4]))
    text = book.describe()
    assert "offset 4 (0, 0): 4->4" in text
