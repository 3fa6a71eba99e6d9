"""Tests for present maps: reduce/expand on vector states and through a Stack."""

import numpy as np
import pytest

from blocks import (
    FeedForward,
    Stack,
    StackGrad,
    Vanilla,
    VecState,
    VecStateGrad,
    expand_rows,
    full_present,
    reduce_rows,
)
from layers import MaxPool


def test_reduce_keeps_flagged_rows_in_order():
    rows = np.arange(12.0).reshape(4, 3)
    state = VecState(rows, full_present(4))
    reduced = state.reduce(np.array([True, False, True, True]))
    assert reduced.present().tolist() == [True, False, True, True]
    assert reduced.rows.tolist() == [rows[0].tolist(), rows[2].tolist(), rows[3].tolist()]
    again = reduced.reduce(np.array([False, False, True, False]))
    assert again.rows.tolist() == [rows[2].tolist()]


def test_reduce_then_expand_zero_fills_missing_sequences():
    """For p subset of q: reduce to p, expand to q keeps p's rows and zeros the rest."""
    rng = np.random.default_rng(0)
    q = np.array([True, True, False, True, True, True])
    p = np.array([False, True, False, True, False, True])
    rows = rng.normal(size=(int(q.sum()), 4))
    reduced = reduce_rows(rows, q, p)
    expanded = VecStateGrad(reduced, p).expand(q)
    assert expanded.present().tolist() == q.tolist()
    assert expanded.rows.shape == rows.shape
    kept = p[q]
    np.testing.assert_array_equal(expanded.rows[kept], rows[kept])
    assert not expanded.rows[~kept].any()


def test_reduce_requires_subset():
    state = VecState(np.zeros((2, 1)), np.array([True, False, True]))
    with pytest.raises(ValueError):
        state.reduce(np.array([True, True, False]))
    with pytest.raises(ValueError):
        state.reduce(np.array([True, False]))


def test_expand_requires_superset():
    grad = VecStateGrad(np.ones((2, 1)), np.array([True, True, False]))
    with pytest.raises(ValueError):
        grad.expand(np.array([True, False, True]))


def test_expand_rows_keeps_width_for_empty_states():
    out = expand_rows(np.zeros((1, 0)), np.array([False, True]), full_present(2))
    assert out.shape == (2, 0)


def _stack():
    return Stack([
        FeedForward(MaxPool(2, 2, 4, 4, 1)),
        Vanilla(4, 3, seed=1),
        Vanilla(3, 2, seed=2),
    ])


def test_stack_state_forwards_reduce_to_every_block():
    stack = _stack()
    state = stack.start(3)
    assert len(state) == len(stack)
    target = np.array([True, False, True])
    reduced = state.reduce(target)
    assert len(reduced) == 3
    for s in reduced:
        assert s.present().tolist() == target.tolist()
    assert reduced[1].rows.shape == (2, 3)
    assert reduced.present().tolist() == target.tolist()


def test_stack_grad_forwards_expand_to_every_block():
    present = np.array([True, False, True])
    grad = StackGrad([
        VecStateGrad(np.zeros((2, 0)), present),
        VecStateGrad(np.ones((2, 3)), present),
        VecStateGrad(np.full((2, 2), 2.0), present),
    ])
    expanded = grad.expand(full_present(3))
    assert expanded.present().tolist() == [True, True, True]
    assert expanded[1].rows.tolist() == [[1, 1, 1], [0, 0, 0], [1, 1, 1]]
    assert expanded[2].rows.tolist() == [[2, 2], [0, 0], [2, 2]]
