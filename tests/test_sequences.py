"""Tests for running blocks over variable-length sequences."""

import numpy as np
import pytest

from autodiff import Grad
from blocks import FeedForward, Stack, Vanilla
from layers import MaxPool
from sequences import apply_block, pack_sequences, unpack_steps


def _seqs(rng, lengths, size):
    return [rng.normal(size=(n, size)) for n in lengths]


def _loss(block, seqs):
    run = apply_block(block, seqs)
    return 0.5 * sum(float(o @ o) for o in run.outputs())


def test_pack_sequences_tracks_present_map():
    seqs = [np.ones((3, 2)), 2 * np.ones((1, 2)), 3 * np.ones((2, 2))]
    steps = pack_sequences(seqs)
    assert [p.tolist() for p, _ in steps] == [
        [True, True, True],
        [True, False, True],
        [True, False, False],
    ]
    assert steps[0][1].tolist() == [1, 1, 2, 2, 3, 3]
    assert steps[2][1].tolist() == [1, 1]


def test_unpack_inverts_pack():
    rng = np.random.default_rng(0)
    seqs = _seqs(rng, [2, 4, 1], 3)
    steps = pack_sequences(seqs)
    back = unpack_steps([x for _, x in steps], [p for p, _ in steps])
    for a, b in zip(back, seqs):
        np.testing.assert_array_equal(a, b)


def test_unpack_keeps_width_for_empty_sequences():
    rng = np.random.default_rng(4)
    seqs = _seqs(rng, [2, 0, 1], 3)
    steps = pack_sequences(seqs)
    back = unpack_steps([x for _, x in steps], [p for p, _ in steps])
    assert back[1].shape == (0, 3)
    for a, b in zip(back, seqs):
        np.testing.assert_array_equal(a, b)


def test_ended_sequences_keep_their_last_outputs():
    """Outputs for a sequence match running it alone: reduction drops nothing else."""
    rng = np.random.default_rng(1)
    block = Stack([Vanilla(3, 4, seed=0), Vanilla(4, 2, seed=1)])
    seqs = _seqs(rng, [4, 1, 3], 3)
    together = apply_block(block, seqs).output_sequences()
    for seq, out in zip(seqs, together):
        alone = apply_block(block, [seq]).output_sequences()[0]
        np.testing.assert_allclose(out, alone)


def test_gradients_match_finite_differences_with_varying_lengths():
    rng = np.random.default_rng(2)
    block = Stack([
        FeedForward(MaxPool(2, 2, 4, 4, 1, stride_x=1, stride_y=1)),
        Vanilla(9, 4, seed=3),
        Vanilla(4, 2, seed=4),
    ])
    seqs = _seqs(rng, [3, 1, 0, 2], 16)
    run = apply_block(block, seqs)
    grad = Grad.zeros(block.parameters())
    downs = run.propagate(run.outputs(), grad)
    in_grads = unpack_steps(downs, run.presents)

    eps = 1e-6
    for p in block.parameters():
        for i in rng.choice(p.vector.size, size=min(3, p.vector.size), replace=False):
            old = p.vector[i]
            p.vector[i] = old + eps
            plus = _loss(block, seqs)
            p.vector[i] = old - eps
            minus = _loss(block, seqs)
            p.vector[i] = old
            assert abs((plus - minus) / (2 * eps) - grad[p][i]) < 1e-5

    for s, seq in enumerate(seqs):
        for t in range(len(seq)):
            i = int(rng.integers(seq.shape[1]))
            old = seq[t, i]
            seq[t, i] = old + eps
            plus = _loss(block, seqs)
            seq[t, i] = old - eps
            minus = _loss(block, seqs)
            seq[t, i] = old
            assert abs((plus - minus) / (2 * eps) - in_grads[s][t, i]) < 1e-5


def test_start_state_gradient_covers_every_sequence():
    """The start-state gradient sums over all sequences, including ones that ended early."""
    rng = np.random.default_rng(5)
    block = Vanilla(2, 3, seed=6)
    seqs = _seqs(rng, [1, 3], 2)
    run = apply_block(block, seqs)
    grad = Grad.zeros([block.start_state])
    run.propagate(run.outputs(), grad)

    eps = 1e-6
    for i in range(3):
        old = block.start_state.vector[i]
        block.start_state.vector[i] = old + eps
        plus = _loss(block, seqs)
        block.start_state.vector[i] = old - eps
        minus = _loss(block, seqs)
        block.start_state.vector[i] = old
        assert abs((plus - minus) / (2 * eps) - grad[block.start_state][i]) < 1e-5


def test_propagate_requires_one_gradient_per_step():
    block = Vanilla(1, 1, seed=0)
    run = apply_block(block, [np.ones((2, 1))])
    with pytest.raises(ValueError):
        run.propagate([np.ones(1)], Grad())
