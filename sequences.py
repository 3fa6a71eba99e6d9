"""
Run a Block over a batch of variable-length sequences.

At each timestep only the sequences that have not ended are stepped: the
state is reduced to them on the way forward, and state gradients are
expanded back (zero-filled) on the way backward.
"""

import numpy as np

from autodiff import Grad
from blocks import Block, StepResult, full_present


def pack_sequences(seqs) -> list[tuple[np.ndarray, np.ndarray]]:
    """
    seqs: list of (T_i, size) arrays. Returns one (present, packed) pair per
    timestep, where packed concatenates the timestep's vectors of the present
    sequences in batch order.
    """
    lengths = [len(s) for s in seqs]
    steps = []
    for t in range(max(lengths, default=0)):
        present = np.array([length > t for length in lengths], dtype=bool)
        packed = np.concatenate(
            [np.asarray(s[t], dtype=np.float64).ravel() for s, length in zip(seqs, lengths) if length > t]
        )
        steps.append((present, packed))
    return steps


def unpack_steps(values: list[np.ndarray], presents: list[np.ndarray]) -> list[np.ndarray]:
    """Inverse of pack_sequences: per-timestep packed vectors -> per-sequence (T_i, size) arrays."""
    if not values:
        return []
    n = presents[0].size
    width = next((v.size // int(p.sum()) for v, p in zip(values, presents) if p.any()), 0)
    per_seq: list[list[np.ndarray]] = [[] for _ in range(n)]
    for vec, present in zip(values, presents):
        rows = vec.reshape(int(present.sum()), -1)
        for row, idx in zip(rows, np.flatnonzero(present)):
            per_seq[idx].append(row)
    return [np.stack(rows) if rows else np.zeros((0, width)) for rows in per_seq]


class BlockRun:
    """Tape of one forward pass of a Block over a batch of sequences."""

    def __init__(self, block: Block, n: int, presents: list[np.ndarray], results: list[StepResult]):
        self.block = block
        self.n = n
        self.presents = presents
        self.results = results

    def outputs(self) -> list[np.ndarray]:
        """Packed output per timestep."""
        return [r.output() for r in self.results]

    def output_sequences(self) -> list[np.ndarray]:
        return unpack_steps(self.outputs(), self.presents)

    def propagate(self, upstreams: list[np.ndarray], grad: Grad) -> list[np.ndarray]:
        """
        Back-propagate per-timestep output gradients (packed like outputs()).
        Accumulates parameter gradients into grad and returns the packed input
        gradient for each timestep.
        """
        if len(upstreams) != len(self.results):
            raise ValueError(f"expected {len(self.results)} upstream gradients, got {len(upstreams)}")
        downs: list[np.ndarray] = [None] * len(self.results)
        state_grad = None
        for t in range(len(self.results) - 1, -1, -1):
            if state_grad is not None:
                state_grad = state_grad.expand(self.presents[t])
            downs[t], state_grad = self.results[t].propagate(upstreams[t], state_grad, grad)
        if state_grad is not None:
            self.block.propagate_start(state_grad.expand(full_present(self.n)), grad)
        return downs


def apply_block(block: Block, seqs) -> BlockRun:
    """Start the block for len(seqs) sequences and step it through every timestep."""
    n = len(seqs)
    state = block.start(n)
    presents = []
    results = []
    for present, packed in pack_sequences(seqs):
        if not np.array_equal(state.present(), present):
            state = state.reduce(present)
        res = block.step(state, packed)
        presents.append(present)
        results.append(res)
        state = res.state()
    return BlockRun(block, n, presents, results)
