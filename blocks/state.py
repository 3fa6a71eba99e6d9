"""
Present maps and dense vector states.

A batch state is a dense (count, size) row arena plus a boolean present map
over the original batch; row k belongs to the k-th flagged sequence. Reduce
and expand only remap rows.
"""

import numpy as np

from .base import State, StateGrad


def full_present(n: int) -> np.ndarray:
    """Present map with all n sequences present."""
    return np.ones(n, dtype=bool)


def check_subset(sub: np.ndarray, sup: np.ndarray) -> None:
    """Raise ValueError unless sub is a subset of sup (same batch length)."""
    if sub.shape != sup.shape:
        raise ValueError(f"present map length mismatch: {sub.size} vs {sup.size}")
    if np.any(sub & ~sup):
        raise ValueError("present map is not a subset of the current present map")


def reduce_rows(rows: np.ndarray, present: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Rows for the sequences in target, given rows for the sequences in present."""
    check_subset(target, present)
    return rows[target[present]]


def expand_rows(rows: np.ndarray, present: np.ndarray, full: np.ndarray) -> np.ndarray:
    """Rows for every sequence in full; sequences missing from present get zero rows."""
    check_subset(present, full)
    out = np.zeros((int(full.sum()), rows.shape[1]), dtype=rows.dtype)
    out[present[full]] = rows
    return out


class VecState(State):
    """One vector of `size` floats per present sequence."""

    def __init__(self, rows: np.ndarray, present: np.ndarray):
        present = np.asarray(present, dtype=bool)
        assert rows.ndim == 2 and rows.shape[0] == int(present.sum()), (
            f"{rows.shape[0]} rows for {int(present.sum())} present sequences"
        )
        self.rows = rows
        self._present = present

    @property
    def count(self) -> int:
        return self.rows.shape[0]

    def present(self) -> np.ndarray:
        return self._present

    def reduce(self, present: np.ndarray) -> "VecState":
        present = np.asarray(present, dtype=bool)
        return VecState(reduce_rows(self.rows, self._present, present), present)


class VecStateGrad(StateGrad):
    """Gradient of a VecState."""

    def __init__(self, rows: np.ndarray, present: np.ndarray):
        present = np.asarray(present, dtype=bool)
        assert rows.ndim == 2 and rows.shape[0] == int(present.sum()), (
            f"{rows.shape[0]} rows for {int(present.sum())} present sequences"
        )
        self.rows = rows
        self._present = present

    def present(self) -> np.ndarray:
        return self._present

    def expand(self, present: np.ndarray) -> "VecStateGrad":
        present = np.asarray(present, dtype=bool)
        return VecStateGrad(expand_rows(self.rows, self._present, present), present)
