"""
IndexMap: immutable gather / accumulating-scatter table.

out[i] = in[table[i]] on the forward pass; the transpose adds grad_out[i]
into grad_in[table[i]]. Entries may repeat (overlapping windows) and some
inputs may never be referenced (dropped edge remainder).
"""

import numpy as np
from numba import jit


class IndexMap:
    """Gather table from in_size inputs to len(table) outputs."""

    def __init__(self, in_size: int, table):
        table = np.asarray(table, dtype=np.int64).ravel()
        if table.size and (table.min() < 0 or table.max() >= in_size):
            raise ValueError(f"index out of range for input size {in_size}")
        table.setflags(write=False)
        self._in_size = in_size
        self._table = table

    @property
    def in_size(self) -> int:
        return self._in_size

    @property
    def out_size(self) -> int:
        return self._table.size

    @property
    def table(self) -> np.ndarray:
        return self._table

    def map(self, vec: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        """Gather: out[i] = vec[table[i]]."""
        if vec.size != self._in_size:
            raise ValueError(f"input size {vec.size} != map input size {self._in_size}")
        if out is None:
            return vec[self._table]
        out[:] = vec[self._table]
        return out

    def map_transpose(self, grad_out: np.ndarray, grad_in: np.ndarray | None = None) -> np.ndarray:
        """Accumulating scatter: grad_in[table[i]] += grad_out[i]."""
        if grad_out.size != self.out_size:
            raise ValueError(f"gradient size {grad_out.size} != map output size {self.out_size}")
        if grad_in is None:
            grad_in = np.zeros(self._in_size, dtype=grad_out.dtype)
        np.add.at(grad_in, self._table, grad_out)
        return grad_in

    def __repr__(self):
        return f"IndexMap(in_size={self._in_size}, out_size={self.out_size})"


# =============================================================================
# Builders
# =============================================================================

def window_map(
    span_x: int,
    span_y: int,
    stride_x: int,
    stride_y: int,
    width: int,
    height: int,
    depth: int,
) -> IndexMap:
    """
    Window-extraction (im2col) map over one row-major, depth-minor image
    (flat index = (y * width + x) * depth + z).

    Windows are enumerated top-to-bottom, left-to-right. Each window emits
    span_x * span_y * depth entries: one contiguous group per channel, rows
    of the window inside a group, columns inside a row. Windows that would
    cross the right or bottom edge are skipped.
    """
    ys = np.arange(0, height - span_y + 1, stride_y)
    xs = np.arange(0, width - span_x + 1, stride_x)
    zs = np.arange(depth)
    sub_y = np.arange(span_y)
    sub_x = np.arange(span_x)
    # axes: (window y, window x, channel, row in window, column in window)
    rows = ys[:, None, None, None, None] + sub_y[None, None, None, :, None]
    cols = xs[None, :, None, None, None] + sub_x[None, None, None, None, :]
    table = (rows * width + cols) * depth + zs[None, None, :, None, None]
    return IndexMap(width * height * depth, table.ravel())


@jit(nopython=True)
def _group_argmax(vec: np.ndarray, group_size: int) -> np.ndarray:
    n_groups = vec.shape[0] // group_size
    out = np.empty(n_groups, dtype=np.int64)
    for g in range(n_groups):
        start = g * group_size
        best = start
        for i in range(start + 1, start + group_size):
            if vec[i] > vec[best]:
                best = i
        out[g] = best
    return out


def map_max(vec: np.ndarray, group_size: int) -> IndexMap:
    """
    Argmax map over consecutive groups of group_size entries. Mapping vec
    through it yields each group's max; ties go to the first entry in the
    group.
    """
    if group_size <= 0 or vec.size % group_size:
        raise ValueError(f"vector of size {vec.size} is not divisible into groups of {group_size}")
    return IndexMap(vec.size, _group_argmax(np.ascontiguousarray(vec, dtype=np.float64), group_size))
