"""Tests for IndexMap: gather, accumulating transpose, window and argmax builders."""

import numpy as np
import pytest

from index_map import IndexMap, map_max, window_map


def test_map_gathers_and_transpose_accumulates():
    """Repeated table entries gather the same input and sum on the transpose."""
    m = IndexMap(4, [2, 0, 2, 3])
    assert m.in_size == 4 and m.out_size == 4
    out = m.map(np.array([10.0, 11.0, 12.0, 13.0]))
    assert out.tolist() == [12.0, 10.0, 12.0, 13.0]
    grad_in = m.map_transpose(np.array([1.0, 2.0, 3.0, 4.0]))
    assert grad_in.tolist() == [2.0, 0.0, 4.0, 4.0]


def test_map_transpose_adds_into_existing_buffer():
    m = IndexMap(3, [1, 1])
    buf = np.array([1.0, 1.0, 1.0])
    m.map_transpose(np.array([2.0, 3.0]), buf)
    assert buf.tolist() == [1.0, 6.0, 1.0]


def test_map_writes_into_out_buffer():
    m = IndexMap(3, [2, 1])
    out = np.zeros(2)
    result = m.map(np.array([5.0, 6.0, 7.0]), out)
    assert result is out
    assert out.tolist() == [7.0, 6.0]


def test_index_map_rejects_out_of_range_and_wrong_sizes():
    with pytest.raises(ValueError):
        IndexMap(2, [0, 2])
    m = IndexMap(2, [0, 1])
    with pytest.raises(ValueError):
        m.map(np.zeros(3))
    with pytest.raises(ValueError):
        m.map_transpose(np.zeros(1))


def test_index_map_table_is_read_only():
    m = IndexMap(2, [0, 1])
    with pytest.raises(ValueError):
        m.table[0] = 1


def test_window_map_4x4_non_overlapping():
    """2x2 windows, stride 2, on a 4x4 single-channel image: row-major windows, rows then columns inside."""
    m = window_map(2, 2, 2, 2, 4, 4, 1)
    assert m.in_size == 16
    assert m.table.tolist() == [
        0, 1, 4, 5,
        2, 3, 6, 7,
        8, 9, 12, 13,
        10, 11, 14, 15,
    ]


def test_window_map_groups_by_channel():
    """With depth 2 each window holds one contiguous group per channel."""
    m = window_map(2, 2, 2, 2, 2, 2, 2)
    assert m.table.tolist() == [0, 2, 4, 6, 1, 3, 5, 7]


def test_window_map_drops_incomplete_edge_windows():
    """5x5 image, 2x2 windows, stride 2: the last row and column are never referenced."""
    m = window_map(2, 2, 2, 2, 5, 5, 1)
    assert m.out_size == 4 * 4
    used = set(m.table.tolist())
    dropped = {4, 9, 14, 19, 20, 21, 22, 23, 24}
    assert used.isdisjoint(dropped)
    assert len(used) == 16


def test_window_map_overlapping_stride():
    m = window_map(2, 2, 1, 1, 3, 3, 1)
    assert m.out_size == 4 * 4
    assert m.table[:4].tolist() == [0, 1, 3, 4]
    assert m.table[-4:].tolist() == [4, 5, 7, 8]
    counts = np.bincount(m.table, minlength=9)
    assert counts[4] == 4


def test_map_max_selects_group_maxima():
    vec = np.array([3.0, 7.0, 1.0, -2.0, -5.0, -1.0])
    m = map_max(vec, 3)
    assert m.in_size == 6
    assert m.table.tolist() == [1, 5]
    assert m.map(vec).tolist() == [7.0, -1.0]


def test_map_max_ties_go_to_first_entry():
    m = map_max(np.array([1.0, 1.0, 0.0, 0.0]), 2)
    assert m.table.tolist() == [0, 2]


def test_map_max_rejects_uneven_groups():
    with pytest.raises(ValueError):
        map_max(np.zeros(5), 2)
