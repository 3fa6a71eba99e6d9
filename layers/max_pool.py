"""
Max-pooling layer over row-major, depth-minor image batches.

Forward gathers every window through a fixed window map, then reduces each
(window, channel) group with a per-call argmax map. Backward replays the two
maps' transposes in reverse, so each window's gradient lands only on the
position that held its max.
"""

import threading

import numpy as np

import serializer
from autodiff import Result, VarSet, Grad
from index_map import IndexMap, map_max, window_map
from serializer import DeserializeError, Persistable

from .base import Layer, conv_output_size

MAX_POOL_TYPE = "tapenet.layers.MaxPool"


class MaxPool(Layer, Persistable):
    """
    Max-pooling layer. span_* plays the role of a convolution's filter size and
    stride_* its stride (defaulting to the span, i.e. non-overlapping pools).
    Input values that fall in an incomplete pool at the right or bottom edge
    are ignored.
    """

    def __init__(
        self,
        span_x: int,
        span_y: int,
        input_width: int,
        input_height: int,
        input_depth: int,
        stride_x: int | None = None,
        stride_y: int | None = None,
    ):
        self.span_x = span_x
        self.span_y = span_y
        self.stride_x = span_x if stride_x is None else stride_x
        self.stride_y = span_y if stride_y is None else stride_y
        self.input_width = input_width
        self.input_height = input_height
        self.input_depth = input_depth
        self._im2col_lock = threading.Lock()
        self._im2col: IndexMap | None = None

    def output_width(self) -> int:
        return conv_output_size(self.input_width, self.span_x, self.stride_x)

    def output_height(self) -> int:
        return conv_output_size(self.input_height, self.span_y, self.stride_y)

    def output_depth(self) -> int:
        return self.input_depth

    def image_size(self) -> int:
        return self.input_width * self.input_height * self.input_depth

    def window_map(self) -> IndexMap:
        """The window-extraction map, built on first use and shared afterwards."""
        if self._im2col is None:
            with self._im2col_lock:
                if self._im2col is None:
                    self._im2col = window_map(
                        self.span_x,
                        self.span_y,
                        self.stride_x,
                        self.stride_y,
                        self.input_width,
                        self.input_height,
                        self.input_depth,
                    )
        return self._im2col

    def apply(self, in_result: Result, batch_size: int) -> Result:
        im2col = self.window_map()
        img_size = self.image_size()
        in_vec = in_result.output()
        if in_vec.size != batch_size * img_size:
            raise ValueError(
                f"incorrect input size: {in_vec.size} != {batch_size} * {img_size}"
            )

        windows = np.empty(im2col.out_size, dtype=np.float64)
        pooled = []
        max_maps = []
        for i in range(batch_size):
            im2col.map(in_vec[img_size * i : img_size * (i + 1)], windows)
            mapping = map_max(windows, self.span_x * self.span_y)
            pooled.append(mapping.map(windows))
            max_maps.append(mapping)

        out_vec = np.concatenate(pooled) if pooled else np.zeros(0)
        return _MaxPoolResult(self, in_result, out_vec, max_maps)

    def serializer_type(self) -> str:
        return MAX_POOL_TYPE

    def serialize(self) -> bytes:
        return serializer.serialize_ints(
            self.span_x,
            self.span_y,
            self.input_width,
            self.input_height,
            self.input_depth,
            self.stride_x,
            self.stride_y,
        )

    def __repr__(self):
        return (
            f"MaxPool(span=({self.span_x}, {self.span_y}), stride=({self.stride_x}, {self.stride_y}), "
            f"input=({self.input_width}, {self.input_height}, {self.input_depth}))"
        )


def deserialize_max_pool(data: bytes) -> MaxPool:
    """Decode a MaxPool record. Records written before strides existed hold 5 fields."""
    try:
        s_x, s_y, i_w, i_h, i_d, stride_x, stride_y = serializer.deserialize_ints(data, 7)
    except DeserializeError:
        try:
            s_x, s_y, i_w, i_h, i_d = serializer.deserialize_ints(data, 5)
        except DeserializeError as e:
            raise serializer.add_context("deserialize MaxPool", e) from e
        stride_x, stride_y = s_x, s_y
    return MaxPool(s_x, s_y, i_w, i_h, i_d, stride_x=stride_x, stride_y=stride_y)


class _MaxPoolResult(Result):
    def __init__(self, layer: MaxPool, in_result: Result, out_vec: np.ndarray, max_maps: list[IndexMap]):
        self.layer = layer
        self.in_result = in_result
        self.out_vec = out_vec
        self.max_maps = max_maps
        self._propagated = False

    def output(self) -> np.ndarray:
        return self.out_vec

    def vars(self) -> VarSet:
        return self.in_result.vars()

    def propagate(self, upstream: np.ndarray, grad: Grad) -> None:
        if self._propagated:
            raise RuntimeError("MaxPool result propagated twice")
        self._propagated = True
        if not self.max_maps:
            self.in_result.propagate(np.zeros(0), grad)
            return

        im2col = self.layer.window_map()
        out_size = upstream.size // len(self.max_maps)
        pieces = []
        for i, mapping in enumerate(self.max_maps):
            up_slice = upstream[out_size * i : out_size * (i + 1)]
            permed = mapping.map_transpose(up_slice, np.zeros(mapping.in_size))
            pieces.append(im2col.map_transpose(permed, np.zeros(im2col.in_size)))
        self.in_result.propagate(np.concatenate(pieces), grad)


serializer.register_deserializer(MAX_POOL_TYPE, deserialize_max_pool)
