"""FeedForward: run a stateless Layer as a Block."""

import numpy as np

import serializer
from autodiff import Capture, Grad, Parameterized, Var, VarSet
from layers import Layer
from serializer import Persistable

from .base import Block, StepResult
from .state import VecState, VecStateGrad, full_present

FEEDFORWARD_TYPE = "tapenet.blocks.FeedForward"


class FeedForward(Block, Parameterized, Persistable):
    """
    Applies a Layer independently at each timestep. The state carries no data
    (zero-width rows); it only tracks which sequences are present.
    """

    def __init__(self, layer: Layer):
        self.layer = layer

    def start(self, n: int) -> VecState:
        return VecState(np.zeros((n, 0)), full_present(n))

    def propagate_start(self, state_grad: VecStateGrad, grad: Grad) -> None:
        pass

    def step(self, state: VecState, x: np.ndarray) -> StepResult:
        inp = Capture(x)
        return _FeedForwardResult(state, inp, self.layer.apply(inp, state.count))

    def parameters(self) -> list[Var]:
        if isinstance(self.layer, Parameterized):
            return self.layer.parameters()
        return []

    def serializer_type(self) -> str:
        return FEEDFORWARD_TYPE

    def serialize(self) -> bytes:
        if not isinstance(self.layer, Persistable):
            raise TypeError(f"not a serializer: {type(self.layer).__name__}")
        return serializer.serialize_with_type(self.layer)

    def __repr__(self):
        return f"FeedForward({self.layer!r})"


def deserialize_feedforward(data: bytes) -> FeedForward:
    try:
        layer = serializer.deserialize_with_type(data)
    except serializer.DeserializeError as e:
        raise serializer.add_context("deserialize FeedForward", e) from e
    if not isinstance(layer, Layer):
        raise TypeError(f"deserialize FeedForward: type is not a Layer: {type(layer).__name__}")
    return FeedForward(layer)


class _FeedForwardResult(StepResult):
    def __init__(self, state: VecState, inp: Capture, layer_res):
        self.in_state = state
        self.inp = inp
        self.layer_res = layer_res

    def output(self) -> np.ndarray:
        return self.layer_res.output()

    def vars(self) -> VarSet:
        return self.layer_res.vars()

    def state(self) -> VecState:
        return self.in_state

    def propagate(
        self, upstream: np.ndarray, state_grad: VecStateGrad | None, grad: Grad
    ) -> tuple[np.ndarray, VecStateGrad]:
        self.layer_res.propagate(upstream, grad)
        present = self.in_state.present()
        return self.inp.gradient(), VecStateGrad(np.zeros((self.in_state.count, 0)), present)


serializer.register_deserializer(FEEDFORWARD_TYPE, deserialize_feedforward)
