"""
Vanilla recurrent block: h_t = tanh(W x_t + U h_{t-1} + b), output h_t.
The start state h_0 is a trainable vector shared by every sequence.
"""

import numpy as np

import serializer
from autodiff import Grad, Parameterized, Var, VarSet
from ops import linear_bwd_batched, linear_fwd_batched, tanh_bwd, tanh_fwd
from serializer import Persistable

from .base import Block, StepResult
from .state import VecState, VecStateGrad, full_present

VANILLA_TYPE = "tapenet.blocks.Vanilla"


class Vanilla(Block, Parameterized, Persistable):
    """Elman-style tanh RNN block with in_size inputs and out_size hidden units."""

    def __init__(self, in_size: int, out_size: int, *, seed: int | None = None, init_from: dict | None = None):
        self.in_size = in_size
        self.out_size = out_size
        if init_from is not None:
            self.input_weights = Var(init_from["input_weights"])
            self.state_weights = Var(init_from["state_weights"])
            self.biases = Var(init_from["biases"])
            self.start_state = Var(init_from["start_state"])
            assert self.input_weights.vector.size == out_size * in_size
            assert self.state_weights.vector.size == out_size * out_size
            assert self.biases.vector.size == out_size
            assert self.start_state.vector.size == out_size
        else:
            rng = np.random.default_rng(seed)
            self.input_weights = Var(rng.normal(0, 1 / np.sqrt(in_size), size=out_size * in_size))
            self.state_weights = Var(rng.normal(0, 1 / np.sqrt(out_size), size=out_size * out_size))
            self.biases = Var(np.zeros(out_size))
            self.start_state = Var(np.zeros(out_size))

    def _w(self) -> np.ndarray:
        return self.input_weights.vector.reshape(self.out_size, self.in_size)

    def _u(self) -> np.ndarray:
        return self.state_weights.vector.reshape(self.out_size, self.out_size)

    def start(self, n: int) -> VecState:
        return VecState(np.tile(self.start_state.vector, (n, 1)), full_present(n))

    def propagate_start(self, state_grad: VecStateGrad, grad: Grad) -> None:
        if self.start_state in grad:
            grad[self.start_state] += state_grad.rows.sum(axis=0)

    def step(self, state: VecState, x: np.ndarray) -> StepResult:
        n = state.count
        if x.size != n * self.in_size:
            raise ValueError(f"incorrect input size: {x.size} != {n} * {self.in_size}")
        x_rows = x.reshape(n, self.in_size)
        pre = (
            linear_fwd_batched(x_rows, self._w())
            + linear_fwd_batched(state.rows, self._u())
            + self.biases.vector
        )
        return _VanillaResult(self, state, x_rows, tanh_fwd(pre))

    def parameters(self) -> list[Var]:
        return [self.input_weights, self.state_weights, self.biases, self.start_state]

    def serializer_type(self) -> str:
        return VANILLA_TYPE

    def serialize(self) -> bytes:
        return serializer.serialize_dict({
            "in_size": self.in_size,
            "out_size": self.out_size,
            "input_weights": self.input_weights.vector.tolist(),
            "state_weights": self.state_weights.vector.tolist(),
            "biases": self.biases.vector.tolist(),
            "start_state": self.start_state.vector.tolist(),
        })

    def __repr__(self):
        return f"Vanilla(in_size={self.in_size}, out_size={self.out_size})"


def deserialize_vanilla(data: bytes) -> Vanilla:
    keys = ("in_size", "out_size", "input_weights", "state_weights", "biases", "start_state")
    try:
        payload = serializer.deserialize_dict(data, keys)
        in_size, out_size = int(payload["in_size"]), int(payload["out_size"])
        sizes = {
            "input_weights": out_size * in_size,
            "state_weights": out_size * out_size,
            "biases": out_size,
            "start_state": out_size,
        }
        for k, size in sizes.items():
            if len(payload[k]) != size:
                raise serializer.DeserializeError(f"{k}: expected {size} values, got {len(payload[k])}")
        return Vanilla(in_size, out_size, init_from=payload)
    except (serializer.DeserializeError, TypeError, ValueError) as e:
        raise serializer.add_context("deserialize Vanilla", e) from e


class _VanillaResult(StepResult):
    def __init__(self, block: Vanilla, in_state: VecState, x_rows: np.ndarray, out_rows: np.ndarray):
        self.block = block
        self.in_state = in_state
        self.x_rows = x_rows
        self.out_rows = out_rows
        self.out_state = VecState(out_rows, in_state.present())

    def output(self) -> np.ndarray:
        return self.out_rows.ravel()

    def vars(self) -> VarSet:
        return VarSet(self.block.parameters()[:3])

    def state(self) -> VecState:
        return self.out_state

    def propagate(
        self, upstream: np.ndarray, state_grad: VecStateGrad | None, grad: Grad
    ) -> tuple[np.ndarray, VecStateGrad]:
        b = self.block
        d_out = upstream.reshape(self.out_rows.shape).copy()
        if state_grad is not None:
            d_out += state_grad.rows
        d_pre = tanh_bwd(d_out, self.out_rows)

        grad_w, grad_x = linear_bwd_batched(d_pre, self.x_rows, b._w())
        grad_u, grad_h = linear_bwd_batched(d_pre, self.in_state.rows, b._u())
        if b.input_weights in grad:
            grad[b.input_weights] += grad_w.ravel()
        if b.state_weights in grad:
            grad[b.state_weights] += grad_u.ravel()
        if b.biases in grad:
            grad[b.biases] += d_pre.sum(axis=0)
        return grad_x.ravel(), VecStateGrad(grad_h, self.in_state.present())


serializer.register_deserializer(VANILLA_TYPE, deserialize_vanilla)
