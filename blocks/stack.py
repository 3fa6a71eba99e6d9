"""
Stack: compose Blocks so each block's output is the next block's input within
the same timestep. An empty Stack is invalid.
"""

import numpy as np

import serializer
from autodiff import Grad, Parameterized, Var, VarSet, merge_var_sets
from serializer import Persistable

from .base import Block, State, StateGrad, StepResult

STACK_TYPE = "tapenet.blocks.Stack"


class Stack(Block, Parameterized, Persistable):
    """Ordered composition of Blocks, applied first to last."""

    def __init__(self, blocks=()):
        self.blocks: list[Block] = list(blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self):
        return iter(self.blocks)

    def __getitem__(self, i):
        return self.blocks[i]

    def start(self, n: int) -> "StackState":
        self._assert_non_empty()
        return StackState(b.start(n) for b in self.blocks)

    def propagate_start(self, state_grad: "StackGrad", grad: Grad) -> None:
        for b, sg in zip(self.blocks, state_grad):
            b.propagate_start(sg, grad)

    def step(self, state: "StackState", x: np.ndarray) -> "_StackResult":
        self._assert_non_empty()
        res = _StackResult()
        in_vec = x
        for b, in_state in zip(self.blocks, state):
            block_res = b.step(in_state, in_vec)
            in_vec = block_res.output()
            res.results.append(block_res)
            res.out_state.append(block_res.state())
            res.var_set = merge_var_sets(res.var_set, block_res.vars())
        return res

    def parameters(self) -> list[Var]:
        """Parameters of every member that is Parameterized, in block order."""
        out = VarSet()
        for b in self.blocks:
            if isinstance(b, Parameterized):
                for p in b.parameters():
                    out.add(p)
        return list(out)

    def serializer_type(self) -> str:
        return STACK_TYPE

    def serialize(self) -> bytes:
        """Serialize every member; fails if any member is not Persistable."""
        for b in self.blocks:
            if not isinstance(b, Persistable):
                raise TypeError(f"not a serializer: {type(b).__name__}")
        return serializer.serialize_slice(self.blocks)

    def _assert_non_empty(self) -> None:
        if not self.blocks:
            raise ValueError("empty Stack is invalid")

    def __repr__(self):
        return f"Stack({self.blocks!r})"


def deserialize_stack(data: bytes) -> Stack:
    try:
        items = serializer.deserialize_slice(data)
    except serializer.DeserializeError as e:
        raise serializer.add_context("deserialize Stack", e) from e
    for x in items:
        if not isinstance(x, Block):
            raise TypeError(f"deserialize Stack: type is not a Block: {type(x).__name__}")
    return Stack(items)


class _StackResult(StepResult):
    """Tape of per-block results for one timestep."""

    def __init__(self):
        self.results: list[StepResult] = []
        self.out_state = StackState()
        self.var_set = VarSet()
        self._propagated = False

    def output(self) -> np.ndarray:
        return self.results[-1].output()

    def vars(self) -> VarSet:
        return self.var_set

    def state(self) -> "StackState":
        return self.out_state

    def propagate(
        self, upstream: np.ndarray, state_grad: "StackGrad | None", grad: Grad
    ) -> tuple[np.ndarray, "StackGrad"]:
        if self._propagated:
            raise RuntimeError("Stack result propagated twice")
        self._propagated = True
        down_vec = upstream
        down_states = StackGrad([None] * len(self.results))
        for i in range(len(self.results) - 1, -1, -1):
            state_upstream = state_grad[i] if state_grad is not None else None
            down_vec, down_states[i] = self.results[i].propagate(down_vec, state_upstream, grad)
        return down_vec, down_states


class StackState(list, State):
    """One State per block in the Stack, index-aligned."""

    def present(self) -> np.ndarray:
        # all members are reduced with the same map, so the first one speaks for all
        return self[0].present()

    def reduce(self, present: np.ndarray) -> "StackState":
        return StackState(s.reduce(present) for s in self)


class StackGrad(list, StateGrad):
    """One StateGrad per block in the Stack, index-aligned."""

    def present(self) -> np.ndarray:
        return self[0].present()

    def expand(self, present: np.ndarray) -> "StackGrad":
        return StackGrad(g.expand(present) for g in self)


serializer.register_deserializer(STACK_TYPE, deserialize_stack)
