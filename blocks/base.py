"""
Block contract: a differentiable, stateful transform applied one timestep at
a time to a batch of sequences.

A driver calls start(n) once, then step(state, x) per timestep, feeding each
result's state() into the next step. Backward walks the results in reverse,
passing each one the state gradient returned by the step after it, and ends
with propagate_start on the gradient of the start state.
"""

from abc import ABC, abstractmethod

import numpy as np

from autodiff import Grad, VarSet


class State(ABC):
    """Per-sequence recurrent memory for the sequences still present in a batch."""

    @abstractmethod
    def present(self) -> np.ndarray:
        """Boolean map over the original batch of which sequences this state holds."""
        ...

    @abstractmethod
    def reduce(self, present: np.ndarray) -> "State":
        """Keep only the sequences flagged in present (a subset of self.present())."""
        ...


class StateGrad(ABC):
    """Gradient counterpart of a State."""

    @abstractmethod
    def present(self) -> np.ndarray:
        ...

    @abstractmethod
    def expand(self, present: np.ndarray) -> "StateGrad":
        """Widen to present (a superset of self.present()), zero-filling new sequences."""
        ...


class StepResult(ABC):
    """Output of one Block.step plus its backward function."""

    @abstractmethod
    def output(self) -> np.ndarray:
        ...

    @abstractmethod
    def vars(self) -> VarSet:
        ...

    @abstractmethod
    def state(self) -> State:
        """State to feed into the next timestep."""
        ...

    @abstractmethod
    def propagate(
        self, upstream: np.ndarray, state_grad: StateGrad | None, grad: Grad
    ) -> tuple[np.ndarray, StateGrad]:
        """
        Back-propagate the output gradient and the gradient of state() (None for a
        sequence's last step). Returns (input gradient, gradient of the input state).
        """
        ...


class Block(ABC):
    """Configuration for a stateful transform; owns no batch data."""

    @abstractmethod
    def start(self, n: int) -> State:
        """Initial state for a batch of n sequences."""
        ...

    @abstractmethod
    def propagate_start(self, state_grad: StateGrad, grad: Grad) -> None:
        """Back-propagate through the initial state."""
        ...

    @abstractmethod
    def step(self, state: State, x: np.ndarray) -> StepResult:
        """Apply the block for a single timestep."""
        ...
