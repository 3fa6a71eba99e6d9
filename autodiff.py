"""
Reverse-mode autodiff primitives shared by layers and blocks: trainable Var,
VarSet, Grad accumulator, and the Result contract.

A Result bundles a forward output with the function that pushes an upstream
gradient back into its inputs. Nothing is recomputed on the backward pass;
each Result keeps whatever it needs from the forward pass.
"""

from abc import ABC, abstractmethod

import numpy as np


# =============================================================================
# Result contract
# =============================================================================

class Result(ABC):
    """Output of a forward computation plus its backward function."""

    @abstractmethod
    def output(self) -> np.ndarray:
        ...

    @abstractmethod
    def vars(self) -> "VarSet":
        """Trainable variables this result depends on."""
        ...

    @abstractmethod
    def propagate(self, upstream: np.ndarray, grad: "Grad") -> None:
        """Accumulate d(loss)/d(var) into grad for every tracked var."""
        ...


# =============================================================================
# Variables and gradients
# =============================================================================

class Var(Result):
    """
    Trainable parameter: a flat float vector. A Var is its own Result, so it
    can be fed straight into a layer; propagation adds into grad[self].
    Hashes by identity, so two Vars holding equal values are still distinct.
    """

    def __init__(self, vector):
        self.vector = np.asarray(vector, dtype=np.float64).ravel().copy()

    def output(self) -> np.ndarray:
        return self.vector

    def vars(self) -> "VarSet":
        return VarSet([self])

    def propagate(self, upstream: np.ndarray, grad: "Grad") -> None:
        if self in grad:
            grad[self] += upstream

    def __repr__(self):
        return f"Var(size={self.vector.size})"


class VarSet:
    """Insertion-ordered set of Vars, deduplicated by identity."""

    def __init__(self, items=()):
        self._items: dict[int, Var] = {}
        for v in items:
            self.add(v)

    def add(self, v: Var) -> None:
        self._items.setdefault(id(v), v)

    def __contains__(self, v) -> bool:
        return id(v) in self._items

    def __iter__(self):
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self):
        return f"VarSet({list(self)})"


def merge_var_sets(*sets: VarSet) -> VarSet:
    """Union of several VarSets, keeping first-seen order."""
    out = VarSet()
    for s in sets:
        for v in s:
            out.add(v)
    return out


class Parameterized(ABC):
    """Capability: exposes trainable parameters."""

    @abstractmethod
    def parameters(self) -> list[Var]:
        ...


class Grad(dict):
    """
    Parameter gradient accumulator: maps Var -> gradient buffer (same shape as
    var.vector). Only vars that are keys get gradients; others are skipped.
    """

    @classmethod
    def zeros(cls, variables) -> "Grad":
        return cls((v, np.zeros_like(v.vector)) for v in variables)


# =============================================================================
# Leaf results
# =============================================================================

class Const(Result):
    """Constant input; gradients stop here."""

    def __init__(self, vector):
        self.vector = np.asarray(vector, dtype=np.float64).ravel()

    def output(self) -> np.ndarray:
        return self.vector

    def vars(self) -> VarSet:
        return VarSet()

    def propagate(self, upstream: np.ndarray, grad: Grad) -> None:
        pass


class Capture(Const):
    """Constant input that remembers the gradient it receives (summed if hit more than once)."""

    def __init__(self, vector):
        super().__init__(vector)
        self.downstream = None

    def propagate(self, upstream: np.ndarray, grad: Grad) -> None:
        if self.downstream is None:
            self.downstream = np.array(upstream, dtype=np.float64)
        else:
            self.downstream += upstream

    def gradient(self) -> np.ndarray:
        """Gradient w.r.t. this input; zeros if nothing was propagated."""
        if self.downstream is None:
            return np.zeros_like(self.vector)
        return self.downstream
