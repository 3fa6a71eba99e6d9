"""Layer contract and shared geometry helpers."""

from abc import ABC, abstractmethod

from autodiff import Result


class Layer(ABC):
    """Stateless transform applied to a whole batch at once."""

    @abstractmethod
    def apply(self, in_result: Result, batch_size: int) -> Result:
        """Apply to a batch of batch_size inputs concatenated in in_result.output()."""
        ...


def conv_output_size(in_size: int, span: int, stride: int) -> int:
    """Output length along one axis for a filter of size span moved by stride (no padding)."""
    return (in_size - span) // stride + 1
