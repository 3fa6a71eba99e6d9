"""
Batched dense ops with manual backward (functions only). Rows are batch items.
"""

import numpy as np


def linear_fwd_batched(x: np.ndarray, w: np.ndarray) -> np.ndarray:
    """x (B, nin), w (nout, nin) -> out (B, nout)."""
    return x @ w.T


def linear_bwd_batched(
    grad_out: np.ndarray, x: np.ndarray, w: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """grad_out (B, nout), x (B, nin), w (nout, nin) -> grad_w (nout, nin), grad_x (B, nin)."""
    grad_w = grad_out.T @ x
    grad_x = grad_out @ w
    return grad_w, grad_x


def tanh_fwd(x: np.ndarray) -> np.ndarray:
    return np.tanh(x)


def tanh_bwd(grad_out: np.ndarray, out: np.ndarray) -> np.ndarray:
    """d/dx tanh(x) = 1 - tanh(x)^2, given the forward output."""
    return grad_out * (1.0 - out * out)
