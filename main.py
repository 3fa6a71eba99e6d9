"""
Build a block stack from a config (or load a saved one), run it forward and
backward over a random batch of variable-length sequences, and report loss,
gradient norms and timings. Optionally save the stack.

Run: python main.py --config pool_rnn
     python main.py --config pool_rnn --save --check 5
     python main.py --model models/pool_rnn/model.bin --input-size 32
"""

import argparse
import os
import sys
import time

import numpy as np

import serializer
from autodiff import Grad
from blocks import Block, FeedForward, Stack, Vanilla, build_stack
from config import load_config, resolve_model_path
from layers import MaxPool
from sequences import apply_block


def input_size_of(block) -> int | None:
    """Per-timestep input width of a block, when it can be read off the block itself."""
    if isinstance(block, Stack):
        return input_size_of(block[0]) if len(block) else None
    if isinstance(block, Vanilla):
        return block.in_size
    if isinstance(block, FeedForward) and isinstance(block.layer, MaxPool):
        return block.layer.image_size()
    return None


def random_sequences(rng: np.random.Generator, batch: int, max_len: int, size: int) -> list[np.ndarray]:
    """batch sequences with lengths in [1, max_len], values ~ N(0, 1)."""
    lengths = rng.integers(1, max_len + 1, size=batch)
    return [rng.normal(size=(int(n), size)) for n in lengths]


def run_once(stack: Stack, seqs: list[np.ndarray]) -> tuple[float, Grad, dict]:
    """Forward + backward with loss = 0.5 * sum of squared outputs. Returns (loss, grad, timing)."""
    grad = Grad.zeros(stack.parameters())
    t0 = time.perf_counter()
    run = apply_block(stack, seqs)
    outputs = run.outputs()
    loss = 0.5 * sum(float(o @ o) for o in outputs)
    t_forward = time.perf_counter() - t0

    t0 = time.perf_counter()
    run.propagate(outputs, grad)
    t_backward = time.perf_counter() - t0
    return loss, grad, {"forward": t_forward, "backward": t_backward}


def check_gradients(stack: Stack, seqs: list[np.ndarray], grad: Grad, rng: np.random.Generator, count: int, eps: float = 1e-6) -> float:
    """Compare `count` random gradient entries against central differences; return max abs error."""
    worst = 0.0
    params = stack.parameters()
    for _ in range(count):
        p = params[rng.integers(len(params))]
        i = int(rng.integers(p.vector.size))
        old = p.vector[i]
        p.vector[i] = old + eps
        plus = run_once(stack, seqs)[0]
        p.vector[i] = old - eps
        minus = run_once(stack, seqs)[0]
        p.vector[i] = old
        numeric = (plus - minus) / (2 * eps)
        worst = max(worst, abs(numeric - grad[p][i]))
    return worst


def main():
    parser = argparse.ArgumentParser(description="Run a block stack forward and backward on random sequences.")
    parser.add_argument("--config", "-c", help="Config name → configs/<name>.json (default: pool_rnn if no --model)")
    parser.add_argument("--model", "-m", help="Path to a saved stack (e.g. models/pool_rnn/model.bin)")
    parser.add_argument("--input-size", type=int, default=None, help="Per-timestep input width (default: from config or first block)")
    parser.add_argument("--batch", "-n", type=int, default=None, help="Number of sequences (default: config run.batch)")
    parser.add_argument("--max-len", type=int, default=None, help="Maximum sequence length (default: config run.max_len)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: config run.seed)")
    parser.add_argument("--check", type=int, default=0, help="Check this many gradient entries numerically (default 0 = off)")
    parser.add_argument("--save", action="store_true", help="Save the stack to models/<config>/model.bin")
    parser.add_argument("--output", "-o", help="Save path (implies --save)")
    args = parser.parse_args()

    if not args.model and not args.config:
        args.config = "pool_rnn"

    config = {}
    if args.model:
        try:
            stack = serializer.load(args.model)
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        except (serializer.DeserializeError, KeyError, TypeError) as e:
            print(f"Error: cannot load {args.model}: {e}", file=sys.stderr)
            sys.exit(1)
        if not isinstance(stack, Block):
            print(f"Error: {args.model} holds a {type(stack).__name__}, not a block", file=sys.stderr)
            sys.exit(1)
        if not isinstance(stack, Stack):
            stack = Stack([stack])
    else:
        try:
            config = load_config(args.config)
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    run_cfg = config.get("run", {})
    seed = args.seed if args.seed is not None else run_cfg.get("seed", 42)
    if not args.model:
        stack = build_stack(config, seed=seed)
    batch = args.batch if args.batch is not None else run_cfg.get("batch", 4)
    max_len = args.max_len if args.max_len is not None else run_cfg.get("max_len", 4)
    input_size = args.input_size or config.get("input_size") or input_size_of(stack)
    if input_size is None:
        print("Error: cannot infer input size; pass --input-size", file=sys.stderr)
        sys.exit(1)

    print(f"stack: {stack!r}")
    print(f"num params: {sum(p.vector.size for p in stack.parameters())}")

    rng = np.random.default_rng(seed)
    seqs = random_sequences(rng, batch, max_len, input_size)
    print(f"batch: {batch} sequences, lengths {[len(s) for s in seqs]}")

    loss, grad, timing = run_once(stack, seqs)
    print(f"loss: {loss:.6f}")
    for i, (p, g) in enumerate(grad.items()):
        print(f"param {i:2d} ({p.vector.size:5d}): grad norm {np.linalg.norm(g):.6f}")
    print(f"forward: {timing['forward'] * 1000:.2f} ms | backward: {timing['backward'] * 1000:.2f} ms")

    if args.check > 0:
        if not grad:
            print("gradient check: no parameters")
        else:
            err = check_gradients(stack, seqs, grad, rng, args.check)
            print(f"gradient check: max abs error {err:.3e} over {args.check} entries")

    if args.save or args.output:
        path = args.output or resolve_model_path(args.config or os.path.splitext(os.path.basename(args.model))[0])
        serializer.save(path, stack)
        print(f"saved to {path}")


if __name__ == "__main__":
    main()
