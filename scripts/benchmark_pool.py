"""
Time forward/backward passes of a configured stack to measure passes/sec.
Uses the same code path as main.py but repeats the pass and does not save.

Examples:
  python scripts/benchmark_pool.py --config pool_rnn --repeats 20
  python scripts/benchmark_pool.py --config overlap_pool --batch 64 --max-len 16
"""

import argparse
import os
import sys

import numpy as np

# Project root
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from blocks import build_stack
from config import load_config
from main import random_sequences, run_once


def main():
    parser = argparse.ArgumentParser(description="Benchmark forward/backward for a config (no model saved).")
    parser.add_argument("--config", "-c", default="pool_rnn", help="Config name (default: pool_rnn)")
    parser.add_argument("--repeats", "-n", type=int, default=10, help="Number of passes to time (default: 10)")
    parser.add_argument("--batch", type=int, default=32, help="Sequences per batch (default: 32)")
    parser.add_argument("--max-len", type=int, default=8, help="Maximum sequence length (default: 8)")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)

    rng = np.random.default_rng(0)
    stack = build_stack(config, seed=0)
    seqs = random_sequences(rng, args.batch, args.max_len, config["input_size"])

    # first pass builds window maps and compiles the argmax kernel
    run_once(stack, seqs)
    t_forward = t_backward = 0.0
    for _ in range(args.repeats):
        _, _, timing = run_once(stack, seqs)
        t_forward += timing["forward"]
        t_backward += timing["backward"]
    total = t_forward + t_backward
    print(f"config: {args.config} | batch {args.batch} | max len {args.max_len}")
    print(f"forward: {t_forward / args.repeats * 1000:.2f} ms | backward: {t_backward / args.repeats * 1000:.2f} ms")
    print(f"passes/sec: {args.repeats / total:.1f}" if total > 0 else "passes/sec: ?")


if __name__ == "__main__":
    main()
