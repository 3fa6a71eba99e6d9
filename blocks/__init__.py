"""
Composable stateful blocks. Importing this package registers their
deserializers; build_stack turns a config's "blocks" list into a Stack.
"""

from layers import MaxPool

from .base import Block, State, StateGrad, StepResult
from .feedforward import FeedForward, deserialize_feedforward
from .stack import Stack, StackGrad, StackState, deserialize_stack
from .state import VecState, VecStateGrad, expand_rows, full_present, reduce_rows
from .vanilla import Vanilla, deserialize_vanilla


def build_block(spec: dict, *, seed: int | None = None) -> Block:
    """Build one block from a config entry such as {"type": "vanilla", "in_size": 4, "out_size": 8}."""
    kind = spec["type"]
    if kind == "vanilla":
        return Vanilla(spec["in_size"], spec["out_size"], seed=seed)
    if kind == "max_pool":
        return FeedForward(
            MaxPool(
                spec["span_x"],
                spec["span_y"],
                spec["input_width"],
                spec["input_height"],
                spec["input_depth"],
                stride_x=spec.get("stride_x"),
                stride_y=spec.get("stride_y"),
            )
        )
    if kind == "stack":
        return build_stack(spec, seed=seed)
    raise ValueError(f"Unknown block type: {kind}")


def build_stack(config: dict, *, seed: int | None = None) -> Stack:
    """Stack of the blocks listed under config["blocks"], first to last."""
    blocks = []
    for i, spec in enumerate(config["blocks"]):
        blocks.append(build_block(spec, seed=None if seed is None else seed + i))
    return Stack(blocks)


__all__ = [
    "Block",
    "State",
    "StateGrad",
    "StepResult",
    "FeedForward",
    "Stack",
    "StackState",
    "StackGrad",
    "VecState",
    "VecStateGrad",
    "Vanilla",
    "build_block",
    "build_stack",
    "deserialize_feedforward",
    "deserialize_stack",
    "deserialize_vanilla",
    "expand_rows",
    "full_present",
    "reduce_rows",
]
