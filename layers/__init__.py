"""
Stateless tensor layers. Importing this package registers their
deserializers with the serializer registry.
"""

from .base import Layer, conv_output_size
from .max_pool import MaxPool, deserialize_max_pool

__all__ = [
    "Layer",
    "conv_output_size",
    "MaxPool",
    "deserialize_max_pool",
]
