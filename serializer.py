"""
Typed persistence for layers and blocks. Every persistable type has a unique
type tag and registers a deserializer for it; records are JSON bytes.
"""

import base64
import binascii
import json
import os
from abc import ABC, abstractmethod
from typing import Callable


class Persistable(ABC):
    """Capability: can be written out and read back through the registry."""

    @abstractmethod
    def serializer_type(self) -> str:
        """Unique type tag used to find the deserializer."""
        ...

    @abstractmethod
    def serialize(self) -> bytes:
        ...


class DeserializeError(ValueError):
    """Malformed or truncated record. The message carries the failing operation."""


def add_context(context: str, err: Exception) -> DeserializeError:
    """Wrap err as a DeserializeError prefixed with context (e.g. "deserialize MaxPool")."""
    return DeserializeError(f"{context}: {err}")


# =============================================================================
# Type registry
# =============================================================================

_REGISTRY: dict[str, Callable[[bytes], object]] = {}


def register_deserializer(type_id: str, fn: Callable[[bytes], object]) -> None:
    """Register the deserializer for a type tag."""
    _REGISTRY[type_id] = fn


def get_deserializer(type_id: str) -> Callable[[bytes], object]:
    """Return the deserializer for type_id. Raises KeyError if unknown."""
    if type_id not in _REGISTRY:
        raise KeyError(f"Unknown serializer type: {type_id}. Registered: {sorted(_REGISTRY)}")
    return _REGISTRY[type_id]


# =============================================================================
# Records
# =============================================================================

def _decode_json(data: bytes):
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DeserializeError(f"invalid record: {e}") from e


def serialize_ints(*values: int) -> bytes:
    return json.dumps([int(v) for v in values]).encode("utf-8")


def deserialize_ints(data: bytes, count: int) -> list[int]:
    """Decode exactly count integers. Raises DeserializeError otherwise."""
    values = _decode_json(data)
    if not isinstance(values, list) or len(values) != count:
        got = len(values) if isinstance(values, list) else type(values).__name__
        raise DeserializeError(f"expected {count} fields, got {got}")
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        raise DeserializeError("expected integer fields")
    return values


def serialize_dict(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


def deserialize_dict(data: bytes, keys: tuple[str, ...]) -> dict:
    """Decode a JSON object that must contain every key in keys."""
    payload = _decode_json(data)
    if not isinstance(payload, dict):
        raise DeserializeError("expected an object record")
    missing = [k for k in keys if k not in payload]
    if missing:
        raise DeserializeError(f"missing fields: {missing}")
    return payload


def _envelope(obj) -> dict:
    return {
        "type": obj.serializer_type(),
        "data": base64.b64encode(obj.serialize()).decode("ascii"),
    }


def _open_envelope(entry):
    if not isinstance(entry, dict) or "type" not in entry or "data" not in entry:
        raise DeserializeError("expected a typed entry")
    try:
        payload = base64.b64decode(entry["data"], validate=True)
    except (binascii.Error, TypeError) as e:
        raise DeserializeError(f"invalid payload: {e}") from e
    return get_deserializer(entry["type"])(payload)


def serialize_with_type(obj) -> bytes:
    """Encode obj together with its type tag."""
    return json.dumps(_envelope(obj)).encode("utf-8")


def deserialize_with_type(data: bytes):
    """Decode a record written by serialize_with_type via the registered deserializer."""
    return _open_envelope(_decode_json(data))


def serialize_slice(objs) -> bytes:
    return json.dumps([_envelope(o) for o in objs]).encode("utf-8")


def deserialize_slice(data: bytes) -> list:
    entries = _decode_json(data)
    if not isinstance(entries, list):
        raise DeserializeError("expected a list record")
    return [_open_envelope(e) for e in entries]


def save(path: str, obj) -> None:
    """Write obj (with its type tag) to path, creating parent dirs."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "wb") as f:
        f.write(serialize_with_type(obj))


def load(path: str):
    """Load an object written by save(). Raises FileNotFoundError if missing."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Model not found: {path}")
    with open(path, "rb") as f:
        return deserialize_with_type(f.read())
