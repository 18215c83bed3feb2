"""JSON-safe serialization of arbitrary runtime values.

Trace records carry inputs, outputs and metadata captured from the observed
application, so anything can end up here: cyclic object graphs, exceptions,
bytes, enums, pydantic models, objects with hostile accessors. Serialization
must always terminate and never raise.
"""

import array
import json
import math
from collections.abc import Callable, Mapping, Sequence, Set
from datetime import date, datetime, time
from enum import Enum
from types import ModuleType
from typing import Any

from pydantic import BaseModel

MAX_SAFE_INTEGER = 2**53 - 1
"""Largest integer a JSON consumer can represent exactly as a double."""

CYCLE_SENTINEL = "<Object>"
BYTES_SENTINEL = "<not serializable bytes>"


def not_serializable(value: Any) -> str:
    """Sentinel used when a value cannot be inspected at all."""
    return f"<not serializable object of type: {type(value).__name__}>"


def _decode_bytes(value: bytes | bytearray | memoryview | array.array) -> str:
    raw = value.tobytes() if isinstance(value, (memoryview, array.array)) else bytes(value)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return BYTES_SENTINEL


class EventSerializer:
    """Converts values into structures ``json.dumps`` accepts.

    Containers currently being traversed are tracked by identity, so a
    self-reference renders as ``CYCLE_SENTINEL`` while a value shared by two
    siblings is serialized twice. The tracking set is reset by every public
    ``default``/``encode`` call, so one instance can be reused safely.
    """

    def __init__(self) -> None:
        self._seen: set[int] = set()

    def default(self, obj: Any) -> Any:
        """Serialize a value to its JSON-compatible representation."""
        self._seen = set()
        return self._convert(obj)

    def encode(self, obj: Any) -> str:
        """Encode a value to JSON text. Never raises."""
        try:
            return json.dumps(self.default(obj), ensure_ascii=False)
        except Exception:
            return json.dumps(not_serializable(obj))

    def _convert(self, obj: Any) -> Any:
        try:
            return self._convert_value(obj)
        except Exception:
            return not_serializable(obj)

    def _convert_value(self, obj: Any) -> Any:  # noqa: PLR0911
        # Enum first: IntEnum/StrEnum members are also ints and strs
        if isinstance(obj, Enum):
            return self._convert(obj.value)
        if obj is None or isinstance(obj, (str, bool)):
            return obj
        if isinstance(obj, int):
            return obj if -MAX_SAFE_INTEGER <= obj <= MAX_SAFE_INTEGER else str(obj)
        if isinstance(obj, float):
            if not math.isfinite(obj):
                return None
            if abs(obj) <= MAX_SAFE_INTEGER:
                return obj
            return str(int(obj)) if obj.is_integer() else str(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, BaseException):
            return f"{type(obj).__name__}: {obj}"
        if isinstance(obj, (bytes, bytearray, memoryview, array.array)):
            return _decode_bytes(obj)
        if isinstance(obj, BaseModel):
            return self._visit(obj, lambda: self._convert_mapping(dict(obj)))
        if isinstance(obj, dict):
            return self._visit(obj, lambda: self._convert_public(obj))
        if isinstance(obj, Mapping):
            return self._visit(obj, lambda: self._convert_mapping(obj))
        if isinstance(obj, (Set, Sequence)):
            return self._visit(obj, lambda: [self._convert(item) for item in obj])
        if isinstance(obj, (type, ModuleType)) or callable(obj):
            return f"<{type(obj).__name__}>"
        return self._convert_object(obj)

    def _convert_mapping(self, mapping: Mapping[Any, Any]) -> dict[str, Any]:
        return {str(key): self._convert(value) for key, value in mapping.items()}

    def _convert_object(self, obj: Any) -> Any:
        attributes = getattr(obj, "__dict__", None)
        if not isinstance(attributes, Mapping):
            return f"<{type(obj).__name__}>"
        return self._visit(obj, lambda: self._convert_public(attributes))

    def _convert_public(self, attributes: Mapping[Any, Any]) -> Any:
        public = {key: value for key, value in attributes.items() if not str(key).startswith("_")}
        # Enum-like wrappers collapse to their payload; nothing broader.
        if public.keys() == {"value"}:
            return self._convert(public["value"])
        return self._convert_mapping(public)

    def _visit(self, obj: Any, build: Callable[[], Any]) -> Any:
        key = id(obj)
        if key in self._seen:
            return CYCLE_SENTINEL
        self._seen.add(key)
        try:
            return build()
        finally:
            self._seen.discard(key)


def serialize_to_str(value: Any) -> str:
    """Strings pass through unchanged; everything else becomes JSON text."""
    if isinstance(value, str):
        return value
    return EventSerializer().encode(value)


def safe_stringify(value: Any, indent: int | None = None) -> str:
    """Like ``serialize_to_str`` but always JSON, optionally pretty-printed."""
    try:
        return json.dumps(EventSerializer().default(value), indent=indent, ensure_ascii=False)
    except Exception:
        return json.dumps(not_serializable(value))


def convert_to_string_dict(metadata: Mapping[str, Any] | None) -> dict[str, str]:
    """Stringify metadata values: None becomes "", strings are kept, the rest is JSON."""
    if not metadata:
        return {}
    result: dict[str, str] = {}
    for key, value in metadata.items():
        if value is None:
            result[str(key)] = ""
        else:
            result[str(key)] = serialize_to_str(value)
    return result
