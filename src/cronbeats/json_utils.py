from __future__ import annotations

from collections.abc import Mapping, Sequence
from json import JSONDecodeError
from typing import Protocol

JSONValue = dict[str, "JSONValue"] | list["JSONValue"] | str | int | float | bool | None

JSONObject = dict[str, JSONValue]

# Input type for dump_json_str. Using object allows any JSON-serializable value
# since we only serialize (read) the data.
_JSONInputValue = str | int | float | bool | None | Mapping[str, object] | Sequence[object]

INVALID_JSON_MESSAGE = "Invalid JSON response"


class InvalidJsonError(ValueError):
    """Raised when JSON parsing fails."""


class _JsonLoads(Protocol):
    def __call__(self, s: str) -> JSONValue: ...


class _JsonDumps(Protocol):
    def __call__(
        self,
        obj: _JSONInputValue,
        *,
        separators: tuple[str, str] | None = ...,
        indent: int | None = ...,
    ) -> str: ...


def dump_json_str(value: _JSONInputValue, *, compact: bool = True) -> str:
    """Serialize a JSON-compatible value to a JSON string.

    Args:
        value: JSON-serializable value
        compact: If True (default), produce compact JSON without extra whitespace.
    """
    module = __import__("json")
    dumps: _JsonDumps = module.dumps
    if compact:
        return dumps(value, separators=(",", ":"), indent=None)
    return dumps(value, separators=None, indent=None)


def load_json_str(raw: str) -> JSONValue:
    module = __import__("json")
    loads: _JsonLoads = module.loads
    # Oversized integer literals raise ValueError, deep nesting RecursionError.
    try:
        value = loads(raw)
    except (JSONDecodeError, ValueError, RecursionError) as exc:
        raise InvalidJsonError("Invalid JSON payload") from exc
    if isinstance(value, (dict, list, str, int, float, bool)) or value is None:
        return value
    raise InvalidJsonError("Invalid JSON payload")


def load_json_object_or_default(raw: str) -> JSONObject:
    """Decode a response body into a JSON object without ever raising.

    Unparseable text yields ``{"message": "Invalid JSON response"}``; valid JSON
    that is not an object (array, scalar, null) yields an empty object.
    """
    try:
        parsed = load_json_str(raw)
    except InvalidJsonError:
        return {"message": INVALID_JSON_MESSAGE}
    if isinstance(parsed, dict):
        return parsed
    return {}


__all__ = [
    "INVALID_JSON_MESSAGE",
    "InvalidJsonError",
    "JSONObject",
    "JSONValue",
    "dump_json_str",
    "load_json_object_or_default",
    "load_json_str",
]
