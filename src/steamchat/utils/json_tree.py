"""Typed lookups over decoded JSON documents.

Steam's web endpoints are loose about types: fields go missing, empty
strings stand in for absent values and booleans sometimes arrive as strings.
These helpers return ``None`` (or ``False``) instead of raising so response
parsers can stay total over every shape the servers produce.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional, Tuple


class JsonTreeError(ValueError):
    """Raised when a response body is not valid JSON."""


def loads(body: Optional[str]) -> Any:
    """Decode a response body, raising JsonTreeError on malformed input."""

    if body is None:
        raise JsonTreeError("Parser: empty response body")
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise JsonTreeError(f"Parser: {exc.msg} at line {exc.lineno} column {exc.colno}") from exc


def get_value(data: Any, name: str, kind: type | Tuple[type, ...]) -> Any:
    """Return ``data[name]`` when data is an object and the value has ``kind``."""

    if not isinstance(data, Mapping):
        return None
    value = data.get(name)
    if value is None:
        return None
    # bool is an int subclass; never let one stand in for the other
    if isinstance(value, bool) and kind is not bool and not (
        isinstance(kind, tuple) and bool in kind
    ):
        return None
    if not isinstance(value, kind):
        return None
    return value


def get_object(data: Any, name: str) -> Optional[Dict[str, Any]]:
    return get_value(data, name, dict)


def get_array(data: Any, name: str) -> Optional[list]:
    return get_value(data, name, list)


def get_bool(data: Any, name: str) -> bool:
    return bool(get_value(data, name, bool))


def get_int(data: Any, name: str) -> Optional[int]:
    return get_value(data, name, int)


def get_str(data: Any, name: str) -> Optional[str]:
    """Return a non-empty string field, or None."""

    value = get_value(data, name, str)
    if not value:
        return None
    return value


def str_equals(data: Any, name: str, match: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Compare a string field case-insensitively.

    Returns ``(matched, value)`` so callers can report the actual value when
    it does not match.
    """

    value = get_str(data, name)
    if value is None or match is None:
        return False, value
    return value.casefold() == match.casefold(), value


def _scalar_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"{value:f}"
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    return None


def _flatten_into(tree: Dict[str, str], keys: Dict[str, str], key: Optional[str], value: Any) -> None:
    if isinstance(value, Mapping):
        for child_key, child in value.items():
            _flatten_into(tree, keys, child_key, child)
        return
    if isinstance(value, list):
        for child in value:
            _flatten_into(tree, keys, key, child)
        return
    text = _scalar_text(value)
    if text is None or key is None:
        return

    folded = key.casefold()
    existing_key = keys.get(folded)
    if existing_key is None:
        keys[folded] = key
        tree[key] = text
    else:
        tree[existing_key] = f"{tree[existing_key]},{text}"


def flatten(data: Any) -> Dict[str, str]:
    """Flatten an object into ``key -> text`` pairs.

    Nested objects contribute their own keys, arrays repeat their parent key,
    and repeated keys (compared case-insensitively) are joined with commas.
    """

    tree: Dict[str, str] = {}
    if isinstance(data, Mapping):
        _flatten_into(tree, {}, None, data)
    return tree
