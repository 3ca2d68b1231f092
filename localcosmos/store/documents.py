"""
Document values and paths.

Helpers for the JSON object model documents are stored in: value
validation, structural equality, canonical encoding, and slash-delimited
(JSON Pointer style) path addressing.

Author: LocalCosmos Team
Date: 2026-10-19
"""

import json
import math
from typing import Any, Dict, Hashable, List, Optional, Tuple

# Properties owned by the store; never accepted from callers
SYSTEM_PROPERTIES = frozenset({"_rid", "_self", "_etag", "_ts", "_attachments"})

# End-of-sequence marker segment
END_OF_SEQUENCE = "-"

_MISSING = object()


def is_number(value: Any) -> bool:
    """Return True for JSON numbers (bool is not a number)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def find_invalid_value(value: Any, location: str = "") -> Optional[str]:
    """Locate the first value that is not representable as JSON.

    Args:
        value: Value to inspect
        location: Path prefix used in the description

    Returns:
        Description of the offending value, or None if the value is valid
    """
    if value is None or isinstance(value, (bool, int)):
        return None
    if isinstance(value, str):
        return _find_unpaired_surrogate(value, location)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return f"non-finite number at '{location or '/'}'"
        return None
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"non-string key {key!r} at '{location or '/'}'"
            problem = _find_unpaired_surrogate(key, location) or find_invalid_value(item, f"{location}/{key}")
            if problem:
                return problem
        return None
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            problem = find_invalid_value(item, f"{location}/{index}")
            if problem:
                return problem
        return None
    return f"unsupported type {type(value).__name__} at '{location or '/'}'"


def _find_unpaired_surrogate(text: str, location: str) -> Optional[str]:
    # Python strings may hold lone UTF-16 surrogates that UTF-8 cannot encode
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return f"unpaired surrogate in string at '{location or '/'}'"
    return None


def json_equals(left: Any, right: Any) -> bool:
    """Structural equality with JSON typing rules.

    Numbers compare by value regardless of int/float, booleans never equal
    numbers, objects compare member-wise and arrays element-wise.
    """
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(json_equals(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(json_equals(a, b) for a, b in zip(left, right))
    if left is None or right is None:
        return left is None and right is None
    if type(left) is not type(right):
        return False
    return left == right


def sort_key(value: Any) -> Tuple[int, Any]:
    """Ordering key across JSON types: null < bool < number < string."""
    if value is _MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if is_number(value):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    return (4, canonical_json(value))


def canonical_json(value: Any) -> str:
    """Encode a value deterministically (sorted keys, compact separators)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def partition_slot(value: Any) -> Hashable:
    """Hashable key for a partition-key value.

    Keeps ``True``, ``1`` and ``"1"`` in distinct partitions while letting
    ``1`` and ``1.0`` share one.
    """
    if value is None:
        return ("null", None)
    if isinstance(value, bool):
        return ("bool", value)
    if is_number(value):
        try:
            return ("number", float(value))
        except OverflowError:
            raise ValueError("partition key number is out of range") from None
    if isinstance(value, str):
        return ("string", value)
    raise TypeError(f"unsupported partition key value type: {type(value).__name__}")


def parse_path(path: str) -> List[str]:
    """Split a slash path into unescaped segments.

    ``~1`` decodes to ``/`` and ``~0`` to ``~``.

    Raises:
        ValueError: If the path is empty, lacks a leading slash, or has
            an empty segment
    """
    if not isinstance(path, str) or not path.startswith("/"):
        raise ValueError(f"path must start with '/': {path!r}")
    if _find_unpaired_surrogate(path, ""):
        raise ValueError(f"path contains an unpaired surrogate: {path!r}")
    raw_segments = path[1:].split("/")
    if raw_segments == [""]:
        raise ValueError("path must address a property, not the document root")

    segments = []
    for raw in raw_segments:
        if raw == "":
            raise ValueError(f"path contains an empty segment: {path!r}")
        segments.append(raw.replace("~1", "/").replace("~0", "~"))
    return segments


def format_path(segments: List[str]) -> str:
    """Inverse of parse_path."""
    return "".join("/" + s.replace("~", "~0").replace("/", "~1") for s in segments)


def array_index(segment: str, length: int, allow_end: bool = False) -> int:
    """Convert a path segment to a list index.

    Args:
        segment: Path segment
        length: Current list length
        allow_end: Whether ``length`` itself (insert position) is valid

    Raises:
        ValueError: If the segment is not a valid index for the list
    """
    if not (segment.isascii() and segment.isdigit()) or (len(segment) > 1 and segment.startswith("0")):
        raise ValueError(f"'{segment}' is not an array index")
    index = int(segment)
    upper = length if allow_end else length - 1
    if index > upper:
        raise ValueError(f"array index {index} out of range (length {length})")
    return index


def get_value(document: Any, segments: List[str]) -> Any:
    """Resolve a path against a document.

    Returns:
        The addressed value, or the module-level missing sentinel when any
        segment does not resolve (see ``is_missing``)
    """
    current = document
    for segment in segments:
        if isinstance(current, dict):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[array_index(segment, len(current))]
            except ValueError:
                return _MISSING
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    """True if ``value`` is the sentinel returned for unresolved paths."""
    return value is _MISSING


def strip_system_properties(body: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of ``body`` without store-owned properties."""
    return {key: value for key, value in body.items() if key not in SYSTEM_PROPERTIES}
