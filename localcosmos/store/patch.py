"""
Patch Engine.

Applies an ordered batch of structural edits to a document. The batch is
all-or-nothing: operations run against a private copy that is returned
only if every operation succeeds.

Author: LocalCosmos Team
Date: 2026-10-19
"""

import copy
import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .documents import (
    END_OF_SEQUENCE,
    SYSTEM_PROPERTIES,
    array_index,
    find_invalid_value,
    format_path,
    get_value,
    is_missing,
    is_number,
    parse_path,
)
from .exceptions import InvalidPatchError
from .models import PatchOperation, parse_patch_operations

logger = logging.getLogger(__name__)


def apply_patch(
    document: Dict[str, Any],
    operations: Sequence[Union[PatchOperation, Mapping[str, Any]]],
    protected_paths: Iterable[str] = (),
    max_operations: Optional[int] = None
) -> Dict[str, Any]:
    """Apply a patch batch to a document.

    Args:
        document: Document to patch; never modified
        operations: Ordered patch operations
        protected_paths: Paths that may not be touched, along with their
            parents and children
        max_operations: Maximum batch size, if limited

    Returns:
        Patched copy of the document

    Raises:
        InvalidPatchError: On the first operation that cannot be applied
    """
    batch = parse_patch_operations(operations)
    if not batch:
        raise InvalidPatchError("patch batch is empty")
    if max_operations is not None and len(batch) > max_operations:
        raise InvalidPatchError(
            f"batch has {len(batch)} operations; at most {max_operations} are allowed"
        )

    protected = [parse_path(path) for path in protected_paths]
    result = copy.deepcopy(document)

    for index, operation in enumerate(batch):
        try:
            segments = parse_path(operation.path)
            _check_protected(segments, protected)
            _HANDLERS[operation.op](result, segments, operation)
        except ValueError as e:
            logger.debug(f"Patch operation #{index} ({operation.op} {operation.path}) rejected: {e}")
            raise InvalidPatchError(
                str(e),
                index=index,
                operation=operation.op,
                path=operation.path
            ) from None

    return result


def _check_protected(segments: List[str], protected: List[List[str]]) -> None:
    if segments[0] in SYSTEM_PROPERTIES:
        raise ValueError(f"'{segments[0]}' is a system property")
    for path in protected:
        shorter = min(len(path), len(segments))
        if path[:shorter] == segments[:shorter]:
            raise ValueError(f"'{format_path(path)}' cannot be patched")


def _value_of(operation: PatchOperation) -> Any:
    value = getattr(operation, "value")
    problem = find_invalid_value(value)
    if problem:
        raise ValueError(f"value is not valid JSON: {problem}")
    return copy.deepcopy(value)


def _parent(document: Dict[str, Any], segments: List[str], create: bool) -> Tuple[Any, str]:
    """Walk to the container holding the last segment.

    Args:
        document: Document being patched
        segments: Target path segments
        create: Create missing intermediate objects

    Raises:
        ValueError: If an intermediate segment is missing or not a container
    """
    current: Any = document
    for depth, segment in enumerate(segments[:-1]):
        if isinstance(current, dict):
            if segment not in current:
                if not create:
                    raise ValueError(f"'{format_path(segments[:depth + 1])}' does not exist")
                current[segment] = {}
            current = current[segment]
        elif isinstance(current, list):
            current = current[array_index(segment, len(current))]
        else:
            raise ValueError(
                f"'{format_path(segments[:depth])}' is a {_type_name(current)}, not an object or array"
            )

    if not isinstance(current, (dict, list)):
        raise ValueError(
            f"'{format_path(segments[:-1])}' is a {_type_name(current)}, not an object or array"
        )
    return current, segments[-1]


def _add(document: Dict[str, Any], segments: List[str], operation: PatchOperation) -> None:
    if segments[-1] == END_OF_SEQUENCE:
        _append(document, segments, operation)
        return

    value = _value_of(operation)
    parent, key = _parent(document, segments, create=True)
    if isinstance(parent, dict):
        parent[key] = value
    else:
        parent.insert(array_index(key, len(parent), allow_end=True), value)


def _set(document: Dict[str, Any], segments: List[str], operation: PatchOperation) -> None:
    value = _value_of(operation)
    parent, key = _parent(document, segments, create=True)
    if isinstance(parent, dict):
        parent[key] = value
        return

    position = array_index(key, len(parent), allow_end=True)
    if position == len(parent):
        parent.append(value)
    else:
        parent[position] = value


def _replace(document: Dict[str, Any], segments: List[str], operation: PatchOperation) -> None:
    value = _value_of(operation)
    parent, key = _parent(document, segments, create=False)
    if isinstance(parent, dict):
        if key not in parent:
            raise ValueError(f"'{format_path(segments)}' does not exist")
        parent[key] = value
    else:
        parent[array_index(key, len(parent))] = value


def _remove(document: Dict[str, Any], segments: List[str], operation: PatchOperation) -> None:
    parent, key = _parent(document, segments, create=False)
    if isinstance(parent, dict):
        if key not in parent:
            raise ValueError(f"'{format_path(segments)}' does not exist")
        del parent[key]
    else:
        parent.pop(array_index(key, len(parent)))


def _increment(document: Dict[str, Any], segments: List[str], operation: PatchOperation) -> None:
    amount = getattr(operation, "value")
    if not is_number(amount):
        raise ValueError(f"increment value must be a number, got {_type_name(amount)}")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValueError("increment value must be a finite number")

    parent, key = _parent(document, segments, create=False)
    if isinstance(parent, dict):
        if key not in parent:
            parent[key] = amount
            return
        position: Union[str, int] = key
    else:
        position = array_index(key, len(parent))

    current = parent[position]
    if not is_number(current):
        raise ValueError(f"'{format_path(segments)}' is a {_type_name(current)}, not a number")
    try:
        total = current + amount
    except OverflowError:
        raise ValueError(f"incrementing '{format_path(segments)}' overflows a number") from None
    if isinstance(total, float) and not math.isfinite(total):
        raise ValueError(f"incrementing '{format_path(segments)}' gives a non-finite number")
    parent[position] = total


def _append(document: Dict[str, Any], segments: List[str], operation: PatchOperation) -> None:
    if segments[-1] == END_OF_SEQUENCE:
        segments = segments[:-1]
    if not segments:
        raise ValueError("append requires a path to an array")

    value = _value_of(operation)
    target = get_value(document, segments)
    if is_missing(target):
        raise ValueError(f"'{format_path(segments)}' does not exist")
    if not isinstance(target, list):
        raise ValueError(f"'{format_path(segments)}' is a {_type_name(target)}, not an array")
    target.append(value)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


_HANDLERS: Dict[str, Callable[[Dict[str, Any], List[str], PatchOperation], None]] = {
    "add": _add,
    "set": _set,
    "replace": _replace,
    "remove": _remove,
    "increment": _increment,
    "append": _append,
}
