"""
JSON merge patch (RFC 7386) generation for versioned resources.
"""

import copy
import json
from typing import Any, Callable, Dict

from errors import SerializationError

EMPTY_PATCH = b"{}"


def _encode(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)


def create_merge_patch(original: Any, modified: Any) -> Any:
    """
    Build the merge patch that turns ``original`` into ``modified``.

    Objects are diffed key by key; every other value, lists included, is
    replaced whole. Keys missing from ``modified`` are set to None.
    """
    if not isinstance(original, dict) or not isinstance(modified, dict):
        return modified

    patch: Dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None

    for key, value in modified.items():
        if key not in original:
            # null cannot be added through a merge patch
            if value is not None:
                patch[key] = value
            continue
        old = original[key]
        if old == value:
            continue
        if isinstance(old, dict) and isinstance(value, dict):
            patch[key] = create_merge_patch(old, value)
        else:
            patch[key] = value
    return patch


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Apply a merge patch to ``target`` and return the result as a new value."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)

    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result


def compute_delta(
    current: Dict[str, Any], transform: Callable[[Dict[str, Any]], Any]
) -> bytes:
    """
    Compute the byte-encoded merge patch produced by ``transform``.

    ``transform`` mutates a deep copy of ``current``; the caller's value is
    never touched.

    Args:
        current: Resource representation as read from the API
        transform: Function that mutates its argument into the target state

    Returns:
        Compact, key-sorted JSON; ``b"{}"`` when nothing changes

    Raises:
        SerializationError: If either representation cannot be encoded
    """
    desired = copy.deepcopy(current)
    transform(desired)

    try:
        original_json = _encode(current)
        desired_json = _encode(desired)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"cannot encode resource: {e}") from e

    delta = create_merge_patch(json.loads(original_json), json.loads(desired_json))
    return _encode(delta).encode("utf-8")
