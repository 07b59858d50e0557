"""Containment queries over arbitrarily nested decoded JSON values.

Decoded content is one of: None, bool, int/float, str, list (ordered sequence)
or dict (keyed mapping). Every query here is total over those shapes.
"""
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Tuple


@dataclass
class Match:
    """Result of a first-match search."""
    found: bool
    property_name: Optional[str] = None


NO_MATCH = Match(found=False)


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _scalar_equals(value: Any, target: Any) -> bool:
    """Compare two terminal values without letting True == 1 slip through."""
    if isinstance(value, bool) or isinstance(target, bool):
        return isinstance(value, bool) and isinstance(target, bool) and value == target
    return value == target


def _children(value: Any, property_name: Optional[str]) -> Iterator[Tuple[Optional[str], Any]]:
    """(key, item) pairs of a container; sequence items carry `property_name`."""
    if isinstance(value, dict):
        return iter(value.items())
    return ((property_name, item) for item in value)


def contains_key(value: Any, key: str) -> bool:
    """Check whether `key` is a property name anywhere inside `value`.

    Args:
        value: Decoded JSON value
        key: Property name to look for

    Returns:
        True on the first mapping that owns `key`; scalars never match
    """
    pending = [value] if _is_container(value) else []
    while pending:
        current = pending.pop()
        if isinstance(current, dict):
            if key in current:
                return True
            pending.extend(item for item in current.values() if _is_container(item))
        else:
            pending.extend(item for item in current if _is_container(item))
    return False


def contains_value(value: Any, target: Any) -> bool:
    """Check whether `target` occurs as a terminal value anywhere inside `value`.

    A scalar `value` matches only when it equals `target` itself.
    Empty containers never match.
    """
    pending = [value]
    while pending:
        current = pending.pop()
        if isinstance(current, dict):
            pending.extend(current.values())
        elif isinstance(current, list):
            pending.extend(current)
        elif _scalar_equals(current, target):
            return True
    return False


def find_first_match(value: Any, target: Any, property_name: Optional[str] = None) -> Match:
    """Depth-first search for `target`, reporting the nearest enclosing mapping key.

    The reported name is the key under which the container holding the
    matching terminal value sits, so `{"_spriteFrame": {"__uuid__": X}}`
    matches X as `_spriteFrame`. Sequence items inherit the key of the
    sequence. Mapping keys are visited in enumeration order and sequence items
    in index order; the first hit wins, which is not necessarily the shallowest.

    The walk keeps its own stack, so nesting depth is limited by memory only.

    Args:
        value: Decoded JSON value to search
        target: Terminal value to find
        property_name: Key under which `value` sits (None at the top level)

    Returns:
        Match with `found` and the matched property name
    """
    if not _is_container(value):
        return Match(found=True) if _scalar_equals(value, target) else NO_MATCH

    # (remaining children, key the container sits under)
    stack = [(_children(value, property_name), property_name)]
    while stack:
        items, owner = stack[-1]
        for key, item in items:
            if _is_container(item):
                stack.append((_children(item, key), key))
                break
            if _scalar_equals(item, target):
                return Match(found=True, property_name=owner)
        else:
            stack.pop()
    return NO_MATCH
