"""
Schema-tolerant accessors for store JSON documents.

Launchers change their JSON layouts between versions; every accessor here
returns a default instead of raising when a key is missing or has the wrong
type. Numbers and booleans stored as strings are accepted.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple


def get_path(obj: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a step is missing."""
    current = obj
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def get_str(obj: Any, *keys: str) -> Optional[str]:
    """First non-blank string among ``keys`` (numbers are stringified)."""
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def get_bool(obj: Any, key: str) -> Optional[bool]:
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def get_str_list(obj: Any, key: str) -> List[str]:
    """Strings of an array field; a lone string becomes a one-item list."""
    if not isinstance(obj, dict):
        return []
    value = obj.get(key)
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def get_dict(obj: Any, key: str) -> Dict[str, Any]:
    value = obj.get(key) if isinstance(obj, dict) else None
    return value if isinstance(value, dict) else {}


def iter_strings(obj: Any) -> Iterator[Tuple[str, Optional[Dict[str, Any]]]]:
    """Yield every string in a JSON tree together with the dict that holds it.

    Traversal is depth-first in document order, so results are deterministic.
    """
    stack: List[Tuple[Any, Optional[Dict[str, Any]]]] = [(obj, None)]
    while stack:
        node, parent = stack.pop()
        if isinstance(node, str):
            yield node, parent
        elif isinstance(node, dict):
            for value in reversed(list(node.values())):
                stack.append((value, node))
        elif isinstance(node, list):
            for value in reversed(node):
                stack.append((value, parent))
