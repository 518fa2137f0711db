"""
Element removal with referential cleanup.

Ownership is reachability through `children`; `parentKey` is advisory and is
only ever cleaned up here, never followed.
"""

from typing import Any, Dict, Set

import structlog

from treepatch.errors import PathError

logger = structlog.get_logger(__name__)

ELEMENTS_PREFIX = "/elements/"


def element_key_from_path(path: str) -> str:
    """'/elements/card' -> 'card'. Any other shape is a PathError."""
    if not path.startswith(ELEMENTS_PREFIX):
        raise PathError(f"remove only supports element removal (/elements/{{key}}), got {path}")
    key = path[len(ELEMENTS_PREFIX) :]
    if not key or "/" in key:
        raise PathError(f"remove only supports element removal (/elements/{{key}}), got {path}")
    return key


def collect_subtree_keys(elements: Dict[str, Any], key: str) -> Set[str]:
    """
    Returns `key` plus every key reachable from it via `children`.
    Cycles and missing elements are tolerated.
    """
    visited: Set[str] = set()
    stack = [key]

    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)

        element = elements.get(current)
        if not isinstance(element, dict):
            continue
        children = element.get("children")
        if not isinstance(children, list):
            continue
        for child_key in children:
            if isinstance(child_key, str):
                stack.append(child_key)

    return visited


def remove_element(snapshot: Dict[str, Any], key: str) -> Set[str]:
    """
    Removes `key` and its subtree from `snapshot` in place.

    Surviving `children` lists drop every removed key (order kept), a dangling
    `parentKey` becomes None, and `root` is emptied if it was removed.
    Returns the removed key set.
    """
    elements = snapshot.get("elements")
    if not isinstance(elements, dict):
        elements = {}
        snapshot["elements"] = elements

    removed = collect_subtree_keys(elements, key)
    for k in removed:
        elements.pop(k, None)

    for element in elements.values():
        if not isinstance(element, dict):
            continue
        children = element.get("children")
        if isinstance(children, list):
            element["children"] = [c for c in children if isinstance(c, str) and c not in removed]
        parent_key = element.get("parentKey")
        if isinstance(parent_key, str) and parent_key in removed:
            # Soft null: keep the field, clear the reference.
            element["parentKey"] = None

    if snapshot.get("root") in removed:
        snapshot["root"] = ""

    logger.debug("Removed elements", key=key, removed=sorted(removed))
    return removed
