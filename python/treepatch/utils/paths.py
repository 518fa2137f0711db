"""
Slash-delimited path access over nested JSON values (dicts and lists).

Used by the patch engine for every `set`/`add`/`replace`. The resolver has no
knowledge of the UITree layout; `/root`, `/elements/{key}/props/title` and
`/anything/else` are all just paths.
"""

from typing import Any, List

from treepatch.errors import PathError

# Appends to a list when used as the final (or intermediate) list segment.
APPEND_SEGMENT = "-"


def split_path(path: str) -> List[str]:
    """
    Splits '/elements/card/props/title' into ['elements', 'card', 'props', 'title'].
    Raises PathError for '', '/', or a path that does not start with '/'.
    """
    if not isinstance(path, str) or not path:
        raise PathError("path must be a non-empty string")
    if not path.startswith("/"):
        raise PathError(f"path must start with '/': {path!r}")

    segments = path[1:].split("/")
    if segments == [""]:
        raise PathError("path must contain at least one segment")
    return segments


def _list_index(container: list, segment: str, path: str, allow_append: bool) -> int:
    if segment == APPEND_SEGMENT and allow_append:
        return len(container)
    if not segment.isdigit():
        raise PathError(f"invalid list index {segment!r} in {path}")
    idx = int(segment)
    limit = len(container) if allow_append else len(container) - 1
    if idx > limit:
        raise PathError(f"list index {idx} out of range in {path}")
    return idx


def get_by_path(root: Any, path: str) -> Any:
    """
    Returns the value at `path`, or None when any segment is missing.
    Never raises for a missing path; a malformed path is still a PathError.
    """
    current = root
    for segment in split_path(path):
        if isinstance(current, dict):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit() or int(segment) >= len(current):
                return None
            current = current[int(segment)]
        else:
            return None
    return current


def set_by_path(root: Any, path: str, value: Any) -> None:
    """
    Writes `value` at `path` in place, replacing whatever was there.

    Missing intermediate segments become dicts. Numeric segments index into
    lists that already exist; on a dict they are ordinary keys.
    """
    segments = split_path(path)
    if not isinstance(root, (dict, list)):
        raise PathError(f"cannot write {path} into a {type(root).__name__}")

    current = root
    for segment in segments[:-1]:
        if isinstance(current, list):
            idx = _list_index(current, segment, path, allow_append=True)
            if idx == len(current):
                current.append({})
            elif not isinstance(current[idx], (dict, list)):
                current[idx] = {}
            current = current[idx]
        else:
            nxt = current.get(segment)
            if not isinstance(nxt, (dict, list)):
                nxt = {}
                current[segment] = nxt
            current = nxt

    last = segments[-1]
    if isinstance(current, list):
        idx = _list_index(current, last, path, allow_append=True)
        if idx == len(current):
            current.append(value)
        else:
            current[idx] = value
    else:
        current[last] = value
