import copy
from typing import Iterable, List, Optional, Tuple, Union

import structlog

from treepatch.errors import BatchError, PatchError, ShapeError, UnsupportedOperationError
from treepatch.models import OperationLike, OperationType, PatchOperation, UITree
from treepatch.patch.cascade import element_key_from_path, remove_element
from treepatch.utils.paths import set_by_path

logger = structlog.get_logger(__name__)

COMMENT_MARKER = "//"

Script = Union[str, Iterable[str]]


def coerce_operation(operation: OperationLike) -> PatchOperation:
    """Accepts a PatchOperation, a decoded dict, or a raw JSON line."""
    if isinstance(operation, PatchOperation):
        return operation
    if isinstance(operation, str):
        return PatchOperation.from_line(operation.strip())
    if isinstance(operation, dict):
        return PatchOperation.from_obj(operation)
    raise ShapeError(f"cannot apply a {type(operation).__name__} as a patch")


def apply_patch(tree: UITree, operation: OperationLike) -> UITree:
    """
    Applies one operation and returns the next tree generation.

    set/add/replace write `value` at `path` (replace semantics, intermediate
    objects created). remove deletes `/elements/{key}` and everything reachable
    from it. The input tree is never touched; on error nothing is returned and
    the caller keeps using `tree`.
    """
    op = coerce_operation(operation)
    snapshot = tree.to_dict()

    if op.op == OperationType.REMOVE:
        key = element_key_from_path(op.path)
        remove_element(snapshot, key)
    elif op.op in OperationType.WRITES:
        set_by_path(snapshot, op.path, copy.deepcopy(op.value))
    else:
        raise UnsupportedOperationError(f"unsupported op: {op.op!r}")

    logger.debug("Applied patch", op=op.op, path=op.path, generation=tree.generation + 1)
    return tree.derive(snapshot)


def _iter_script_lines(script: Script) -> Iterable[Tuple[int, str]]:
    lines = script.split("\n") if isinstance(script, str) else script
    for number, line in enumerate(lines, start=1):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(COMMENT_MARKER):
            continue
        yield number, trimmed


def apply_patches_report(tree: UITree, script: Script) -> Tuple[UITree, int]:
    """
    Applies a multi-line script atomically. Returns (new_tree, applied_count).

    Raises BatchError on the first failing line; lines after it are not tried
    and no intermediate generation escapes.
    """
    current = tree
    applied = 0
    for number, line in _iter_script_lines(script):
        try:
            current = apply_patch(current, line)
        except PatchError as e:
            logger.warning(f"Batch aborted at line {number}: {e}", line=line[:80])
            raise BatchError(e, line=line, line_number=number) from e
        applied += 1

    logger.info(f"Applied {applied} patches")
    return current, applied


def apply_patches(tree: UITree, script: Script) -> UITree:
    """All-or-nothing batch apply. See apply_patches_report."""
    new_tree, _ = apply_patches_report(tree, script)
    return new_tree


def build_tree(script: Script, tree: Optional[UITree] = None) -> UITree:
    """
    Builds an initial tree from a patch script, leniently.

    Unlike apply_patches, lines that fail to decode or apply are skipped with a
    warning. Used to load a starting document from a saved script.
    """
    current = tree if tree is not None else UITree.empty()
    skipped: List[int] = []
    for number, line in _iter_script_lines(script):
        try:
            current = apply_patch(current, line)
        except PatchError as e:
            logger.warning(f"Skipping line {number}: {e}")
            skipped.append(number)

    if skipped:
        logger.info(f"Built tree with {len(skipped)} skipped lines", skipped=skipped)
    return current
