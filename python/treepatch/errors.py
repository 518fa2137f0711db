"""
Error taxonomy for patch application.

Every failure raises. Callers keep their last-known-good UITree when one of
these escapes; the engine never hands back a partially mutated generation.
"""

from typing import Optional


class PatchError(Exception):
    """Base class for every failure raised while decoding or applying a patch."""

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def __str__(self) -> str:
        return self.message


class ParseError(PatchError):
    """The line is not valid JSON."""


class ShapeError(PatchError):
    """Valid JSON, but `op`/`path` are missing or not strings."""


class PathError(PatchError):
    """Empty or malformed path, unwritable segment, or a non-element `remove`."""


class UnsupportedOperationError(PatchError):
    """`op` is a string but not one of set/add/replace/remove."""


class BatchError(PatchError):
    """
    First failing line of a batch.

    Carries the offending raw line, its 1-based position in the script and the
    underlying error so the caller can report it and keep its previous tree.
    """

    def __init__(self, cause: PatchError, line: str, line_number: int):
        super().__init__(f"line {line_number}: {cause.message}", line=line)
        self.cause = cause
        self.line_number = line_number
