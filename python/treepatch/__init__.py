from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from treepatch.errors import (
    BatchError,
    ParseError,
    PatchError,
    PathError,
    ShapeError,
    UnsupportedOperationError,
)
from treepatch.models import PatchOperation, UITree
from treepatch.narrative import parse_blocks, parse_inline, render_narrative
from treepatch.patch.engine import apply_patch, apply_patches, build_tree
from treepatch.stream import StreamClassifier, aclassify_stream, classify_stream

try:
    __version__ = version("treepatch")
except PackageNotFoundError:
    # Running from a source checkout without an install.
    _version_file = Path(__file__).parent / "VERSION"
    if _version_file.is_file():
        __version__ = _version_file.read_text().strip()
    else:
        __version__ = "0.0.0-dev"

__all__ = [
    "UITree",
    "PatchOperation",
    "apply_patch",
    "apply_patches",
    "build_tree",
    "StreamClassifier",
    "classify_stream",
    "aclassify_stream",
    "parse_blocks",
    "parse_inline",
    "render_narrative",
    "PatchError",
    "ParseError",
    "ShapeError",
    "PathError",
    "UnsupportedOperationError",
    "BatchError",
    "__version__",
]
