import copy
import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from treepatch.errors import ParseError, PathError, ShapeError, UnsupportedOperationError


class OperationType:
    """The four wire-level op names. set/add/replace are aliases for a write."""

    SET = "set"
    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"

    WRITES = (SET, ADD, REPLACE)
    ALL = (SET, ADD, REPLACE, REMOVE)


class PatchOperation(BaseModel):
    """
    One line-encoded edit instruction emitted by the generator.
    The engine applies it opaquely; `value` is never inspected.
    """

    op: Literal["set", "add", "replace", "remove"] = Field(..., description="set, add, replace, or remove.")
    path: str = Field(..., description="Slash-delimited target path, e.g. '/elements/card/props/title'.")
    value: Any = Field(None, description="New value. Ignored for remove.")

    @staticmethod
    def looks_like_operation(obj: Any) -> bool:
        """True for a dict whose `op` and `path` are both strings."""
        return isinstance(obj, dict) and isinstance(obj.get("op"), str) and isinstance(obj.get("path"), str)

    @classmethod
    def from_obj(cls, obj: Any, line: Optional[str] = None) -> "PatchOperation":
        if not cls.looks_like_operation(obj):
            raise ShapeError("patch must be a JSON object with string 'op' and 'path'", line=line)

        op = obj["op"]
        path = obj["path"]
        if op not in OperationType.ALL:
            raise UnsupportedOperationError(f"unsupported op: {op!r}", line=line)
        if not path.startswith("/"):
            raise PathError(f"path must start with '/': {path!r}", line=line)

        fields = {"op": op, "path": path}
        if "value" in obj:
            fields["value"] = obj["value"]
        return cls(**fields)

    @classmethod
    def from_line(cls, line: str) -> "PatchOperation":
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e.msg}", line=line) from e
        except RecursionError as e:
            raise ParseError("invalid JSON: nesting too deep", line=line) from e
        return cls.from_obj(obj, line=line)

    def to_line(self) -> str:
        data: Dict[str, Any] = {"op": self.op, "path": self.path}
        if self.op != OperationType.REMOVE:
            data["value"] = self.value
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class UITree:
    """
    Immutable document value: {"root": key, "elements": {key: element}}.

    Every mutation in the engine yields a new UITree built from a deep copy, so
    a reference captured before a failed apply is always a safe snapshot.
    """

    __slots__ = ("_data", "generation")

    def __init__(self, data: Dict[str, Any], generation: int = 0):
        # Trusts the caller to hand over an unshared dict. Use from_dict() otherwise.
        self._data = data
        self.generation = generation

    @classmethod
    def empty(cls) -> "UITree":
        return cls({"root": "", "elements": {}})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UITree":
        if not isinstance(data, dict):
            raise ShapeError("tree snapshot must be a JSON object")
        snapshot = copy.deepcopy(data)
        if snapshot.get("root") is None:
            snapshot["root"] = ""
        if not isinstance(snapshot.get("elements"), dict):
            snapshot["elements"] = {}
        return cls(snapshot)

    @classmethod
    def from_json(cls, text: str) -> "UITree":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid tree JSON: {e.msg}") from e
        except RecursionError as e:
            raise ParseError("invalid tree JSON: nesting too deep") from e
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self._data, indent=indent, ensure_ascii=False)

    def derive(self, snapshot: Dict[str, Any]) -> "UITree":
        """Wraps an already-copied snapshot as the next generation."""
        return UITree(snapshot, generation=self.generation + 1)

    @property
    def root(self) -> str:
        root = self._data.get("root")
        return root if isinstance(root, str) else ""

    @property
    def elements(self) -> Dict[str, Any]:
        elements = self._data.get("elements")
        return copy.deepcopy(elements) if isinstance(elements, dict) else {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        elements = self._data.get("elements")
        if not isinstance(elements, dict) or key not in elements:
            return None
        return copy.deepcopy(elements[key])

    def keys(self) -> List[str]:
        elements = self._data.get("elements")
        return list(elements) if isinstance(elements, dict) else []

    def __contains__(self, key: object) -> bool:
        elements = self._data.get("elements")
        return isinstance(elements, dict) and key in elements

    def __len__(self) -> int:
        return len(self.keys())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UITree):
            return NotImplemented
        return self._data == other._data

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"UITree(root={self.root!r}, elements={len(self)}, generation={self.generation})"


OperationLike = Union[PatchOperation, Dict[str, Any], str]
