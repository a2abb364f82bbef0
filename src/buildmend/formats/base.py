"""Base format plugin interface shared by all artifact formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from importlib import resources
from typing import Any, Optional

from ..artifacts import Artifact, ArtifactFormat, KeyMode, KeyPath, KeyRequirement, MissingKey
from ..errors import PatchError


class _Missing:
    """Sentinel for a KeyPath that does not resolve."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

TYPE_NAMES: dict[str, tuple[type, ...]] = {
    "object": (dict,),
    "array": (list,),
    "string": (str,),
    "bool": (bool,),
    "int": (int,),
    "number": (int, float),
}


def type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def is_type(value: Any, name: str) -> bool:
    expected = TYPE_NAMES.get(name)
    if expected is None:
        raise ValueError(f"Unknown type name: {name}")
    if isinstance(value, bool) and bool not in expected:
        return False
    return isinstance(value, expected)


def same_type(actual: Any, expected: Any) -> bool:
    """Type check where bool and int never stand in for each other."""
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(actual) is type(expected)
    if isinstance(expected, float):
        return isinstance(actual, (int, float))
    return isinstance(actual, type(expected))


def strict_equal(actual: Any, expected: Any) -> bool:
    if not same_type(actual, expected):
        return False
    if isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(
            strict_equal(actual[k], v) for k, v in expected.items()
        )
    if isinstance(expected, list):
        return len(actual) == len(expected) and all(
            strict_equal(a, e) for a, e in zip(actual, expected)
        )
    return actual == expected


def _contains(items: list, item: Any) -> bool:
    return any(strict_equal(existing, item) for existing in items)


def _same_entry(entry: Any, item: dict, match: tuple[str, ...]) -> bool:
    return isinstance(entry, dict) and all(k in entry and strict_equal(entry[k], item.get(k)) for k in match)


def _holds(items: list, item: Any, match: tuple[str, ...]) -> bool:
    """True when ``item`` is present; with ``match``, exactly once and with all its fields."""
    if not match:
        return _contains(items, item)
    entries = [entry for entry in items if _same_entry(entry, item, match)]
    if len(entries) != 1:
        return False
    return all(k in entries[0] and strict_equal(entries[0][k], v) for k, v in item.items())


def merge_items(items: list, required: list, match: tuple[str, ...] = ()) -> list:
    """Return ``items`` extended by the ``required`` items it lacks.

    With ``match``, the first entry sharing an item's identity takes the
    item's fields and any further entries of that identity are dropped.
    """
    merged = list(items)
    for item in required:
        if not match:
            if not _contains(merged, item):
                merged.append(item)
            continue
        found = [i for i, entry in enumerate(merged) if _same_entry(entry, item, match)]
        if not found:
            merged.append(dict(item))
            continue
        merged[found[0]] = {**merged[found[0]], **item}
        for i in reversed(found[1:]):
            del merged[i]
    return merged


class FormatPlugin(ABC):
    """Parse/serialize/template plus KeyPath resolution for one format.

    Subclasses only implement the structural primitives; checking and
    patching a KeyRequirement is shared so every format follows the same
    reconciliation contract.
    """

    format: ArtifactFormat
    # False: unmet requirements always regenerate the artifact from its template/source
    incremental: bool = True

    @abstractmethod
    def parse(self, data: bytes, artifact: Artifact) -> Any:
        """Parse raw bytes into an in-memory model; raise on any corruption."""

    @abstractmethod
    def serialize(self, model: Any, artifact: Artifact) -> bytes:
        """Serialize a model back into the exact on-disk format."""

    @abstractmethod
    def resolve(self, model: Any, path: KeyPath) -> Any:
        """Return the value at ``path`` or ``MISSING``."""

    @abstractmethod
    def assign(self, model: Any, path: KeyPath, value: Any) -> None:
        """Set ``value`` at ``path``, creating intermediate structure."""

    def validate_path(self, path: KeyPath) -> None:
        """Raise ValueError when the KeyPath cannot be resolved in this format."""
        if path.format != self.format:
            raise ValueError(
                f"KeyPath {path.text!r} belongs to format {path.format.value}, not {self.format.value}"
            )

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def empty(self, artifact: Artifact) -> Optional[bytes]:
        """Minimal valid content used when no template file is declared."""
        return None

    def load_template(self, artifact: Artifact) -> Optional[bytes]:
        if artifact.template:
            ref = resources.files("buildmend").joinpath(f"data/templates/{artifact.template}")
            return ref.read_bytes()
        return self.empty(artifact)

    # ------------------------------------------------------------------
    # Requirement check / patch
    # ------------------------------------------------------------------

    def compare(self, actual: Any, req: KeyRequirement) -> Optional[MissingKey]:
        """Return a MissingKey when ``actual`` does not satisfy ``req``."""
        if actual is MISSING:
            return MissingKey(req.path, "absent", expected=req.value)

        if req.mode == KeyMode.EQUALS:
            if strict_equal(actual, req.value):
                return None
            reason = "unexpected value" if same_type(actual, req.value) else "unexpected type"
            return MissingKey(req.path, reason, expected=req.value, actual=actual)

        if req.mode == KeyMode.DEFAULT:
            if same_type(actual, req.value):
                return None
            return MissingKey(req.path, "unexpected type", expected=type_name(req.value), actual=actual)

        if req.mode == KeyMode.CONTAINS:
            if not isinstance(actual, list):
                return MissingKey(req.path, "unexpected type", expected="array", actual=actual)
            missing = [item for item in req.value if not _holds(actual, item, req.match)]
            if missing:
                return MissingKey(req.path, "missing items", expected=missing, actual=actual)
            return None

        if req.mode == KeyMode.EXISTS:
            if is_type(actual, str(req.value)):
                return None
            return MissingKey(req.path, "unexpected type", expected=req.value, actual=type_name(actual))

        raise ValueError(f"Unknown key mode: {req.mode}")

    def check(self, model: Any, req: KeyRequirement) -> Optional[MissingKey]:
        self.validate_path(req.path)
        return self.compare(self.resolve(model, req.path), req)

    def apply(self, model: Any, req: KeyRequirement) -> bool:
        """Patch ``model`` so that ``req`` holds; return True when something changed."""
        problem = self.check(model, req)
        if problem is None:
            return False

        if req.mode in (KeyMode.EQUALS, KeyMode.DEFAULT):
            self.assign(model, req.path, req.value)
        elif req.mode == KeyMode.CONTAINS:
            actual = self.resolve(model, req.path)
            current = actual if isinstance(actual, list) else []
            self.assign(model, req.path, merge_items(current, req.value, req.match))
        else:
            raise PatchError(f"{req.path} ({problem.reason}) cannot be synthesised, it must come from the source")
        return True
