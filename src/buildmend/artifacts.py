"""Data model: artifacts, key paths, requirements and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ArtifactFormat(str, Enum):
    """Declared on-disk format of an artifact."""

    PLIST = "plist"
    JSON = "json"
    ANDROID_MANIFEST = "android-manifest"
    ANDROID_RESOURCE = "android-resource"
    GENERATED_SOURCE = "generated-source"
    IMAGE = "image"


class KeyMode(str, Enum):
    """How a required key is checked and patched."""

    EQUALS = "equals"
    DEFAULT = "default"
    CONTAINS = "contains"
    EXISTS = "exists"


class Severity(str, Enum):
    """What a failed artifact means for the build."""

    ABORT = "abort"
    WARN = "warn"


class ArtifactState(str, Enum):
    """Per-artifact states of a reconciliation run."""

    UNCHECKED = "unchecked"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"
    RECONCILING = "reconciling"
    RECONCILED = "reconciled"
    FAILED = "failed"
    REPORTED = "reported"


# Fixed merge order for colliding keys; later categories win.
CATEGORY_ORDER: tuple[str, ...] = ("identity", "security", "capability", "permission", "cosmetic")


@dataclass(frozen=True)
class KeyPath:
    """Structural locator inside one artifact format."""

    format: ArtifactFormat
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class SourceSpec:
    """Remote (or local) input an artifact's template is built from."""

    url: Optional[str] = None
    fallback: Optional[str] = None
    missing_flag: Optional[str] = None


@dataclass(frozen=True)
class Artifact:
    """A configuration file managed by the engine."""

    name: str
    path: Path
    format: ArtifactFormat
    platform: str = "any"
    template: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    depends_on: tuple[str, ...] = ()
    severity: Severity = Severity.ABORT
    source: Optional[str] = None
    fallback: Optional[str] = None
    last_known_good: Optional[Path] = None

    def key(self, text: str) -> KeyPath:
        return KeyPath(self.format, text)


@dataclass(frozen=True)
class KeyRequirement:
    """One KeyPath that must hold a value (or type) after reconciliation.

    For ``contains`` requirements over a list of mappings, ``match`` names
    the fields that identify an entry (e.g. ``size``, ``idiom``, ``scale``
    of an icon slot). A required item then has to appear exactly once per
    identity, and an existing entry with the same identity is updated in
    place instead of getting a second entry.
    """

    path: KeyPath
    value: Any
    mode: KeyMode = KeyMode.EQUALS
    category: str = "cosmetic"
    origin: str = ""
    match: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReconciliationRequirement:
    """Everything one artifact must satisfy for the active flag set."""

    artifact: str
    keys: tuple[KeyRequirement, ...] = ()
    source: Optional[SourceSpec] = None
    unresolved: tuple[str, ...] = ()
    rules: tuple[str, ...] = ()

    @property
    def satisfiable(self) -> bool:
        return not self.unresolved


@dataclass(frozen=True)
class MissingKey:
    """A required key that is absent or holds an unexpected type/value."""

    path: KeyPath
    reason: str
    expected: Any = None
    actual: Any = None

    def __str__(self) -> str:
        if self.reason == "absent":
            return f"{self.path}: absent"
        return f"{self.path}: {self.reason} (expected {self.expected!r}, got {self.actual!r})"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome for one artifact in one run."""

    artifact: str
    path: Path
    state: ArtifactState
    severity: Severity
    valid: bool
    repaired: bool = False
    backup_created: Optional[Path] = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    history: tuple[ArtifactState, ...] = ()

    @property
    def failed(self) -> bool:
        return self.state == ArtifactState.FAILED

    @property
    def fatal(self) -> bool:
        return self.failed and self.severity == Severity.ABORT

    def summary(self) -> str:
        if self.failed:
            reason = self.errors[0] if self.errors else "unknown error"
            return f"failed ({reason})"
        if self.repaired:
            return "repaired"
        return "valid"
