"""Static requirement table: which flags imply which keys in which artifacts.

The table is data (``buildmend/data/catalog.yaml`` by default) so that new
flags and requirements are additive. Loading never looks at artifact
content; everything here is a pure function of the flag set.
"""

import logging
import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Optional

import yaml

from .artifacts import (
    CATEGORY_ORDER,
    Artifact,
    ArtifactFormat,
    KeyMode,
    KeyPath,
    KeyRequirement,
    ReconciliationRequirement,
    Severity,
    SourceSpec,
)
from .config import FeatureFlags, coerce_bool
from .errors import CatalogError
from .formats import get_format
from .formats.base import merge_items
from .nfo_config import log_call

logger = logging.getLogger("buildmend.catalog")

FLAG_TYPES = ("str", "bool", "int", "float")
_VAR = re.compile(r"\$\{(?P<name>[A-Za-z_]\w*)(?::-(?P<default>[^}]*))?\}")


class UnresolvedFlag(Exception):
    """A ``${FLAG}`` placeholder without default referenced an unset flag."""

    def __init__(self, flag: str):
        self.flag = flag
        super().__init__(flag)


# ----------------------------------------------------------------------
# Interpolation and conditions
# ----------------------------------------------------------------------

def interpolate(value: Any, flags: FeatureFlags, variant: Optional[dict] = None) -> Any:
    """Replace ``${NAME}`` / ``${NAME:-default}`` in strings, recursively.

    Variant fields shadow flags of the same name. Raises UnresolvedFlag for
    the first unset flag that has no default.
    """
    variant = variant or {}
    if isinstance(value, str):
        missing: list[str] = []

        def repl(m: re.Match) -> str:
            name = m.group("name")
            if name in variant:
                return str(variant[name])
            found = flags.get_str(name)
            if found is not None:
                return found
            if m.group("default") is not None:
                return m.group("default")
            missing.append(name)
            return ""

        result = _VAR.sub(repl, value)
        if missing:
            raise UnresolvedFlag(missing[0])
        return result
    if isinstance(value, list):
        return [interpolate(v, flags, variant) for v in value]
    if isinstance(value, dict):
        return {k: interpolate(v, flags, variant) for k, v in value.items()}
    return value


def coerce(value: Any, kind: Optional[str]) -> Any:
    """Coerce an interpolated value to ``kind`` (bool, int, float, str)."""
    if kind is None:
        return value
    if kind == "bool":
        result = coerce_bool(value)
        if result is None:
            raise ValueError(f"{value!r} is not a boolean")
        return result
    if kind == "int":
        return int(str(value).strip())
    if kind == "float":
        return float(str(value).strip())
    if kind == "str":
        return str(value)
    raise ValueError(f"Unknown value type: {kind}")


def placeholders(value: Any) -> set[str]:
    """Names referenced by ``${...}`` placeholders anywhere in ``value``."""
    if isinstance(value, str):
        return {m.group("name") for m in _VAR.finditer(value)}
    if isinstance(value, list):
        return set().union(*(placeholders(v) for v in value)) if value else set()
    if isinstance(value, dict):
        return set().union(*(placeholders(v) for v in value.values())) if value else set()
    return set()


@dataclass
class Catalog:
    """Flag declarations, artifacts and rules of one requirement table."""

    flags: dict[str, "FlagDecl"] = field(default_factory=dict)
    categories: tuple[str, ...] = CATEGORY_ORDER
    artifacts: list["ArtifactDecl"] = field(default_factory=list)
    rules: list["Rule"] = field(default_factory=list)
    source: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict, source: Optional[Path] = None) -> "Catalog":
        if not isinstance(data, dict):
            raise CatalogError("catalog must be a mapping")
        try:
            flags = {
                name: FlagDecl.from_dict(name, spec or {})
                for name, spec in (data.get("flags") or {}).items()
            }
            artifacts = [ArtifactDecl.from_dict(a) for a in data.get("artifacts") or []]
            rules = [Rule.from_dict(r, idx) for idx, r in enumerate(data.get("rules") or [])]
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"malformed catalog{f' {source}' if source else ''}: {e}") from e
        categories = tuple(data.get("categories") or CATEGORY_ORDER)
        return cls(flags=flags, categories=categories, artifacts=artifacts, rules=rules, source=source)

    @classmethod
    def from_yaml(cls, path: Path) -> "Catalog":
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise CatalogError(f"invalid YAML in {path}: {e}") from e
        return cls.from_dict(data, source=Path(path))

    def artifact(self, name: str) -> "ArtifactDecl":
        for decl in self.artifacts:
            if decl.name == name:
                return decl
        raise KeyError(name)

    def flag_types(self) -> dict[str, str]:
        return {name: decl.type for name, decl in self.flags.items()}

    # ------------------------------------------------------------------

    def expand(
        self,
        flags: FeatureFlags,
        platforms: Optional[list[str]] = None,
    ) -> list[tuple[Artifact, ReconciliationRequirement]]:
        """Concrete artifacts with active rules, in catalog order (not sorted)."""
        pairs: list[tuple[Artifact, ReconciliationRequirement]] = []
        for decl in self.artifacts:
            if platforms is not None and decl.platform != "any" and decl.platform not in platforms:
                continue
            active = [r for r in self.rules if r.artifact == decl.name and self.evaluate(r.when, flags)]
            if not active:
                continue
            for variant in decl.variants or [None]:
                pairs.append(self._materialize(decl, variant, active, flags))
        return pairs

    def declared(self, flags: FeatureFlags) -> list[Artifact]:
        """Every artifact of the table, active or not, variants expanded."""
        return [
            self._build_artifact(decl, variant or {}, flags)
            for decl in self.artifacts
            for variant in decl.variants or [None]
        ]

    def evaluate(self, cond: Any, flags: FeatureFlags) -> bool:
        """Evaluate a ``when`` condition against the flag set."""
        if cond is None or cond is True or cond == "always":
            return True
        if cond is False or cond == "never":
            return False
        if isinstance(cond, str):
            return self._truthy(cond, flags)
        if not isinstance(cond, dict):
            raise CatalogError(f"invalid condition: {cond!r}")
        if "any" in cond:
            return any(self.evaluate(c, flags) for c in cond["any"])
        if "all" in cond:
            return all(self.evaluate(c, flags) for c in cond["all"])
        if "not" in cond:
            return not self.evaluate(cond["not"], flags)
        if "flag" in cond:
            name = cond["flag"]
            if "equals" in cond:
                return flags.get_str(name) == str(cond["equals"])
            return self._truthy(name, flags)
        raise CatalogError(f"invalid condition: {cond!r}")

    def _truthy(self, name: str, flags: FeatureFlags) -> bool:
        decl = self.flags.get(name)
        if decl is not None and decl.type == "bool":
            return flags.get_bool(name, bool(decl.default) if decl.default is not None else False)
        return flags.is_set(name)

    def _materialize(
        self,
        decl: "ArtifactDecl",
        variant: Optional[dict],
        active: list["Rule"],
        flags: FeatureFlags,
    ) -> tuple[Artifact, ReconciliationRequirement]:
        variant = variant or {}
        artifact = self._build_artifact(decl, variant, flags)
        name = artifact.name

        unresolved: list[str] = []
        source = None
        if decl.source:
            source = self._source(decl, variant, flags, unresolved)

        merged = self._merge(decl, variant, active, flags, unresolved)
        requirement = ReconciliationRequirement(
            artifact=name,
            keys=tuple(merged),
            source=source,
            unresolved=tuple(dict.fromkeys(unresolved)),
            rules=tuple(r.name for r in active),
        )
        return artifact, requirement

    def _build_artifact(self, decl: "ArtifactDecl", variant: dict, flags: FeatureFlags) -> Artifact:
        name = f"{decl.name}[{variant['label']}]" if variant else decl.name
        try:
            path = interpolate(decl.path, flags, variant)
            options = interpolate(decl.options, flags, variant)
        except UnresolvedFlag as e:
            raise CatalogError(f"{name}: path/options reference unset flag {e.flag}") from e
        return Artifact(
            name=name,
            path=Path(path),
            format=decl.format,
            platform=decl.platform,
            template=decl.template,
            options=options,
            depends_on=tuple(decl.depends_on),
            severity=decl.severity,
            source=decl.source.get("url") if decl.source else None,
            fallback=decl.source.get("fallback") if decl.source else None,
        )

    def _source(self, decl: "ArtifactDecl", variant: dict, flags: FeatureFlags, unresolved: list[str]) -> SourceSpec:
        fallback = decl.source.get("fallback")
        try:
            url = interpolate(decl.source.get("url"), flags, variant)
        except UnresolvedFlag as e:
            if fallback:
                return SourceSpec(url=None, fallback=fallback, missing_flag=e.flag)
            unresolved.append(e.flag)
            return SourceSpec(url=None, fallback=None, missing_flag=e.flag)
        return SourceSpec(url=url or None, fallback=fallback)

    def _merge(
        self,
        decl: "ArtifactDecl",
        variant: dict,
        active: list["Rule"],
        flags: FeatureFlags,
        unresolved: list[str],
    ) -> list[KeyRequirement]:
        """Merge keys of all active rules; later categories win on a shared KeyPath."""
        order = {c: i for i, c in enumerate(self.categories)}
        ranked = sorted(active, key=lambda r: (order.get(r.category, len(order)), r.index))

        merged: dict[str, KeyRequirement] = {}
        for rule in ranked:
            for key in rule.keys:
                try:
                    path_text = interpolate(key.path, flags, variant)
                    value = coerce(interpolate(key.value, flags, variant), key.type)
                except UnresolvedFlag as e:
                    unresolved.append(e.flag)
                    continue
                except ValueError as e:
                    raise CatalogError(f"rule {rule.name}: cannot coerce {key.path}: {e}") from e

                req = KeyRequirement(
                    path=KeyPath(decl.format, path_text),
                    value=value,
                    mode=key.mode,
                    category=rule.category,
                    origin=rule.name,
                    match=key.match,
                )
                previous = merged.get(path_text)
                if previous is not None and previous.mode == KeyMode.CONTAINS and req.mode == KeyMode.CONTAINS:
                    match = req.match or previous.match
                    req = KeyRequirement(
                        req.path,
                        merge_items(previous.value, req.value, match),
                        req.mode,
                        req.category,
                        f"{previous.origin}+{req.origin}",
                        match,
                    )
                elif previous is not None:
                    logger.debug("%s: %s from %s overrides %s", decl.name, path_text, rule.name, previous.origin)
                merged[path_text] = req
        return list(merged.values())

    # ------------------------------------------------------------------

    def validate(self) -> list[str]:
        """Return structural problems of the table (cycles are checked by the resolver)."""
        issues: list[str] = []
        names = [a.name for a in self.artifacts]
        seen: set[str] = set()
        for name in names:
            if name in seen:
                issues.append(f"Artifact '{name}' is declared more than once")
            seen.add(name)

        for decl in self.artifacts:
            for dep in decl.depends_on:
                if dep not in seen:
                    issues.append(f"Artifact '{decl.name}' depends on unknown artifact '{dep}'")
            if decl.template:
                ref = resources.files("buildmend").joinpath(f"data/templates/{decl.template}")
                if not ref.is_file():
                    issues.append(f"Artifact '{decl.name}' uses missing template '{decl.template}'")
            labels = [v.get("label") for v in decl.variants]
            if any(not label for label in labels):
                issues.append(f"Artifact '{decl.name}' has a variant without a label")
            elif len(set(labels)) != len(labels):
                issues.append(f"Artifact '{decl.name}' has duplicate variant labels")
            if decl.source and not decl.source.get("url"):
                issues.append(f"Artifact '{decl.name}' declares a source without url")

        for rule in self.rules:
            if rule.artifact not in seen:
                issues.append(f"Rule '{rule.name}' targets unknown artifact '{rule.artifact}'")
                continue
            if rule.category not in self.categories:
                issues.append(f"Rule '{rule.name}' uses unknown category '{rule.category}'")
            for ref in _condition_flags(rule.when):
                if ref not in self.flags:
                    issues.append(f"Rule '{rule.name}' references undeclared flag '{ref}'")
            fmt = self.artifact(rule.artifact).format
            plugin = get_format(fmt)
            for key in rule.keys:
                if "${" not in key.path:
                    try:
                        plugin.validate_path(KeyPath(fmt, key.path))
                    except ValueError as e:
                        issues.append(f"Rule '{rule.name}': {e}")
                if key.mode == KeyMode.CONTAINS and not isinstance(key.value, list):
                    issues.append(f"Rule '{rule.name}': contains requirement {key.path} needs a list")
                if key.match:
                    if key.mode != KeyMode.CONTAINS:
                        issues.append(f"Rule '{rule.name}': match is only valid for contains requirements ({key.path})")
                    elif isinstance(key.value, list) and not all(
                        isinstance(item, dict) and all(k in item for k in key.match) for item in key.value
                    ):
                        issues.append(f"Rule '{rule.name}': every item of {key.path} needs the match fields {list(key.match)}")
                if key.mode == KeyMode.EXISTS and key.value not in ("object", "array", "string", "bool", "int", "number"):
                    issues.append(f"Rule '{rule.name}': exists requirement {key.path} needs a type name")
        return issues


@dataclass
class FlagDecl:
    name: str
    type: str = "str"
    default: Any = None
    description: str = ""

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "FlagDecl":
        kind = str(data.get("type", "str"))
        if kind not in FLAG_TYPES:
            raise ValueError(f"flag {name}: unknown type {kind}")
        return cls(name=name, type=kind, default=data.get("default"), description=data.get("description", ""))


@dataclass
class ArtifactDecl:
    name: str
    path: str
    format: ArtifactFormat
    platform: str = "any"
    template: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    severity: Severity = Severity.ABORT
    source: Optional[dict[str, Any]] = None
    variants: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ArtifactDecl":
        source = data.get("source")
        if isinstance(source, str):
            source = {"url": source}
        return cls(
            name=data["name"],
            path=data["path"],
            format=ArtifactFormat(data["format"]),
            platform=str(data.get("platform", "any")).lower(),
            template=data.get("template"),
            options=dict(data.get("options") or {}),
            depends_on=list(data.get("depends_on") or []),
            severity=Severity(data.get("severity", "abort")),
            source=source,
            variants=[dict(v) for v in data.get("variants") or []],
        )


@dataclass
class KeyDecl:
    path: str
    value: Any = None
    mode: KeyMode = KeyMode.EQUALS
    type: Optional[str] = None
    match: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "KeyDecl":
        kind = data.get("type")
        if kind is not None and kind not in FLAG_TYPES:
            raise ValueError(f"key {data.get('path')}: unknown type {kind}")
        match = data.get("match") or ()
        if isinstance(match, str):
            match = (match,)
        return cls(
            path=str(data["path"]),
            value=data.get("value"),
            mode=KeyMode(data.get("mode", "equals")),
            type=kind,
            match=tuple(str(m) for m in match),
        )


@dataclass
class Rule:
    name: str
    artifact: str
    when: Any = "always"
    category: str = "cosmetic"
    keys: list[KeyDecl] = field(default_factory=list)
    index: int = 0

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "Rule":
        return cls(
            name=data.get("name") or f"rule-{index}",
            artifact=data["artifact"],
            when=data.get("when", "always"),
            category=data.get("category", "cosmetic"),
            keys=[KeyDecl.from_dict(k) for k in data.get("keys") or []],
            index=index,
        )


def _condition_flags(cond: Any) -> set[str]:
    if isinstance(cond, str):
        return set() if cond in ("always", "never") else {cond}
    if isinstance(cond, dict):
        names: set[str] = set()
        if "flag" in cond:
            names.add(cond["flag"])
        for key in ("any", "all"):
            for sub in cond.get(key, []):
                names |= _condition_flags(sub)
        if "not" in cond:
            names |= _condition_flags(cond["not"])
        return names
    return set()


@log_call
def load_catalog(path: Optional[Path] = None) -> Catalog:
    """Load a requirement table, the bundled one when ``path`` is None."""
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise CatalogError(f"Catalog not found: {path}")
        return Catalog.from_yaml(path)
    ref = resources.files("buildmend").joinpath("data/catalog.yaml")
    try:
        data = yaml.safe_load(ref.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise CatalogError(f"invalid bundled catalog: {e}") from e
    return Catalog.from_dict(data)
