"""Format-aware syntax and required-key validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .artifacts import Artifact, MissingKey, ReconciliationRequirement
from .errors import SyntaxCorruption
from .formats import get_format

logger = logging.getLogger("buildmend.validators")


class VerdictStatus(str, Enum):
    ABSENT = "absent"
    CORRUPTED = "corrupted"
    MISSING_KEYS = "missing-keys"
    SATISFIED = "satisfied"


@dataclass(frozen=True)
class Verdict:
    """Result of checking one artifact's bytes against its requirement."""

    status: VerdictStatus
    missing: tuple[MissingKey, ...] = ()
    detail: str = ""
    model: Any = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return self.status == VerdictStatus.SATISFIED

    def describe(self) -> str:
        if self.status == VerdictStatus.ABSENT:
            return "absent"
        if self.status == VerdictStatus.CORRUPTED:
            return f"corrupted ({self.detail})" if self.detail else "corrupted"
        if self.status == VerdictStatus.MISSING_KEYS:
            return "missing keys: " + ", ".join(str(m) for m in self.missing)
        return "satisfied"


def parse(artifact: Artifact, data: Optional[bytes]) -> Any:
    """Parse ``data`` with the artifact's plugin; raise SyntaxCorruption on failure."""
    if data is None:
        raise SyntaxCorruption(artifact.path, "absent")
    plugin = get_format(artifact.format)
    try:
        return plugin.parse(data, artifact)
    except SyntaxCorruption:
        raise
    except Exception as e:
        raise SyntaxCorruption(artifact.path, str(e) or type(e).__name__) from e


def validate_syntax(artifact: Artifact, data: Optional[bytes]) -> bool:
    """True when ``data`` parses in the artifact's declared format. Never raises."""
    try:
        parse(artifact, data)
    except SyntaxCorruption as e:
        logger.debug("Syntax check failed for %s: %s", artifact.name, e.reason)
        return False
    return True


def missing_keys(artifact: Artifact, requirement: ReconciliationRequirement, model: Any) -> list[MissingKey]:
    plugin = get_format(artifact.format)
    problems: list[MissingKey] = []
    for req in requirement.keys:
        problem = plugin.check(model, req)
        if problem is not None:
            problems.append(problem)
    return problems


def validate_required_keys(
    artifact: Artifact,
    requirement: ReconciliationRequirement,
    data: bytes,
) -> list[MissingKey]:
    """Resolve each required KeyPath; return those absent or holding the wrong type/value.

    Raises SyntaxCorruption when ``data`` does not parse, callers that need
    the distinction should go through :func:`check`.
    """
    return missing_keys(artifact, requirement, parse(artifact, data))


def check(artifact: Artifact, requirement: ReconciliationRequirement, data: Optional[bytes]) -> Verdict:
    """Syntax first, then keys."""
    if data is None:
        return Verdict(VerdictStatus.ABSENT)
    try:
        model = parse(artifact, data)
    except SyntaxCorruption as e:
        return Verdict(VerdictStatus.CORRUPTED, detail=e.reason)

    problems = missing_keys(artifact, requirement, model)
    if problems:
        return Verdict(VerdictStatus.MISSING_KEYS, missing=tuple(problems), model=model)
    return Verdict(VerdictStatus.SATISFIED, model=model)
