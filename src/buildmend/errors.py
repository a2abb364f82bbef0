"""Error taxonomy for buildmend."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class BuildmendError(Exception):
    """Base class for all buildmend errors."""


class CatalogError(BuildmendError):
    """Raised when the static requirement table is malformed."""


class CircularDependencyError(CatalogError, ValueError):
    """Raised when artifact dependencies form a cycle."""

    def __init__(self, involved: set[str]):
        self.involved = involved
        super().__init__(f"Circular dependency detected involving: {sorted(involved)}")


class ArtifactNotFound(BuildmendError):
    """Raised when an artifact is read but does not exist on disk."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Artifact not found: {path}")


class AcquisitionError(BuildmendError):
    """A network-sourced input could not be downloaded."""

    def __init__(self, url: str, reason: str, attempts: int = 0):
        self.url = url
        self.reason = reason
        self.attempts = attempts
        suffix = f" after {attempts} attempt(s)" if attempts else ""
        super().__init__(f"Failed to acquire {url}{suffix}: {reason}")


class SyntaxCorruption(BuildmendError):
    """An artifact could not be parsed in its declared format."""

    def __init__(self, path: Optional[Path], reason: str):
        self.path = path
        self.reason = reason
        where = f"{path}: " if path else ""
        super().__init__(f"{where}unparsable content ({reason})")


class RequirementUnsatisfiable(BuildmendError):
    """A required value has no source, e.g. a mandatory flag was never supplied."""

    def __init__(self, flag: str, detail: str = ""):
        self.flag = flag
        self.detail = detail
        msg = f"required flag {flag} is not set"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class PatchError(BuildmendError):
    """An incremental patch cannot produce the required value."""


class ReconciliationFailure(BuildmendError):
    """No valid state could be produced for an artifact."""

    def __init__(self, artifact: str, reasons: list[str]):
        self.artifact = artifact
        self.reasons = list(reasons)
        super().__init__(f"{artifact}: " + "; ".join(self.reasons))


class ToolchainMismatch(BuildmendError):
    """A written artifact was rejected by a downstream toolchain linter."""

    def __init__(self, path: Path, tool: str, output: str):
        self.path = path
        self.tool = tool
        self.output = output
        super().__init__(f"{tool} rejected {path}: {output.strip()[:500]}")


class IllegalTransition(BuildmendError):
    """The runner state machine was driven through an invalid transition."""


class ConfigError(BuildmendError, ValueError):
    """Raised when the engine configuration holds an unusable value."""
