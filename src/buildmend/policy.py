"""Failure policy table: what a failed artifact means for the build."""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from .artifacts import Artifact, ReconciliationResult, Severity

EXIT_OK = 0
EXIT_ABORT = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class FailurePolicy:
    """One row of the policy table."""
    severity: Severity
    exit_code: int
    label: str
    style: str


POLICIES: dict[Severity, FailurePolicy] = {
    Severity.ABORT: FailurePolicy(Severity.ABORT, EXIT_ABORT, "fatal", "red"),
    Severity.WARN: FailurePolicy(Severity.WARN, EXIT_OK, "warning", "yellow"),
}


class PolicyTable:
    """Maps artifacts to a FailurePolicy.

    Lookup order: override for the exact artifact name (``ios_app_icon[20x20@1x]``),
    override for its declaration (``ios_app_icon``), then the severity the
    catalog declares. ``strict`` turns every failure fatal.
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None, *, strict: bool = False):
        self.overrides: dict[str, Severity] = {}
        for name, value in (overrides or {}).items():
            try:
                self.overrides[name] = Severity(str(value).lower())
            except ValueError:
                raise ValueError(
                    f"Invalid policy for {name}: {value!r} (expected one of: abort, warn)"
                ) from None
        self.strict = strict

    def severity_for(self, artifact: Artifact) -> Severity:
        if self.strict:
            return Severity.ABORT
        if artifact.name in self.overrides:
            return self.overrides[artifact.name]
        base = artifact.name.split("[", 1)[0]
        if base in self.overrides:
            return self.overrides[base]
        return artifact.severity

    def policy_for(self, artifact: Artifact) -> FailurePolicy:
        return POLICIES[self.severity_for(artifact)]


def exit_code(results: Iterable[ReconciliationResult], *, check_only: bool = False) -> int:
    """Highest exit code demanded by any failed result.

    In check-only runs an artifact that still needs repair counts as failed.
    """
    code = EXIT_OK
    for result in results:
        if result.failed or (check_only and not result.valid):
            code = max(code, POLICIES[result.severity].exit_code)
    return code
