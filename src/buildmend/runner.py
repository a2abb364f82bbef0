"""Reconciliation runner: validate, repair and report every active artifact."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .acquisition import Acquirer
from .artifacts import (
    Artifact,
    ArtifactState,
    ReconciliationRequirement,
    ReconciliationResult,
    Severity,
)
from .catalog import Catalog, load_catalog
from .config import EngineConfig, FeatureFlags
from .errors import (
    BuildmendError,
    IllegalTransition,
    ReconciliationFailure,
    RequirementUnsatisfiable,
)
from .nfo_config import logged
from .policy import PolicyTable
from .reconciler import Reconciler
from .report import RunReport
from .resolver import DependencyResolver
from .store import ArtifactStore
from .toolchain import Toolchain
from .validators import check, validate_syntax

logger = logging.getLogger("buildmend.runner")

S = ArtifactState

TRANSITIONS: dict[ArtifactState, frozenset[ArtifactState]] = {
    S.UNCHECKED: frozenset({S.VALIDATING}),
    S.VALIDATING: frozenset({S.VALID, S.INVALID, S.FAILED}),
    S.VALID: frozenset({S.REPORTED}),
    S.INVALID: frozenset({S.RECONCILING, S.REPORTED}),
    S.RECONCILING: frozenset({S.RECONCILED, S.FAILED}),
    S.RECONCILED: frozenset({S.REPORTED, S.FAILED}),
    S.FAILED: frozenset({S.REPORTED}),
    S.REPORTED: frozenset(),
}


class ArtifactTracker:
    """State machine of one artifact within one run."""

    def __init__(self, name: str):
        self.name = name
        self.state = S.UNCHECKED
        self.history: list[ArtifactState] = [S.UNCHECKED]

    def to(self, state: ArtifactState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.name}: {self.state.value} -> {state.value}")
        logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state
        self.history.append(state)


@logged
class ReconciliationRunner:
    """Runs every (Artifact, Requirement) pair once, in dependency order.

    Failures of single artifacts never escape :meth:`run`; they end up as
    FAILED results and the aggregate report decides the exit code.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        catalog: Optional[Catalog] = None,
        store: Optional[ArtifactStore] = None,
        acquirer: Optional[Acquirer] = None,
        toolchain: Optional[Toolchain] = None,
        policy: Optional[PolicyTable] = None,
        reconciler: Optional[Reconciler] = None,
        check_only: bool = False,
        strict: bool = False,
    ):
        self.config = config or EngineConfig()
        self.catalog = catalog or load_catalog(self.config.catalog)
        self.resolver = DependencyResolver(self.catalog)
        self.store = store or ArtifactStore(self.config.project_root)
        # an unusable network config fails here, before any artifact is touched
        self._acquirer = acquirer or Acquirer(self.config.network, cache_dir=self.config.cache_dir)
        self._owns_acquirer = acquirer is None
        self.toolchain = toolchain or Toolchain(enabled=self.config.lint)
        self.policy = policy or PolicyTable(self.config.policy, strict=strict)
        self.reconciler = reconciler or Reconciler()
        self.check_only = check_only

    @property
    def acquirer(self) -> Acquirer:
        if self._acquirer is None:
            self._acquirer = Acquirer(self.config.network, cache_dir=self.config.cache_dir)
        return self._acquirer

    def close(self) -> None:
        if self._owns_acquirer and self._acquirer is not None:
            self._acquirer.close()
            self._acquirer = None

    # ------------------------------------------------------------------

    def plan(self, flags: FeatureFlags) -> list[tuple[Artifact, ReconciliationRequirement]]:
        return self.resolver.resolve(flags, self.config.platforms)

    def run(self, flags: FeatureFlags) -> RunReport:
        """Reconcile (or just check) all active artifacts and build the report.

        Raises CatalogError / CircularDependencyError for a broken table,
        which is a configuration problem rather than an artifact failure.
        """
        pairs = self.plan(flags)
        logger.info(
            "%s %d artifact(s) for platforms %s",
            "Checking" if self.check_only else "Reconciling",
            len(pairs),
            ",".join(self.config.platforms),
        )

        results: list[ReconciliationResult] = []
        try:
            for artifact, requirement in pairs:
                results.append(self.run_one(artifact, requirement))
        finally:
            self.close()

        report = RunReport(tuple(results), check_only=self.check_only)
        if self.config.report is not None:
            report.write(self.config.report)
            logger.info("Report written to %s", self.config.report)
        return report

    def run_one(self, artifact: Artifact, requirement: ReconciliationRequirement) -> ReconciliationResult:
        tracker = ArtifactTracker(artifact.name)
        severity = self.policy.severity_for(artifact)
        errors: list[str] = []
        warnings: list[str] = []
        backup: Optional[Path] = None
        created = False
        written = False

        try:
            tracker.to(S.VALIDATING)
            current = self.store.read_optional(artifact.path)
            verdict = check(artifact, requirement, current)

            if verdict.ok and requirement.satisfiable:
                tracker.to(S.VALID)
            else:
                tracker.to(S.INVALID)
                findings = [] if verdict.ok else [verdict.describe()]
                if not requirement.satisfiable:
                    findings.insert(0, str(RequirementUnsatisfiable(requirement.unresolved[0])))
                logger.info("%s is invalid: %s", artifact.name, "; ".join(findings))

                if self.check_only:
                    errors.extend(findings)
                else:
                    tracker.to(S.RECONCILING)
                    outcome = self.reconciler.reconcile(
                        artifact,
                        requirement,
                        current,
                        source=self._source_provider(requirement, warnings),
                        backup=self._last_known_good(artifact),
                    )
                    warnings.extend(outcome.warnings)

                    backup = self.store.backup(artifact.path)
                    created = current is None
                    self.store.write(artifact.path, outcome.data)
                    written = True
                    tracker.to(S.RECONCILED)

                    self._revalidate(artifact, requirement, backup, created)
                    mismatch = self.toolchain.lint(artifact, self.store.resolve(artifact.path))
                    if mismatch is not None:
                        warnings.append(str(mismatch))
                    logger.info("%s repaired via %s", artifact.name, outcome.strategy)

        except IllegalTransition:
            raise
        except (BuildmendError, OSError) as e:
            self._fail(tracker, artifact, e, errors, backup, created, written)
            log = logger.error if severity == Severity.ABORT else logger.warning
            log("%s failed: %s", artifact.name, e)
        except Exception as e:
            # anything else a format plugin or library raised
            self._fail(tracker, artifact, e, errors, backup, created, written)
            logger.exception("%s failed with an unexpected error", artifact.name)

        outcome_state = tracker.state
        tracker.to(S.REPORTED)
        return ReconciliationResult(
            artifact=artifact.name,
            path=artifact.path,
            state=outcome_state,
            severity=severity,
            valid=outcome_state in (S.VALID, S.RECONCILED),
            repaired=outcome_state == S.RECONCILED,
            backup_created=backup,
            errors=tuple(errors),
            warnings=tuple(warnings),
            history=tuple(tracker.history),
        )

    # ------------------------------------------------------------------

    def _source_provider(self, requirement: ReconciliationRequirement, warnings: list[str]):
        if requirement.source is None:
            return None
        spec = requirement.source

        def provide() -> bytes:
            acquired = self.acquirer.acquire(spec)
            warnings.extend(acquired.warnings)
            return acquired.data

        return provide

    def _last_known_good(self, artifact: Artifact) -> Optional[bytes]:
        """Newest backup that still parses, read before this run backs up again."""
        candidates = [artifact.last_known_good] if artifact.last_known_good else []
        candidates.extend(reversed(self.store.backups(artifact.path)))
        for path in candidates:
            data = self.store.read_optional(path)
            if data is not None and validate_syntax(artifact, data):
                return data
        return None

    def _revalidate(
        self,
        artifact: Artifact,
        requirement: ReconciliationRequirement,
        backup: Optional[Path],
        created: bool,
    ) -> None:
        """One re-validation pass from disk; roll back and fail if it does not hold."""
        verdict = check(artifact, requirement, self.store.read_optional(artifact.path))
        if verdict.ok:
            return
        self._undo(artifact, backup, created)
        raise ReconciliationFailure(artifact.name, [f"re-validation after write failed: {verdict.describe()}"])

    def _undo(self, artifact: Artifact, backup: Optional[Path], created: bool) -> None:
        if backup is not None:
            self.store.restore(backup, artifact.path)
        elif created:
            self.store.remove(artifact.path)

    def _fail(
        self,
        tracker: ArtifactTracker,
        artifact: Artifact,
        error: Exception,
        errors: list[str],
        backup: Optional[Path],
        created: bool,
        written: bool,
    ) -> None:
        if written and tracker.state == S.RECONCILED:
            # a failed re-validation has already rolled back
            if not isinstance(error, ReconciliationFailure):
                self._undo(artifact, backup, created)
        tracker.to(S.FAILED)
        if isinstance(error, (BuildmendError, OSError)):
            errors.append(str(error))
        else:
            errors.append(f"{type(error).__name__}: {error}")
