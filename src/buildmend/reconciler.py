"""The generic Reconciler: one contract for every artifact format.

Given an artifact's current bytes (possibly absent or corrupt) and the
requirement implied by the active flags, produce bytes that parse in the
artifact's format and satisfy every required key. The escalation ladder is
the same for all formats:

1. incremental patch of the existing content (formats that support it),
2. minimal template, or the acquired source for sourced artifacts,
3. the last-known-good backup, when no template or source can be produced.

Each candidate is re-validated; the first one that passes wins. Nothing is
written here, the runner owns the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .artifacts import Artifact, ReconciliationRequirement
from .errors import (
    AcquisitionError,
    PatchError,
    ReconciliationFailure,
    RequirementUnsatisfiable,
    SyntaxCorruption,
)
from .formats import FormatPlugin, get_format
from .validators import VerdictStatus, check

logger = logging.getLogger("buildmend.reconciler")

SourceProvider = Callable[[], bytes]


@dataclass(frozen=True)
class ReconcileOutcome:
    data: bytes
    strategy: str  # unchanged | patch | template | source | backup
    warnings: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return self.strategy != "unchanged"


class Reconciler:
    """Reconcile one artifact, parameterised by its format plugin."""

    def __init__(self, plugin: Optional[FormatPlugin] = None):
        self._plugin = plugin

    def plugin_for(self, artifact: Artifact) -> FormatPlugin:
        return self._plugin or get_format(artifact.format)

    def reconcile(
        self,
        artifact: Artifact,
        requirement: ReconciliationRequirement,
        current: Optional[bytes],
        *,
        source: Optional[SourceProvider] = None,
        backup: Optional[bytes] = None,
    ) -> ReconcileOutcome:
        if not requirement.satisfiable:
            raise RequirementUnsatisfiable(requirement.unresolved[0], detail=f"needed by {artifact.name}")

        plugin = self.plugin_for(artifact)
        verdict = check(artifact, requirement, current)
        if verdict.ok:
            return ReconcileOutcome(current, "unchanged")

        reasons: list[str] = [verdict.describe()]
        warnings: list[str] = []

        if verdict.status == VerdictStatus.MISSING_KEYS and plugin.incremental:
            try:
                data = self._apply(plugin, artifact, requirement, verdict.model)
            except PatchError as e:
                reasons.append(f"patch failed: {e}")
            else:
                problem = self._verify(artifact, requirement, data)
                if problem is None:
                    logger.debug("Patched %s in place", artifact.name)
                    return ReconcileOutcome(data, "patch")
                reasons.append(f"patched content still invalid: {problem}")

        for strategy, base in self._bases(plugin, artifact, requirement, source, backup, reasons):
            try:
                model = plugin.parse(base, artifact)
                data = self._apply(plugin, artifact, requirement, model)
            except (SyntaxCorruption, PatchError) as e:
                reasons.append(f"{strategy}: {e}")
                continue
            problem = self._verify(artifact, requirement, data)
            if problem is not None:
                reasons.append(f"{strategy} output invalid: {problem}")
                continue
            if strategy == "backup":
                warnings.append(f"{artifact.name}: rebuilt from last known good backup")
            logger.info("Regenerated %s from %s", artifact.name, strategy)
            return ReconcileOutcome(data, strategy, tuple(warnings))

        raise ReconciliationFailure(artifact.name, reasons)

    # ------------------------------------------------------------------

    def _bases(
        self,
        plugin: FormatPlugin,
        artifact: Artifact,
        requirement: ReconciliationRequirement,
        source: Optional[SourceProvider],
        backup: Optional[bytes],
        reasons: list[str],
    ):
        """Yield ``(strategy, bytes)`` candidates in escalation order."""
        if requirement.source is not None:
            if source is None:
                reasons.append("source: no provider for sourced artifact")
            else:
                try:
                    yield "source", source()
                except AcquisitionError as e:
                    reasons.append(str(e))
        else:
            try:
                template = plugin.load_template(artifact)
            except (FileNotFoundError, OSError) as e:
                reasons.append(f"template {artifact.template} unavailable: {e}")
                template = None
            if template is not None:
                yield "template", template
            else:
                reasons.append("no template for this format")

        if backup is not None:
            yield "backup", backup

    def _apply(
        self,
        plugin: FormatPlugin,
        artifact: Artifact,
        requirement: ReconciliationRequirement,
        model: Any,
    ) -> bytes:
        for req in requirement.keys:
            try:
                plugin.apply(model, req)
            except ValueError as e:
                raise PatchError(f"{req.path}: {e}") from e
        return plugin.serialize(model, artifact)

    @staticmethod
    def _verify(artifact: Artifact, requirement: ReconciliationRequirement, data: bytes) -> Optional[str]:
        verdict = check(artifact, requirement, data)
        return None if verdict.ok else verdict.describe()
