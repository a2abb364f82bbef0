"""Aggregate run report: one line per artifact for CI logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .artifacts import ReconciliationResult, Severity
from .policy import POLICIES, exit_code
from .store import ArtifactStore


@dataclass(frozen=True)
class RunReport:
    """Ordered results of one reconciliation run."""

    results: tuple[ReconciliationResult, ...] = ()
    check_only: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    notes: tuple[str, ...] = ()

    @property
    def fatal_failures(self) -> list[ReconciliationResult]:
        return [r for r in self.results if self._blocks(r)]

    def _blocks(self, result: ReconciliationResult) -> bool:
        failed = result.failed or (self.check_only and not result.valid)
        return failed and result.severity == Severity.ABORT

    @property
    def failures(self) -> list[ReconciliationResult]:
        return [r for r in self.results if r.failed]

    @property
    def repaired(self) -> list[ReconciliationResult]:
        return [r for r in self.results if r.repaired]

    @property
    def warnings(self) -> list[str]:
        return [w for r in self.results for w in r.warnings]

    @property
    def first_fatal_reason(self) -> Optional[str]:
        for result in self.fatal_failures:
            reason = result.errors[0] if result.errors else "unknown error"
            return f"{result.artifact}: {reason}"
        return None

    @property
    def exit_code(self) -> int:
        return exit_code(self.results, check_only=self.check_only)

    def result(self, artifact: str) -> ReconciliationResult:
        for r in self.results:
            if r.artifact == artifact:
                return r
        raise KeyError(artifact)

    def line(self, result: ReconciliationResult) -> str:
        if result.failed:
            tag = "FAIL" if self._blocks(result) else "WARN"
        elif result.repaired:
            tag = "FIXED"
        elif not result.valid:
            tag = "INVALID"
        else:
            tag = "OK"
        text = f"[{tag}] {result.artifact} ({result.path}): {self._summary(result)}"
        if result.backup_created:
            text += f" [backup: {result.backup_created.name}]"
        return text

    def _summary(self, result: ReconciliationResult) -> str:
        if self.check_only and not result.valid and not result.failed:
            return "needs repair (" + "; ".join(result.errors) + ")" if result.errors else "needs repair"
        return result.summary()

    def render_text(self) -> str:
        mode = "check" if self.check_only else "reconcile"
        lines = [f"buildmend {mode} report ({self.started_at:%Y-%m-%d %H:%M:%S})", ""]
        lines.extend(self.line(r) for r in self.results)
        for r in self.results:
            lines.extend(f"  warning: {w}" for w in r.warnings)
        lines.extend(f"  note: {n}" for n in self.notes)
        lines.append("")
        lines.append(
            f"{len(self.results)} artifact(s): {len(self.repaired)} repaired, "
            f"{len(self.failures)} failed ({len(self.fatal_failures)} fatal)"
        )
        reason = self.first_fatal_reason
        if reason:
            lines.append(f"ABORT: {reason}")
        return "\n".join(lines) + "\n"

    def write(self, path: Path) -> Path:
        """Write the text report atomically."""
        path = Path(path)
        ArtifactStore(path.parent).write(path.name, self.render_text().encode("utf-8"))
        return path

    def print(self, console: Optional[Console] = None) -> None:
        console = console or Console()
        table = Table(title="Reconciliation report")
        table.add_column("Artifact", style="cyan")
        table.add_column("Path", style="dim")
        table.add_column("Result")
        table.add_column("Backup", style="dim")

        for r in self.results:
            if r.failed:
                style = POLICIES[r.severity].style
            elif r.repaired:
                style = "green"
            elif not r.valid:
                style = "yellow"
            else:
                style = "white"
            table.add_row(
                escape(r.artifact),
                escape(str(r.path)),
                f"[{style}]{escape(self._summary(r))}[/{style}]",
                r.backup_created.name if r.backup_created else "-",
            )

        console.print(table)
        for w in self.warnings:
            console.print(f"[yellow]⚠ {escape(w)}[/yellow]")
        reason = self.first_fatal_reason
        if reason:
            console.print(f"[bold red]✗ Build must stop: {escape(reason)}[/bold red]")
