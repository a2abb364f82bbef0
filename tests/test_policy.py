"""Tests for the failure policy table and the run report."""

from datetime import datetime
from pathlib import Path

import pytest
from rich.console import Console

from buildmend.artifacts import Artifact, ArtifactFormat, ArtifactState, ReconciliationResult, Severity
from buildmend.policy import EXIT_ABORT, EXIT_OK, PolicyTable, exit_code
from buildmend.report import RunReport


def artifact(name: str, severity: Severity = Severity.ABORT) -> Artifact:
    return Artifact(name=name, path=Path(f"{name}.png"), format=ArtifactFormat.IMAGE, severity=severity)


def result(name, state, severity=Severity.ABORT, **kwargs) -> ReconciliationResult:
    return ReconciliationResult(
        artifact=name,
        path=Path(f"{name}.txt"),
        state=state,
        severity=severity,
        valid=state in (ArtifactState.VALID, ArtifactState.RECONCILED),
        repaired=state == ArtifactState.RECONCILED,
        **kwargs,
    )


class TestPolicyTable:
    def test_declared_severity_is_default(self):
        table = PolicyTable()
        assert table.severity_for(artifact("ios_info_plist")) == Severity.ABORT
        assert table.severity_for(artifact("icon", Severity.WARN)) == Severity.WARN

    def test_override_by_declaration_and_exact_name(self):
        table = PolicyTable({"ios_app_icon": "abort", "ios_app_icon[20x20@1x]": "WARN"})
        assert table.severity_for(artifact("ios_app_icon[60x60@2x]", Severity.WARN)) == Severity.ABORT
        assert table.severity_for(artifact("ios_app_icon[20x20@1x]", Severity.WARN)) == Severity.WARN

    def test_strict(self):
        table = PolicyTable({"icon": "warn"}, strict=True)
        assert table.policy_for(artifact("icon", Severity.WARN)).exit_code == EXIT_ABORT

    def test_invalid_override(self):
        with pytest.raises(ValueError, match="expected one of"):
            PolicyTable({"icon": "ignore"})


def test_exit_code():
    results = [
        result("ok", ArtifactState.VALID),
        result("icon", ArtifactState.FAILED, Severity.WARN),
    ]
    assert exit_code(results) == EXIT_OK
    results.append(result("plist", ArtifactState.FAILED))
    assert exit_code(results) == EXIT_ABORT


def test_exit_code_check_only_counts_invalid():
    results = [result("plist", ArtifactState.INVALID), result("icon", ArtifactState.INVALID, Severity.WARN)]
    assert exit_code(results) == EXIT_OK
    assert exit_code(results, check_only=True) == EXIT_ABORT
    assert exit_code(results[1:], check_only=True) == EXIT_OK


class TestRunReport:
    def report(self) -> RunReport:
        return RunReport(
            results=(
                result("ios_info_plist", ArtifactState.RECONCILED,
                       backup_created=Path("Info.plist.backup.20260101_000000")),
                result("ios_app_icon[20x20@1x]", ArtifactState.FAILED, Severity.WARN,
                       errors=("download timed out",), warnings=("placeholder image used",)),
                result("env_config_dart", ArtifactState.VALID),
            ),
            started_at=datetime(2026, 1, 1, 9, 0, 0),
        )

    def test_lines(self):
        text = self.report().render_text()
        assert text.startswith("buildmend reconcile report (2026-01-01 09:00:00)")
        assert "[FIXED] ios_info_plist (ios_info_plist.txt): repaired [backup: Info.plist.backup.20260101_000000]" in text
        assert "[WARN] ios_app_icon[20x20@1x] (ios_app_icon[20x20@1x].txt): failed (download timed out)" in text
        assert "[OK] env_config_dart" in text
        assert "  warning: placeholder image used" in text
        assert "3 artifact(s): 1 repaired, 1 failed (0 fatal)" in text
        assert "ABORT" not in text

    def test_fatal(self):
        report = RunReport(results=(result("android_manifest", ArtifactState.FAILED, errors=("corrupted",)),))
        assert report.exit_code == EXIT_ABORT
        assert report.first_fatal_reason == "android_manifest: corrupted"
        assert "ABORT: android_manifest: corrupted" in report.render_text()

    def test_result_lookup(self):
        report = self.report()
        assert report.result("env_config_dart").state == ArtifactState.VALID
        with pytest.raises(KeyError):
            report.result("nope")

    def test_write(self, tmp_path):
        path = self.report().write(tmp_path / "build" / "report.txt")
        assert path.read_text() == self.report().render_text()

    def test_print_escapes_markup(self):
        console = Console(record=True, width=200)
        self.report().print(console)
        out = console.export_text()
        assert "ios_app_icon[20x20@1x]" in out
        assert "placeholder image used" in out
