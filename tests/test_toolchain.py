"""Tests for optional downstream toolchain lint."""

from pathlib import Path

from buildmend.artifacts import Artifact, ArtifactFormat
from buildmend.errors import ToolchainMismatch
from buildmend.toolchain import Toolchain

PLIST = Artifact(name="ios_info_plist", path=Path("Info.plist"), format=ArtifactFormat.PLIST)
DART = Artifact(name="env_config_dart", path=Path("env_config.dart"), format=ArtifactFormat.GENERATED_SOURCE)


class FakeRun:
    def __init__(self, rc: int, output: str = ""):
        self.rc = rc
        self.output = output
        self.calls: list[list[str]] = []

    def __call__(self, argv, **kwargs):
        self.calls.append(argv)
        return self.rc, self.output


def test_missing_tool_is_skipped():
    run = FakeRun(0)
    toolchain = Toolchain(which=lambda tool: None, run=run)
    assert toolchain.lint(PLIST, Path("/tmp/Info.plist")) is None
    assert run.calls == []


def test_disabled_toolchain_is_skipped():
    run = FakeRun(1)
    toolchain = Toolchain(enabled=False, which=lambda tool: f"/usr/bin/{tool}", run=run)
    assert toolchain.available(ArtifactFormat.PLIST) is None
    assert toolchain.lint(PLIST, Path("Info.plist")) is None


def test_formats_without_linter():
    toolchain = Toolchain(which=lambda tool: f"/usr/bin/{tool}", run=FakeRun(1))
    assert toolchain.lint(DART, Path("env_config.dart")) is None


def test_accepting_tool():
    run = FakeRun(0, "Info.plist: OK")
    toolchain = Toolchain(which=lambda tool: f"/usr/bin/{tool}", run=run)
    assert toolchain.lint(PLIST, Path("Info.plist")) is None
    assert run.calls == [["/usr/bin/plutil", "-lint", "Info.plist"]]


def test_rejection_is_a_mismatch(caplog):
    run = FakeRun(1, "Info.plist: Encountered unknown tag\n")
    toolchain = Toolchain(which=lambda tool: f"/usr/bin/{tool}", run=run)

    mismatch = toolchain.lint(PLIST, Path("Info.plist"))
    assert isinstance(mismatch, ToolchainMismatch)
    assert mismatch.tool == "plutil"
    assert "Encountered unknown tag" in str(mismatch)
    assert "plutil rejected" in caplog.text
