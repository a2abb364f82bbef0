"""Tests for syntax/required-key validation."""

from pathlib import Path

import pytest

from buildmend.artifacts import (
    Artifact,
    ArtifactFormat,
    KeyMode,
    KeyPath,
    KeyRequirement,
    ReconciliationRequirement,
)
from buildmend.errors import SyntaxCorruption
from buildmend.validators import VerdictStatus, check, validate_required_keys, validate_syntax

JSON = ArtifactFormat.JSON

ARTIFACT = Artifact(name="google_services", path=Path("android/app/google-services.json"), format=JSON)


def requirement(*keys: KeyRequirement) -> ReconciliationRequirement:
    return ReconciliationRequirement(artifact=ARTIFACT.name, keys=keys)


def key(path, value, mode=KeyMode.EQUALS):
    return KeyRequirement(KeyPath(JSON, path), value, mode)


def test_validate_syntax_never_raises():
    assert validate_syntax(ARTIFACT, b'{"a": 1}') is True
    assert validate_syntax(ARTIFACT, b"{oops") is False
    assert validate_syntax(ARTIFACT, None) is False


def test_required_keys_reports_absent_and_wrong_type():
    req = requirement(
        key("/project_info", "object", KeyMode.EXISTS),
        key("/client", "array", KeyMode.EXISTS),
        key("/configuration_version", "1"),
    )
    missing = validate_required_keys(ARTIFACT, req, b'{"client": {}, "configuration_version": 1}')

    by_path = {str(m.path): m for m in missing}
    assert set(by_path) == {"/project_info", "/client", "/configuration_version"}
    assert by_path["/project_info"].reason == "absent"
    assert by_path["/client"].reason == "unexpected type"
    assert by_path["/configuration_version"].reason == "unexpected type"


def test_required_keys_raises_on_corruption():
    with pytest.raises(SyntaxCorruption):
        validate_required_keys(ARTIFACT, requirement(), b"[")


def test_check_statuses_are_distinct():
    req = requirement(key("/project_info", "object", KeyMode.EXISTS))

    assert check(ARTIFACT, req, None).status == VerdictStatus.ABSENT
    corrupted = check(ARTIFACT, req, b"{")
    assert corrupted.status == VerdictStatus.CORRUPTED
    assert corrupted.describe().startswith("corrupted (")

    missing = check(ARTIFACT, req, b"{}")
    assert missing.status == VerdictStatus.MISSING_KEYS
    assert missing.describe() == "missing keys: /project_info: absent"
    assert not missing.ok

    satisfied = check(ARTIFACT, req, b'{"project_info": {"project_id": "demo"}}')
    assert satisfied.ok
    assert satisfied.model == {"project_info": {"project_id": "demo"}}


def test_empty_requirement_only_checks_syntax():
    assert check(ARTIFACT, requirement(), b"{}").ok
