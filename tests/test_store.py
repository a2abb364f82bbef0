"""Tests for the backup-guarded artifact store."""

import os
from datetime import datetime
from pathlib import Path

import pytest

from buildmend.errors import ArtifactNotFound
from buildmend.store import ArtifactStore

FIXED = datetime(2026, 3, 1, 12, 30, 45)


def make_store(root: Path) -> ArtifactStore:
    return ArtifactStore(root, clock=lambda: FIXED)


def test_read_missing_raises(tmp_path):
    store = make_store(tmp_path)
    with pytest.raises(ArtifactNotFound):
        store.read("nope.plist")
    assert store.read_optional("nope.plist") is None


def test_relative_paths_resolve_against_root(tmp_path):
    store = make_store(tmp_path)
    store.write("ios/Runner/Info.plist", b"<plist/>")
    assert (tmp_path / "ios" / "Runner" / "Info.plist").read_bytes() == b"<plist/>"
    assert store.exists("ios/Runner/Info.plist")


def test_backup_of_absent_file_is_none(tmp_path):
    assert make_store(tmp_path).backup("missing.json") is None


def test_backup_name_and_content(tmp_path):
    target = tmp_path / "Info.plist"
    target.write_bytes(b"original")
    backup = make_store(tmp_path).backup("Info.plist")

    assert backup.name == "Info.plist.backup.20260301_123045"
    assert backup.read_bytes() == b"original"
    assert target.read_bytes() == b"original"


def test_backup_never_overwrites_existing_backup(tmp_path):
    target = tmp_path / "Info.plist"
    target.write_bytes(b"v1")
    store = make_store(tmp_path)

    first = store.backup("Info.plist")
    target.write_bytes(b"v2")
    second = store.backup("Info.plist")
    target.write_bytes(b"v3")
    third = store.backup("Info.plist")

    assert first.read_bytes() == b"v1"
    assert second.name == "Info.plist.backup.20260301_123045.1"
    assert second.read_bytes() == b"v2"
    assert third.name == "Info.plist.backup.20260301_123045.2"
    assert store.backups("Info.plist") == [first, second, third]
    assert store.latest_backup("Info.plist") == third


def test_backups_are_sorted_by_timestamp(tmp_path):
    target = tmp_path / "a.json"
    target.write_text("{}")
    stamps = iter([datetime(2026, 1, 2), datetime(2025, 12, 31)])
    store = ArtifactStore(tmp_path, clock=lambda: next(stamps))

    newer = store.backup("a.json")
    older = store.backup("a.json")
    assert store.backups("a.json") == [older, newer]


def test_write_replaces_atomically_and_keeps_mode(tmp_path):
    target = tmp_path / "script.dart"
    target.write_text("old")
    target.chmod(0o600)
    make_store(tmp_path).write("script.dart", b"new")

    assert target.read_bytes() == b"new"
    assert (target.stat().st_mode & 0o777) == 0o600
    assert not [p for p in tmp_path.iterdir() if p.name.endswith(".tmp")]


def test_failed_rename_leaves_target_and_no_temp(tmp_path, monkeypatch):
    target = tmp_path / "AndroidManifest.xml"
    target.write_bytes(b"<manifest/>")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(OSError, match="disk full"):
        make_store(tmp_path).write("AndroidManifest.xml", b"<broken")

    assert target.read_bytes() == b"<manifest/>"
    assert [p.name for p in tmp_path.iterdir()] == ["AndroidManifest.xml"]


def test_restore_and_remove(tmp_path):
    target = tmp_path / "Contents.json"
    target.write_bytes(b'{"images": []}')
    store = make_store(tmp_path)
    backup = store.backup("Contents.json")

    store.write("Contents.json", b"garbage")
    store.restore(backup, "Contents.json")
    assert target.read_bytes() == b'{"images": []}'

    assert store.remove("Contents.json") is True
    assert store.remove("Contents.json") is False


def test_restore_missing_backup_raises(tmp_path):
    with pytest.raises(ArtifactNotFound):
        make_store(tmp_path).restore("x.backup.20260101_000000", "x")
