"""Unit tests for GuardedFileSystem and AuditLog."""

import json

import pytest

from sdkshift.core.safety.audit import AuditEventKind, AuditLog
from sdkshift.core.safety.backup import BackupService
from sdkshift.core.safety.files import hash_bytes
from sdkshift.core.safety.guard import GuardedFileSystem


@pytest.fixture
def guarded(tmp_path):
    backup = BackupService(str(tmp_path))
    backup.start_session()
    audit = AuditLog(str(tmp_path))
    return GuardedFileSystem(audit, backup)


def _audit_lines(audit: AuditLog):
    with open(audit.path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


class TestGuardedWrites:
    def test_create_then_modify(self, guarded, tmp_path):
        path = str(tmp_path / "App.csproj")

        created = guarded.write_text(path, "<Project />")
        modified = guarded.write_text(path, "<Project Sdk=\"Microsoft.NET.Sdk\" />")

        assert created.kind == AuditEventKind.CREATED
        assert created.before_hash is None
        assert modified.kind == AuditEventKind.MODIFIED
        assert modified.before_hash == created.after_hash
        assert path in guarded.backup.session.created_files

    def test_unchanged_write_is_skipped(self, guarded, tmp_path):
        target = tmp_path / "App.csproj"
        target.write_text("<Project />")

        assert guarded.write_text(str(target), "<Project />") is None
        assert guarded.audit.events == []
        assert guarded.backup.session.backed_up_files == []

    def test_modification_backs_up_original_once(self, guarded, tmp_path):
        target = tmp_path / "App.csproj"
        target.write_text("original")

        guarded.write_text(str(target), "first")
        guarded.write_text(str(target), "second")

        (info,) = guarded.backup.session.backed_up_files
        assert info.content_hash == hash_bytes(b"original")

    def test_delete(self, guarded, tmp_path):
        target = tmp_path / "packages.config"
        target.write_text("<packages />")

        event = guarded.delete(str(target))

        assert event.kind == AuditEventKind.DELETED
        assert event.after_hash is None
        assert not target.exists()
        assert guarded.delete(str(target)) is None

    def test_one_audit_line_per_mutation(self, guarded, tmp_path):
        guarded.write_text(str(tmp_path / "a.txt"), "a")
        guarded.write_text(str(tmp_path / "a.txt"), "a")
        guarded.write_text(str(tmp_path / "a.txt"), "b")
        guarded.delete(str(tmp_path / "a.txt"))

        kinds = [line["eventType"] for line in _audit_lines(guarded.audit)]
        assert kinds == ["FileCreation", "FileModification", "FileDeletion"]


class TestAuditLog:
    def test_disabled_log_creates_no_file(self, tmp_path):
        audit = AuditLog(str(tmp_path), enabled=False)

        audit.log_migration_start(str(tmp_path), {"preview": True})
        audit.log_migration_end({"migrated": 0})

        assert not list(tmp_path.iterdir())

    def test_start_and_end_events(self, tmp_path):
        audit = AuditLog(str(tmp_path))

        audit.log_migration_start(str(tmp_path), {"parallel": 4})
        audit.log_error("App.csproj", "boom")
        audit.log_migration_end({"migrated": 1})

        lines = _audit_lines(audit)
        assert [line["eventType"] for line in lines] == ["MigrationStart", "Error", "MigrationEnd"]
        assert lines[0]["options"] == {"parallel": 4}
        assert all("timestamp" in line for line in lines)
