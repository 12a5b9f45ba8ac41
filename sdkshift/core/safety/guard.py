"""Single entry point for every file mutation a run performs.

Each write or delete backs the file up first (when enabled), replaces it
atomically and emits exactly one audit event.  Writes whose bytes match
the file on disk are skipped without an event.
"""

import logging
import os
from typing import Optional

from ..errors import BackupError
from .audit import AuditEvent, AuditEventKind, AuditLog
from .backup import BackupService
from .files import atomic_write, hash_bytes, hash_file

logger = logging.getLogger(__name__)


class GuardedFileSystem:
    def __init__(self, audit: AuditLog, backup: Optional[BackupService] = None):
        self.audit = audit
        self.backup = backup

    def write_text(self, path: str, text: str, reason: str = "") -> Optional[AuditEvent]:
        return self.write_bytes(path, text.encode("utf-8"), reason)

    def write_bytes(self, path: str, data: bytes, reason: str = "") -> Optional[AuditEvent]:
        path = os.path.abspath(path)
        before_hash = hash_file(path)
        after_hash = hash_bytes(data)
        if before_hash == after_hash:
            logger.debug("Unchanged, not writing %s", path)
            return None

        if self.backup is not None:
            if before_hash is not None:
                self.backup.backup_file(path)
            else:
                self.backup.record_created(path)

        try:
            atomic_write(path, data)
        except OSError as e:
            self.audit.log_error(path, str(e))
            raise BackupError(f"Failed to write {path}: {e}") from e

        event = AuditEvent(
            kind=AuditEventKind.CREATED if before_hash is None else AuditEventKind.MODIFIED,
            path=path,
            before_hash=before_hash,
            after_hash=after_hash,
            size=len(data),
            reason=reason,
        )
        self.audit.record(event)
        return event

    def delete(self, path: str, reason: str = "") -> Optional[AuditEvent]:
        path = os.path.abspath(path)
        before_hash = hash_file(path)
        if before_hash is None:
            return None
        size = os.path.getsize(path)

        if self.backup is not None:
            self.backup.backup_file(path)
        try:
            os.unlink(path)
        except OSError as e:
            self.audit.log_error(path, str(e))
            raise BackupError(f"Failed to delete {path}: {e}") from e

        event = AuditEvent(
            kind=AuditEventKind.DELETED,
            path=path,
            before_hash=before_hash,
            after_hash=None,
            size=size,
            reason=reason,
        )
        self.audit.record(event)
        return event
