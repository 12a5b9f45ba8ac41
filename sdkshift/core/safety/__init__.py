from .audit import AuditEvent, AuditEventKind, AuditLog
from .backup import (
    BackupFileInfo,
    BackupService,
    BackupSession,
    RollbackResult,
    list_backups,
    rollback,
)
from .guard import GuardedFileSystem
from .lock import DirectoryLock, LockInfo

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "AuditLog",
    "BackupFileInfo",
    "BackupService",
    "BackupSession",
    "DirectoryLock",
    "GuardedFileSystem",
    "LockInfo",
    "RollbackResult",
    "list_backups",
    "rollback",
]
