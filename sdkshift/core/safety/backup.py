"""Per-run backup sessions and rollback.

A session lives in ``<root>/_sdkshift_backup_<yyyyMMdd_HHmmss>/`` and is
described by a ``manifest.json``.  Every file is backed up at most once
per session, before its first mutation, so the backup always holds the
pre-run bytes.
"""

import getpass
import json
import logging
import os
import platform
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ... import __version__
from ..errors import BackupError
from .files import atomic_write, hash_file

logger = logging.getLogger(__name__)

BACKUP_DIRECTORY_PREFIX = "_sdkshift_backup_"
MANIFEST_FILE_NAME = "manifest.json"
SESSION_ID_FORMAT = "%Y%m%d_%H%M%S"


# ── Session records ──────────────────────────────────────────────────


@dataclass
class BackupFileInfo:
    original_path: str
    backup_path: str
    content_hash: str
    size: int
    backup_time: str

    def to_dict(self) -> dict:
        return {
            "originalPath": self.original_path,
            "backupPath": self.backup_path,
            "contentHash": self.content_hash,
            "size": self.size,
            "backupTime": self.backup_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupFileInfo":
        return cls(
            original_path=data["originalPath"],
            backup_path=data["backupPath"],
            content_hash=data["contentHash"],
            size=int(data.get("size", 0)),
            backup_time=data.get("backupTime", ""),
        )


@dataclass
class BackupSession:
    session_id: str
    start_time: str
    root_directory: str
    backup_directory: str
    backed_up_files: List[BackupFileInfo] = field(default_factory=list)
    created_files: List[str] = field(default_factory=list)
    tool_version: str = __version__
    user_name: str = ""
    machine_name: str = ""

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "startTime": self.start_time,
            "rootDirectory": self.root_directory,
            "backupDirectory": self.backup_directory,
            "backedUpFiles": [f.to_dict() for f in self.backed_up_files],
            "createdFiles": list(self.created_files),
            "toolVersion": self.tool_version,
            "userName": self.user_name,
            "machineName": self.machine_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupSession":
        return cls(
            session_id=data["sessionId"],
            start_time=data.get("startTime", ""),
            root_directory=data["rootDirectory"],
            backup_directory=data["backupDirectory"],
            backed_up_files=[BackupFileInfo.from_dict(f) for f in data.get("backedUpFiles", [])],
            created_files=list(data.get("createdFiles", [])),
            tool_version=data.get("toolVersion", ""),
            user_name=data.get("userName", ""),
            machine_name=data.get("machineName", ""),
        )


@dataclass
class RollbackResult:
    success: bool
    restored_files: List[str] = field(default_factory=list)
    deleted_files: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    session: Optional[BackupSession] = None


# ── Backup service ───────────────────────────────────────────────────


class BackupService:
    """Backs up files under one root before they are first changed."""

    def __init__(self, root_directory: str):
        self.root_directory = os.path.abspath(root_directory)
        self.session: Optional[BackupSession] = None
        self._by_path: Dict[str, BackupFileInfo] = {}
        self._lock = threading.Lock()

    def start_session(self) -> BackupSession:
        now = datetime.now(timezone.utc)
        session_id = now.strftime(SESSION_ID_FORMAT)
        backup_dir = os.path.join(self.root_directory, BACKUP_DIRECTORY_PREFIX + session_id)
        suffix = 1
        while os.path.exists(backup_dir):
            suffix += 1
            session_id = f"{now.strftime(SESSION_ID_FORMAT)}_{suffix}"
            backup_dir = os.path.join(self.root_directory, BACKUP_DIRECTORY_PREFIX + session_id)

        try:
            os.makedirs(backup_dir)
            with open(os.path.join(backup_dir, ".gitignore"), "w", encoding="utf-8") as f:
                f.write("*\n")
        except OSError as e:
            raise BackupError(f"Cannot create backup directory {backup_dir}: {e}") from e

        self.session = BackupSession(
            session_id=session_id,
            start_time=now.isoformat(),
            root_directory=self.root_directory,
            backup_directory=backup_dir,
            user_name=_current_user(),
            machine_name=platform.node(),
        )
        self._write_manifest()
        logger.info("Started backup session %s in %s", session_id, backup_dir)
        return self.session

    def backup_file(self, path: str) -> Optional[BackupFileInfo]:
        """Copy *path* into the session unless it was already backed up.

        Returns ``None`` when the file does not exist.
        """
        if self.session is None:
            raise BackupError("No active backup session")
        path = os.path.abspath(path)
        with self._lock:
            if path in self._by_path:
                return self._by_path[path]
            if not os.path.isfile(path):
                return None

            backup_path = os.path.join(self.session.backup_directory, self._relative_name(path))
            try:
                os.makedirs(os.path.dirname(backup_path), exist_ok=True)
                shutil.copyfile(path, backup_path)
            except OSError as e:
                raise BackupError(f"Failed to back up {path}: {e}") from e

            info = BackupFileInfo(
                original_path=path,
                backup_path=backup_path,
                content_hash=hash_file(backup_path) or "",
                size=os.path.getsize(backup_path),
                backup_time=datetime.now(timezone.utc).isoformat(),
            )
            self._by_path[path] = info
            self.session.backed_up_files.append(info)
            self._write_manifest()
        logger.debug("Backed up %s -> %s", path, backup_path)
        return info

    def record_created(self, path: str) -> None:
        """Note a file the run created, so rollback can remove it."""
        if self.session is None:
            raise BackupError("No active backup session")
        path = os.path.abspath(path)
        with self._lock:
            if path not in self.session.created_files:
                self.session.created_files.append(path)
                self._write_manifest()

    def _relative_name(self, path: str) -> str:
        try:
            rel = os.path.relpath(path, self.root_directory)
        except ValueError:
            rel = None
        if rel is None or rel.startswith(os.pardir):
            # outside the root: keep the absolute layout under _external
            drive, tail = os.path.splitdrive(path)
            rel = os.path.join("_external", drive.strip(":\\/"), tail.lstrip("\\/"))
        return rel

    def _write_manifest(self) -> None:
        manifest = os.path.join(self.session.backup_directory, MANIFEST_FILE_NAME)
        data = json.dumps(self.session.to_dict(), indent=2).encode("utf-8")
        try:
            atomic_write(manifest, data)
        except OSError as e:
            raise BackupError(f"Failed to write backup manifest {manifest}: {e}") from e


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


# ── Listing and rollback ─────────────────────────────────────────────


def load_session(backup_directory: str) -> Optional[BackupSession]:
    manifest = os.path.join(backup_directory, MANIFEST_FILE_NAME)
    try:
        with open(manifest, "r", encoding="utf-8") as f:
            return BackupSession.from_dict(json.load(f))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, KeyError):
        logger.warning("Unreadable backup manifest %s", manifest, exc_info=True)
        return None


def list_backups(root_directory: str) -> List[BackupSession]:
    """All readable backup sessions under *root_directory*, newest first."""
    root_directory = os.path.abspath(root_directory)
    if not os.path.isdir(root_directory):
        return []
    sessions = []
    for name in os.listdir(root_directory):
        candidate = os.path.join(root_directory, name)
        if name.startswith(BACKUP_DIRECTORY_PREFIX) and os.path.isdir(candidate):
            session = load_session(candidate)
            if session is not None:
                sessions.append(session)
    sessions.sort(key=lambda s: (s.start_time, s.session_id), reverse=True)
    return sessions


def rollback(root_directory: str, session_id: Optional[str] = None) -> RollbackResult:
    """Restore every file recorded in a backup session.

    *session_id* defaults to the newest session.  A failure on one file
    is recorded and the remaining files are still restored.
    """
    sessions = list_backups(root_directory)
    if not sessions:
        return RollbackResult(success=False, errors=[f"No backup sessions found in {root_directory}"])

    if session_id is None or session_id == "latest":
        session = sessions[0]
    else:
        session = next((s for s in sessions if s.session_id == session_id), None)
        if session is None:
            return RollbackResult(success=False, errors=[f"Backup session {session_id} not found"])

    result = RollbackResult(success=True, session=session)
    logger.info("Rolling back session %s (%d files)", session.session_id, len(session.backed_up_files))

    for info in session.backed_up_files:
        try:
            if hash_file(info.backup_path) != info.content_hash:
                result.errors.append(f"Backup integrity check failed for {info.original_path}")
                continue
            with open(info.backup_path, "rb") as f:
                data = f.read()
            atomic_write(info.original_path, data)
            if hash_file(info.original_path) != info.content_hash:
                result.errors.append(f"Restored content mismatch for {info.original_path}")
                continue
            result.restored_files.append(info.original_path)
        except OSError as e:
            logger.warning("Failed to restore %s", info.original_path, exc_info=True)
            result.errors.append(f"Failed to restore {info.original_path}: {e}")

    restored = set(result.restored_files)
    for path in session.created_files:
        if path in restored:
            continue
        try:
            os.unlink(path)
            result.deleted_files.append(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            result.errors.append(f"Failed to remove created file {path}: {e}")

    result.success = not result.errors
    logger.info(
        "Rollback of %s finished: %d restored, %d removed, %d errors",
        session.session_id, len(result.restored_files), len(result.deleted_files), len(result.errors),
    )
    return result
