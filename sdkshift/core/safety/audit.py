"""Append-only JSON-lines audit of every file the tool touches."""

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

AUDIT_FILE_PREFIX = "sdkshift_audit_"


class AuditEventKind(str, Enum):
    CREATED = "Created"
    MODIFIED = "Modified"
    DELETED = "Deleted"


_EVENT_TYPES = {
    AuditEventKind.CREATED: "FileCreation",
    AuditEventKind.MODIFIED: "FileModification",
    AuditEventKind.DELETED: "FileDeletion",
}


@dataclass(frozen=True)
class AuditEvent:
    kind: AuditEventKind
    path: str
    before_hash: Optional[str]
    after_hash: Optional[str]
    size: int
    reason: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": _EVENT_TYPES[self.kind],
            "kind": self.kind.value,
            "path": self.path,
            "beforeHash": self.before_hash,
            "afterHash": self.after_hash,
            "size": self.size,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


class AuditLog:
    """Serialized writer for one run's audit file.

    When *enabled* is false nothing is written and no file is created;
    preview runs use this.
    """

    def __init__(self, directory: str, enabled: bool = True):
        self.enabled = enabled
        self.events: List[AuditEvent] = []
        self._lock = threading.Lock()
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        self.path = os.path.join(os.path.abspath(directory), f"{AUDIT_FILE_PREFIX}{stamp}.jsonl")

    def log_migration_start(self, root: str, options: Dict[str, Any]) -> None:
        self._write({"eventType": "MigrationStart", "root": root, "options": options})

    def log_migration_end(self, summary: Dict[str, Any]) -> None:
        self._write({"eventType": "MigrationEnd", **summary})

    def log_error(self, context: str, message: str) -> None:
        self._write({"eventType": "Error", "context": context, "message": message})

    def record(self, event: AuditEvent) -> None:
        if not self.enabled:
            return
        with self._lock:
            self.events.append(event)
        self._write(event.to_dict())

    def _write(self, entry: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        line = json.dumps(entry, default=str)
        with self._lock:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.info("Audit: %s", line)
