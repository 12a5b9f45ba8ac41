"""Directory-tree mutual exclusion for migration runs.

One lock file per target tree, created with ``O_CREAT | O_EXCL`` and
holding the owner's pid.  A lock whose owner is gone, or that is older
than 24 hours, is stale and may be taken over.
"""

import getpass
import json
import logging
import os
import platform
import sys
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import LockAcquisitionError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".sdkshift.lock"
STALE_AFTER = timedelta(hours=24)


@dataclass
class LockInfo:
    pid: int
    process_name: str
    acquired_at: str  # ISO-8601 UTC
    machine_name: str
    user_name: str
    is_stale: bool = False


def _is_process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
    except OSError:
        logger.warning("Could not check process %d, assuming it is alive", pid, exc_info=True)
        return True
    return True


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class DirectoryLock:
    """Exclusive lock on a directory tree for the duration of one run.

    Usage::

        with DirectoryLock(root):
            ...  # mutate files under root
    """

    def __init__(self, directory: str):
        self.directory = os.path.abspath(directory)
        self.path = os.path.join(self.directory, LOCK_FILE_NAME)
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Take the lock or raise :class:`LockAcquisitionError`."""
        existing = self.read_lock_info(self.directory)
        if existing is not None:
            if not existing.is_stale:
                raise LockAcquisitionError(
                    f"Migration already in progress by process {existing.pid} "
                    f"({existing.process_name}) since {existing.acquired_at}"
                )
            logger.info("Found stale lock from process %d, cleaning up", existing.pid)
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass

        info = LockInfo(
            pid=os.getpid(),
            process_name=os.path.basename(sys.argv[0] or "sdkshift"),
            acquired_at=datetime.now(timezone.utc).isoformat(),
            machine_name=platform.node(),
            user_name=_current_user(),
        )
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            raise LockAcquisitionError(f"Lock file {self.path} was created concurrently") from e
        except OSError as e:
            raise LockAcquisitionError(f"Cannot create lock file {self.path}: {e}") from e

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            payload = asdict(info)
            payload.pop("is_stale")
            json.dump(payload, f, indent=2)
        self._held = True
        logger.info("Lock acquired on %s by process %d", self.directory, info.pid)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            os.unlink(self.path)
            logger.info("Lock released on %s", self.directory)
        except FileNotFoundError:
            logger.warning("Lock file %s vanished before release", self.path)

    def __enter__(self) -> "DirectoryLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @staticmethod
    def read_lock_info(directory: str) -> Optional[LockInfo]:
        """Current lock holder, with staleness evaluated, or ``None``."""
        path = os.path.join(os.path.abspath(directory), LOCK_FILE_NAME)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            info = LockInfo(
                pid=int(data["pid"]),
                process_name=data.get("process_name", ""),
                acquired_at=data["acquired_at"],
                machine_name=data.get("machine_name", ""),
                user_name=data.get("user_name", ""),
            )
            acquired = datetime.fromisoformat(info.acquired_at)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("Unreadable lock file %s", path, exc_info=True)
            mtime = datetime.fromtimestamp(os.path.getmtime(path), tz=timezone.utc)
            return LockInfo(
                pid=-1, process_name="unknown", acquired_at=mtime.isoformat(),
                machine_name="", user_name="",
                is_stale=datetime.now(timezone.utc) - mtime > STALE_AFTER,
            )

        same_machine = info.machine_name in ("", platform.node())
        info.is_stale = (
            (same_machine and not _is_process_running(info.pid))
            or datetime.now(timezone.utc) - acquired > STALE_AFTER
        )
        return info
