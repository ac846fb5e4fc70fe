"""
Session Registry

Tracks which scratch files belong to which client session and deletes them
when the session is cleaned up explicitly or expires.

The registry is the only component allowed to delete scratch files. Every
path handed to a client must be tracked here before the response is sent.
"""

import logging
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from constants import SessionConfig

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: str
    files: list[str] = field(default_factory=list)
    last_activity: float = field(default_factory=time.time)


class SessionRegistry:
    """
    Lock-guarded map of session id -> Session.

    Selection and removal of sessions happen atomically under the lock;
    the slow filesystem work happens after the record is gone, so a
    concurrent cleanup of the same session finds nothing to do.
    """

    def __init__(
        self,
        timeout: float = SessionConfig.TIMEOUT_SECONDS,
        frames_dir_prefix: str = SessionConfig.FRAMES_DIR_PREFIX,
    ):
        self.timeout = timeout
        self.frames_dir_prefix = frames_dir_prefix
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def touch(self, session_id: str, now: Optional[float] = None) -> None:
        """Create the session if absent and refresh its activity time."""
        now = time.time() if now is None else now
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                self._sessions[session_id] = Session(id=session_id, last_activity=now)
                logger.debug(f"Session {session_id} created")
            else:
                session.last_activity = now

    def track(self, session_id: str, path, now: Optional[float] = None) -> None:
        """Add a file to the session (creating it if absent) and refresh activity."""
        now = time.time() if now is None else now
        path = str(Path(path).resolve())
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(id=session_id, last_activity=now)
                self._sessions[session_id] = session
            if path not in session.files:
                session.files.append(path)
            session.last_activity = now

    def get(self, session_id: str) -> Optional[Session]:
        """Return a copy of the session record, or None."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return Session(id=session.id, files=list(session.files), last_activity=session.last_activity)

    def files(self, session_id: str) -> list[str]:
        with self._lock:
            session = self._sessions.get(session_id)
            return list(session.files) if session else []

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def cleanup(self, session_id: str) -> int:
        """
        Delete every tracked file of a session and forget the session.

        Idempotent: an unknown or already-cleaned session is a no-op.

        Returns:
            Number of files and directories removed from disk
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return 0

        logger.info(f"[Cleanup] Cleaning up session: {session_id}")
        return self._delete_files(session.files)

    def sweep(self, now: Optional[float] = None) -> list[str]:
        """
        Clean up every session idle for longer than the timeout.

        Returns:
            Ids of the sessions that expired
        """
        now = time.time() if now is None else now
        with self._lock:
            expired = [
                session for session in self._sessions.values()
                if now - session.last_activity > self.timeout
            ]
            for session in expired:
                del self._sessions[session.id]

        for session in expired:
            logger.info(f"[Cleanup] Session {session.id} expired")
            self._delete_files(session.files)

        return [session.id for session in expired]

    def _delete_files(self, paths: list[str]) -> int:
        removed = 0
        for file_path in paths:
            path = Path(file_path)
            try:
                if path.is_file() or path.is_symlink():
                    path.unlink()
                    removed += 1
                    logger.info(f"[Cleanup] Deleted: {path}")
            except OSError as e:
                logger.error(f"[Cleanup] Error deleting {path}: {e}")

            parent = path.parent
            if parent.name.startswith(self.frames_dir_prefix) and parent.exists():
                try:
                    shutil.rmtree(parent)
                    removed += 1
                    logger.info(f"[Cleanup] Deleted directory: {parent}")
                except OSError as e:
                    logger.error(f"[Cleanup] Error deleting directory {parent}: {e}")
        return removed


# Global registry instance
session_registry = SessionRegistry()
