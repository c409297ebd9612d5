"""
Server-side sessions.

A session is an immutable `SessionRecord` kept in a process-local store and
referenced by an opaque random id carried in the `counselor.sid` cookie. The
record is bound to a fingerprint of the client's User-Agent; a request that
presents the id with a different fingerprint destroys the session.

Lifecycle: Unauthenticated -> Authenticated -> {Expired, Invalidated, LoggedOut}.
Every terminal state needs a fresh login.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from starlette.responses import Response

from .config import SESSION_COOKIE_NAME
from .errors import SessionInvalid
from .utils import fingerprints_match, hash_user_agent

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    user_id: int
    username: str
    fingerprint: str
    expires_at: datetime


class InMemorySessionStore:
    """Thread-safe dict of session id -> SessionRecord. The lock only protects the dict itself."""

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(session_id)

    def put(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.session_id] = record

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [sid for sid, record in self._records.items() if record.expires_at <= now]
            for sid in expired:
                del self._records[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SessionManager:
    """Issues, validates and destroys sessions, and writes the session cookie."""

    def __init__(
        self,
        secret: str,
        ttl_minutes: int = 30,
        cookie_secure: bool = True,
        store: Optional[InMemorySessionStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.secret = secret
        self.ttl = timedelta(minutes=ttl_minutes)
        self.cookie_secure = cookie_secure
        self.store = store if store is not None else InMemorySessionStore()
        self.clock = clock

    def fingerprint(self, user_agent: Optional[str]) -> str:
        return hash_user_agent(user_agent, self.secret)

    def create(self, user_id: int, username: str, user_agent: Optional[str]) -> SessionRecord:
        self.purge_expired()
        record = SessionRecord(
            session_id=secrets.token_urlsafe(32),
            user_id=user_id,
            username=username,
            fingerprint=self.fingerprint(user_agent),
            expires_at=self.clock() + self.ttl,
        )
        self.store.put(record)
        logger.info(f"Session started for user_id: {user_id}")
        return record

    def validate(self, session_id: Optional[str], user_agent: Optional[str]) -> Optional[SessionRecord]:
        """
        Resolves a session id into a live session.

        Returns None for an unknown or expired id. Raises SessionInvalid (after
        destroying the session) when the client fingerprint does not match.
        On success the stored record is replaced by one with a refreshed expiry.
        """
        if not session_id:
            return None

        record = self.store.get(session_id)
        if record is None:
            return None

        now = self.clock()
        if record.expires_at <= now:
            self.store.delete(session_id)
            logger.info(f"Session expired for user_id: {record.user_id}")
            return None

        if not fingerprints_match(record.fingerprint, self.fingerprint(user_agent)):
            self.store.delete(session_id)
            logger.warning(f"Session UA mismatch for user_id: {record.user_id} - destroying session")
            raise SessionInvalid()

        refreshed = replace(record, expires_at=now + self.ttl)
        self.store.put(refreshed)
        return refreshed

    def destroy(self, session_id: Optional[str]) -> None:
        # Idempotent: unknown ids are ignored.
        if session_id:
            self.store.delete(session_id)

    def purge_expired(self) -> int:
        purged = self.store.delete_expired(self.clock())
        if purged:
            logger.info(f"Purged {purged} expired sessions.")
        return purged

    # --- Cookie helpers ---

    def attach(self, response: Response, record: SessionRecord) -> None:
        """Sets (or re-sets, for rolling expiry) the session cookie."""
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=record.session_id,
            max_age=int(self.ttl.total_seconds()),
            httponly=True,
            secure=self.cookie_secure,
            samesite="strict",
            path="/",
        )

    def detach(self, response: Response) -> None:
        response.delete_cookie(
            key=SESSION_COOKIE_NAME,
            path="/",
            httponly=True,
            secure=self.cookie_secure,
            samesite="strict",
        )
