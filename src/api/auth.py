"""Session directory used to authenticate push-stream callers.

The product's auth layer owns sessions; this store is the view the realtime
service gets of them: session id -> validated identity.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from starlette.requests import Request

from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.realtime.registry import ConnectionIdentity

logger = logging.getLogger(__name__)


def _hash(session_id: str) -> str:
    return hashlib.sha256(session_id.encode()).hexdigest()


@dataclass
class SessionEntry:
    identity: ConnectionIdentity
    created_at: float
    expires_at: Optional[float]


class SessionStore:
    """Thread-safe map of active sessions.

    Session ids are stored SHA-256 hashed.
    """

    def __init__(self, config: Optional[APIConfig] = None):
        self.config = config or DEFAULT_API_CONFIG
        self._sessions: dict[str, SessionEntry] = {}
        self._lock = threading.Lock()

    def add(self, identity: ConnectionIdentity, ttl_hours: Optional[int] = None) -> ConnectionIdentity:
        now = time.time()
        hours = self.config.session_ttl_hours if ttl_hours is None else ttl_hours
        expires_at = now + hours * 3600 if hours else None
        with self._lock:
            self._sessions[_hash(identity.session_id)] = SessionEntry(identity, now, expires_at)
        return identity

    def get(self, session_id: str) -> Optional[ConnectionIdentity]:
        """Identity for a live session, or None if unknown or expired."""
        key = _hash(session_id)
        with self._lock:
            entry = self._sessions.get(key)
            if entry is None:
                return None
            if entry.expires_at is not None and entry.expires_at < time.time():
                del self._sessions[key]
                logger.info("Session for user=%s expired", entry.identity.user_id)
                return None
            return entry.identity

    def update_permissions(self, user_id: str, permissions: Iterable[str]) -> List[ConnectionIdentity]:
        """Replace the permission set on every session of *user_id*."""
        updated = []
        perms = frozenset(permissions)
        with self._lock:
            for entry in self._sessions.values():
                if entry.identity.user_id == user_id:
                    entry.identity = replace(entry.identity, permissions=perms)
                    updated.append(entry.identity)
        return updated

    def promote(self, user_id: str, faculty_id: Optional[str] = None) -> List[ConnectionIdentity]:
        updated = []
        with self._lock:
            for entry in self._sessions.values():
                if entry.identity.user_id == user_id:
                    entry.identity = replace(
                        entry.identity,
                        is_admin=True,
                        faculty_id=faculty_id or entry.identity.faculty_id,
                    )
                    updated.append(entry.identity)
        return updated

    def revoke(self, session_id: str) -> Optional[ConnectionIdentity]:
        with self._lock:
            entry = self._sessions.pop(_hash(session_id), None)
        return entry.identity if entry else None

    def revoke_user(self, user_id: str) -> List[ConnectionIdentity]:
        with self._lock:
            keys = [k for k, e in self._sessions.items() if e.identity.user_id == user_id]
            return [self._sessions.pop(k).identity for k in keys]

    def user_sessions(self, user_id: str) -> List[ConnectionIdentity]:
        with self._lock:
            return [e.identity for e in self._sessions.values() if e.identity.user_id == user_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def extract_session_id(request: Request, config: Optional[APIConfig] = None) -> Optional[str]:
    """Session id from the bearer token, the session header, or the cookie."""
    config = config or DEFAULT_API_CONFIG
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            return token
    header = request.headers.get(config.session_header)
    if header:
        return header.strip()
    cookie = request.cookies.get(config.session_cookie)
    if cookie:
        return cookie
    return None
