"""
SKINDROP — Host Session Gate

One shared admin password, many short-lived host sessions. A session token is
bound to the Socket.IO connection that logged in; privileged events check that
binding on every call.

Sessions expire 24h after their last use (sliding), not after creation.

Usage:
    from tools.host_sessions import HostSessionGate
    gate = HostSessionGate(password="hunter2")
    token = gate.login("hunter2", connection_id=request.sid)
    gate.require(request.sid)            # raises AuthorizationError if not a host
    gate.rebind(token, new_sid)          # reconnect from a new socket
"""

import hmac
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from tools.game_errors import AuthorizationError

logger = logging.getLogger("skindrop.auth")

SESSION_TTL_SECONDS = 24 * 60 * 60
PLACEHOLDER_PASSWORD = "change_me"


@dataclass
class HostSession:
    token: str
    connection_id: str
    created_at: float
    last_activity: float


class HostSessionGate:

    def __init__(self, password: Optional[str], ttl_seconds: float = SESSION_TTL_SECONDS,
                 clock=time.time):
        self._password = password or ""
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._sessions: dict[str, HostSession] = {}
        self._by_connection: dict[str, str] = {}

        if not self._password or self._password == PLACEHOLDER_PASSWORD:
            logger.warning("ADMIN_PASSWORD not set or using the placeholder; host login is "
                           "disabled or insecure")

    # ── Password ──

    def check_password(self, password: Optional[str]) -> bool:
        if not self._password or not password:
            return False
        return hmac.compare_digest(str(password).encode(), self._password.encode())

    # ── Session lifecycle ──

    def login(self, password: Optional[str], connection_id: str) -> str:
        """Open a session for this connection, replacing any it already had."""
        if not self.check_password(password):
            logger.warning(f"Failed host login from {connection_id}")
            raise AuthorizationError("InvalidPassword", "Wrong password")

        now = self._clock()
        token = uuid.uuid4().hex
        with self._lock:
            self._drop_connection(connection_id)
            self._sessions[token] = HostSession(token, connection_id, now, now)
            self._by_connection[connection_id] = token
        return token

    def logout(self, connection_id: str) -> None:
        with self._lock:
            self._drop_connection(connection_id)

    def _drop_connection(self, connection_id: str) -> None:
        token = self._by_connection.pop(connection_id, None)
        if token:
            self._sessions.pop(token, None)

    def _expired(self, session: HostSession, now: float) -> bool:
        return now - session.last_activity > self.ttl_seconds

    def validate(self, token: Optional[str]) -> bool:
        """True if the token is live. A successful check refreshes its TTL."""
        if not token:
            return False
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return False
            if self._expired(session, now):
                self._sessions.pop(token, None)
                self._by_connection.pop(session.connection_id, None)
                return False
            session.last_activity = now
            return True

    def token_for(self, connection_id: str) -> Optional[str]:
        with self._lock:
            return self._by_connection.get(connection_id)

    def is_authorized(self, connection_id: str) -> bool:
        return self.validate(self.token_for(connection_id))

    def require(self, connection_id: str) -> str:
        """Return the connection's token or raise AuthorizationError."""
        token = self.token_for(connection_id)
        if not self.validate(token):
            raise AuthorizationError("Unauthorized", "Host login required")
        return token

    def rebind(self, token: str, new_connection_id: str) -> bool:
        """Move a live session onto a new connection (socket reconnect)."""
        if not self.validate(token):
            return False
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return False
            self._by_connection.pop(session.connection_id, None)
            self._drop_connection(new_connection_id)
            session.connection_id = new_connection_id
            session.last_activity = self._clock()
            self._by_connection[new_connection_id] = token
        return True

    def sweep_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            dead = [s for s in self._sessions.values() if self._expired(s, now)]
            for s in dead:
                self._sessions.pop(s.token, None)
                if self._by_connection.get(s.connection_id) == s.token:
                    self._by_connection.pop(s.connection_id, None)
        if dead:
            logger.info(f"Swept {len(dead)} expired host session(s)")
        return len(dead)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
