"""
SKINDROP — Audit Trail

In-memory record of host actions and round lifecycle events. Keeps the most
recent 500 entries; older ones fall off the front.

Usage:
    from tools.audit_trail import AuditTrail
    audit = AuditTrail()
    audit.record("WINNER_PICKED", note="alice")
    audit.entries()  # → [{"ts": ..., "action": "WINNER_PICKED", ...}]
"""

import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Optional

logger = logging.getLogger("skindrop.audit")

AUDIT_LIMIT = 500


@dataclass
class AuditEntry:
    ts: float
    action: str
    round_id: Optional[str] = None
    session_id: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class AuditTrail:

    def __init__(self, limit: int = AUDIT_LIMIT, clock=time.time):
        self._entries: deque[AuditEntry] = deque(maxlen=limit)
        self._lock = threading.Lock()
        self._clock = clock

    def record(self, action: str, round_id: str = None, session_id: str = None,
               note: str = None) -> AuditEntry:
        entry = AuditEntry(ts=self._clock(), action=action, round_id=round_id,
                           session_id=session_id, note=note)
        with self._lock:
            self._entries.append(entry)
        logger.info(f"[AUDIT] {action} {round_id or ''} {note or ''}".rstrip())
        return entry

    def entries(self) -> list[dict]:
        with self._lock:
            return [e.to_dict() for e in self._entries]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
