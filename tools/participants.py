"""
SKINDROP — Participant Registry

Everyone who typed the join keyword, in the order they first joined.
Names are matched case-insensitively ("Alice" and "alice" are one viewer);
the first spelling seen is the one shown on screen.
"""

import logging
import threading
from typing import Optional

logger = logging.getLogger("skindrop.participants")


def _key(name: str) -> str:
    return name.strip().casefold()


class ParticipantRegistry:

    def __init__(self):
        self._lock = threading.Lock()
        self._names: dict[str, str] = {}  # casefolded key → display name

    def add(self, name: str) -> bool:
        """Register a name. Returns False for blanks and repeats."""
        if not name or not name.strip():
            return False
        key = _key(name)
        with self._lock:
            if key in self._names:
                return False
            self._names[key] = name.strip()
        logger.info(f"Participant joined: {name.strip()}")
        return True

    def resolve(self, name: str) -> Optional[str]:
        """Stored display name for any spelling of a participant, or None."""
        if not name:
            return None
        with self._lock:
            return self._names.get(_key(name))

    def contains(self, name: str) -> bool:
        return self.resolve(name) is not None

    __contains__ = contains

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._names.values())

    def clear(self) -> None:
        with self._lock:
            self._names.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)
