#!/usr/bin/env python3
"""
SKINDROP — Host Session Gate Tests

Run: python tests_host_sessions.py

Uses a hand-cranked clock so TTL behaviour is checked without sleeping.
"""

import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from tools.game_errors import AuthorizationError
from tools.host_sessions import HostSessionGate, SESSION_TTL_SECONDS


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestHostSessionGate(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.gate = HostSessionGate("hunter2", clock=self.clock)

    def test_wrong_password(self):
        with self.assertRaises(AuthorizationError) as ctx:
            self.gate.login("nope", "sid-1")
        self.assertEqual(ctx.exception.tag, "InvalidPassword")
        self.assertFalse(self.gate.is_authorized("sid-1"))

    def test_unset_password_never_matches(self):
        gate = HostSessionGate("", clock=self.clock)
        self.assertFalse(gate.check_password(""))
        self.assertFalse(gate.check_password(None))
        with self.assertRaises(AuthorizationError):
            gate.login("", "sid-1")

    def test_login_binds_connection(self):
        token = self.gate.login("hunter2", "sid-1")
        self.assertTrue(self.gate.validate(token))
        self.assertTrue(self.gate.is_authorized("sid-1"))
        self.assertFalse(self.gate.is_authorized("sid-2"))
        self.assertEqual(self.gate.require("sid-1"), token)

    def test_require_raises_for_strangers(self):
        with self.assertRaises(AuthorizationError) as ctx:
            self.gate.require("sid-9")
        self.assertEqual(ctx.exception.tag, "Unauthorized")

    def test_relogin_replaces_token(self):
        old = self.gate.login("hunter2", "sid-1")
        new = self.gate.login("hunter2", "sid-1")
        self.assertNotEqual(old, new)
        self.assertFalse(self.gate.validate(old))
        self.assertEqual(len(self.gate), 1)

    def test_sliding_expiry(self):
        token = self.gate.login("hunter2", "sid-1")
        self.clock.advance(SESSION_TTL_SECONDS - 60)
        self.assertTrue(self.gate.validate(token))       # refreshes last activity
        self.clock.advance(SESSION_TTL_SECONDS - 60)
        self.assertTrue(self.gate.validate(token))
        self.clock.advance(SESSION_TTL_SECONDS + 1)
        self.assertFalse(self.gate.validate(token))
        self.assertFalse(self.gate.is_authorized("sid-1"))

    def test_logout(self):
        token = self.gate.login("hunter2", "sid-1")
        self.gate.logout("sid-1")
        self.assertFalse(self.gate.validate(token))

    def test_rebind_moves_session(self):
        token = self.gate.login("hunter2", "sid-1")
        self.assertTrue(self.gate.rebind(token, "sid-2"))
        self.assertTrue(self.gate.is_authorized("sid-2"))
        self.assertFalse(self.gate.is_authorized("sid-1"))

    def test_rebind_expired_token(self):
        token = self.gate.login("hunter2", "sid-1")
        self.clock.advance(SESSION_TTL_SECONDS + 1)
        self.assertFalse(self.gate.rebind(token, "sid-2"))
        self.assertFalse(self.gate.rebind("made-up", "sid-2"))

    def test_sweep_expired(self):
        self.gate.login("hunter2", "sid-1")
        self.clock.advance(SESSION_TTL_SECONDS / 2)
        live = self.gate.login("hunter2", "sid-2")
        self.clock.advance(SESSION_TTL_SECONDS / 2 + 1)
        self.assertEqual(self.gate.sweep_expired(), 1)
        self.assertEqual(len(self.gate), 1)
        self.assertTrue(self.gate.validate(live))


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
