#!/usr/bin/env python3
"""
SKINDROP — Socket.IO & HTTP Integration Tests

Run: python tests_socket_api.py

Drives the real Flask-SocketIO app through its test clients: host login,
winner draw, a full round replayed from the acks, force max win mid-round,
chat joins and the HTTP endpoints.
"""

import random
import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import GameSettings
from prize_engine import Add, Stop, apply_outcome, outcome_from_dict
from tests_round_state import FixedGenerator
from web_app import BackgroundLoops, create_app

PASSWORD = "test-password"

# First seed whose first draw from a two-name list is index 0
ALICE_SEED = next(s for s in range(100) if random.Random(s).randrange(2) == 0)


def _settings(**overrides) -> GameSettings:
    base = dict(admin_password=PASSWORD, allow_force_max_win=True, twitch_enabled=False,
                secret_key="test-secret", cors_origins=["*"])
    base.update(overrides)
    return GameSettings(**base)


def _events(client, name: str) -> list:
    return [r["args"][0] for r in client.get_received() if r["name"] == name]


class SocketTestCase(unittest.TestCase):
    settings_overrides: dict = {}
    seed = ALICE_SEED

    def setUp(self):
        self.app, self.socketio, self.ctx = create_app(_settings(**self.settings_overrides),
                                                       rng=random.Random(self.seed))
        self.app.config["TESTING"] = True
        self.host = self.socketio.test_client(self.app)
        self.viewer = self.socketio.test_client(self.app)

    def tearDown(self):
        for client in (self.host, self.viewer):
            if client.is_connected():
                client.disconnect()

    def login(self, client=None):
        ack = (client or self.host).emit("host:login", {"password": PASSWORD}, callback=True)
        self.assertTrue(ack["ok"], ack)
        return ack["token"]

    def join(self, *names):
        for name in names:
            ack = self.host.emit("host:addParticipant", {"username": name}, callback=True)
            self.assertTrue(ack["ok"], ack)


# ============================================================
# Connection & auth
# ============================================================

class TestConnectionAndAuth(SocketTestCase):

    def test_connect_pushes_state_and_chat_status(self):
        received = self.viewer.get_received()
        names = [r["name"] for r in received]
        self.assertIn("game:state", names)
        status = next(r["args"][0] for r in received if r["name"] == "twitch:status")
        self.assertEqual(status, {"connected": False, "channel": "shinneeshinn"})

    def test_get_state_hides_sequence(self):
        state = self.viewer.emit("game:getState", callback=True)
        self.assertEqual(state["status"], "IDLE")
        self.assertNotIn("sequence", state)

    def test_host_events_need_login(self):
        ack = self.host.emit("host:startRound", callback=True)
        self.assertEqual(ack, {"ok": False, "error": "Host login required", "code": "Unauthorized"})

    def test_wrong_password(self):
        ack = self.host.emit("host:login", {"password": "guess"}, callback=True)
        self.assertFalse(ack["ok"])
        self.assertEqual(ack["code"], "InvalidPassword")

    def test_logout_revokes(self):
        self.login()
        self.assertEqual(self.host.emit("host:logout", callback=True), {"ok": True})
        ack = self.host.emit("host:reset", callback=True)
        self.assertEqual(ack["code"], "Unauthorized")

    def test_anonymous_logout_not_audited(self):
        for _ in range(3):
            self.assertEqual(self.viewer.emit("host:logout", callback=True), {"ok": True})
        self.assertEqual(self.ctx.audit.entries(), [])

        self.login()
        self.host.emit("host:logout", callback=True)
        actions = [e["action"] for e in self.ctx.audit.entries()]
        self.assertEqual(actions, ["HOST_LOGIN", "HOST_LOGOUT"])

    def test_resume_on_new_connection(self):
        token = self.login()
        ack = self.viewer.emit("host:resume", {"token": token}, callback=True)
        self.assertEqual(ack, {"ok": True})
        self.assertTrue(self.viewer.emit("host:cancelForce", callback=True)["ok"])
        self.assertEqual(self.host.emit("host:cancelForce", callback=True)["code"], "Unauthorized")

    def test_resume_unknown_token(self):
        ack = self.viewer.emit("host:resume", {"token": "nope"}, callback=True)
        self.assertEqual(ack["code"], "SessionExpired")

    def test_bad_payload(self):
        self.login()
        ack = self.host.emit("host:forceMaxWin", {"mode": "WHENEVER"}, callback=True)
        self.assertEqual(ack["code"], "InvalidPayload")
        ack = self.host.emit("host:updateConfig", {"maxWin": "lots"}, callback=True)
        self.assertEqual(ack["code"], "InvalidConfig")


# ============================================================
# Full round
# ============================================================

class TestEndToEndRound(SocketTestCase):

    def test_full_round_replays_to_broadcast_bank(self):
        self.login()
        self.join("alice", "bob")
        ack = self.host.emit("host:updateConfig", {"targetAvg": 9000, "maxWin": 20000},
                             callback=True)
        self.assertEqual(ack, {"ok": True, "targetAvg": 9000, "maxWin": 20000})

        ack = self.host.emit("host:pickWinner", {}, callback=True)
        self.assertEqual(ack, {"ok": True, "winner": "alice"})

        ack = self.host.emit("host:startRound", callback=True)
        self.assertTrue(ack["ok"])
        round_id = ack["roundId"]
        self.assertEqual(len(self.ctx.machine.state.sequence), 10)
        self.viewer.get_received()

        bank, acks = 0, []
        for tile in range(14):
            ack = self.viewer.emit("player:clickTile", {"tileIndex": tile}, callback=True)
            self.assertTrue(ack["ok"], ack)
            acks.append(ack)
            bank = apply_outcome(bank, outcome_from_dict(ack["outcome"]), cap=20000)
            self.assertEqual(bank, ack["bankAfter"])
            if ack["roundEnded"]:
                break

        self.assertTrue(acks[-1]["roundEnded"])
        self.assertLessEqual(len(acks), 10)
        if len(acks) < 10:
            self.assertEqual(acks[-1]["outcome"], {"t": "STOP"})

        states = _events(self.host, "game:state")
        self.assertEqual(states[-1]["bank"], bank)
        self.assertEqual(states[-1]["status"], "ENDED")
        self.assertEqual(states[-1]["roundId"], round_id)
        self.assertEqual(self.viewer.emit("game:getState", callback=True)["bank"], bank)

        actions = [e["action"] for e in self.ctx.audit.entries()]
        for expected in ("HOST_LOGIN", "CONFIG_UPDATE", "WINNER_PICKED", "ROUND_START",
                         "ROUND_ENDED"):
            self.assertIn(expected, actions)

    def test_reveal_broadcast_to_spectators(self):
        self.login()
        self.join("alice", "bob")
        self.host.emit("host:pickWinner", {"manual": "BOB"}, callback=True)
        self.host.emit("host:startRound", callback=True)
        self.host.get_received()

        ack = self.viewer.emit("player:clickTile", {"tileIndex": 7}, callback=True)
        reveals = _events(self.host, "tile:revealed")
        self.assertEqual(len(reveals), 1)
        self.assertEqual(reveals[0]["tileIndex"], 7)
        self.assertEqual(reveals[0]["bankAfter"], ack["bankAfter"])

    def test_click_errors(self):
        self.login()
        self.join("alice")
        self.host.emit("host:pickWinner", {}, callback=True)
        self.host.emit("host:startRound", callback=True)
        self.assertEqual(self.viewer.emit("player:clickTile", {"tileIndex": 14},
                                          callback=True)["code"], "InvalidTileIndex")
        self.viewer.emit("player:clickTile", {"tileIndex": 2}, callback=True)
        self.assertEqual(self.viewer.emit("player:clickTile", {"tileIndex": 2},
                                          callback=True)["code"], "TileAlreadyOpened")

    def test_manual_unknown_winner(self):
        self.login()
        self.join("alice")
        ack = self.host.emit("host:pickWinner", {"manual": "mallory"}, callback=True)
        self.assertEqual(ack["code"], "UnknownParticipant")

    def test_player_flow_without_host(self):
        self.ctx.machine.add_participant("alice")
        self.assertTrue(self.viewer.emit("player:pickWinner", callback=True)["ok"])
        self.assertTrue(self.viewer.emit("player:startRound", callback=True)["ok"])
        ack = self.viewer.emit("player:startRound", callback=True)
        self.assertEqual(ack["code"], "RoundInProgress")

    def test_add_bank(self):
        self.login()
        self.assertEqual(self.host.emit("host:addBank", {"amount": 100}, callback=True)["code"],
                         "RoundInactive")
        self.join("alice")
        self.host.emit("host:pickWinner", {}, callback=True)
        self.host.emit("host:startRound", callback=True)
        ack = self.host.emit("host:addBank", {"amount": 250}, callback=True)
        self.assertEqual(ack, {"ok": True, "bank": 250})

    def test_reset_and_clear(self):
        self.login()
        self.join("alice", "bob")
        self.assertTrue(self.host.emit("host:clearParticipants", callback=True)["ok"])
        self.assertEqual(self.viewer.emit("game:getState", callback=True)["participants"], [])
        self.join("carol")
        self.host.emit("host:pickWinner", {}, callback=True)
        self.assertTrue(self.host.emit("host:reset", callback=True)["ok"])
        state = self.viewer.emit("game:getState", callback=True)
        self.assertEqual((state["status"], state["winner"], state["participants"]),
                         ("IDLE", None, []))


# ============================================================
# Force max win
# ============================================================

class TestForceMaxWin(SocketTestCase):

    def test_this_round_from_pick_three(self):
        board = [Add(500)] * 3 + [Stop()] + [Add(100)] * 6
        self.ctx.machine.generator = FixedGenerator(board, rng=self.ctx.machine.rng)
        self.login()
        self.join("alice", "bob")
        self.host.emit("host:pickWinner", {}, callback=True)
        self.host.emit("host:startRound", callback=True)

        for tile in (0, 1, 2):
            ack = self.viewer.emit("player:clickTile", {"tileIndex": tile}, callback=True)
        self.assertEqual(ack["bankAfter"], 1500)

        ack = self.host.emit("host:forceMaxWin", {"mode": "THIS_ROUND", "password": PASSWORD},
                             callback=True)
        self.assertTrue(ack["ok"], ack)
        self.assertEqual(self.viewer.emit("game:getState", callback=True)["forceMode"],
                         "THIS_ROUND")

        for tile in range(3, 10):
            ack = self.viewer.emit("player:clickTile", {"tileIndex": tile}, callback=True)
            self.assertNotEqual(ack["outcome"]["t"], "STOP")
        self.assertTrue(ack["roundEnded"])
        self.assertEqual(ack["bankAfter"], 20000)

    def test_next_round(self):
        self.login()
        self.join("alice")
        ack = self.host.emit("host:forceMaxWin", {"mode": "NEXT_ROUND", "password": PASSWORD},
                             callback=True)
        self.assertTrue(ack["ok"])
        self.host.emit("host:pickWinner", {}, callback=True)
        self.host.emit("host:startRound", callback=True)
        state = self.viewer.emit("game:getState", callback=True)
        self.assertEqual((state["profile"], state["forceMode"]), ("jackpot", "NONE"))

        for tile in range(10):
            ack = self.viewer.emit("player:clickTile", {"tileIndex": tile}, callback=True)
        self.assertEqual(ack["bankAfter"], 20000)

    def test_password_rechecked(self):
        self.login()
        ack = self.host.emit("host:forceMaxWin", {"mode": "NEXT_ROUND", "password": "guess"},
                             callback=True)
        self.assertEqual(ack["code"], "InvalidPassword")

    def test_this_round_needs_live_round(self):
        self.login()
        ack = self.host.emit("host:forceMaxWin", {"mode": "THIS_ROUND", "password": PASSWORD},
                             callback=True)
        self.assertEqual(ack["code"], "RoundInactive")


class TestForceDisabled(SocketTestCase):
    settings_overrides = {"allow_force_max_win": False}

    def test_flag_checked_before_password(self):
        self.login()
        ack = self.host.emit("host:forceMaxWin", {"mode": "NEXT_ROUND", "password": "guess"},
                             callback=True)
        self.assertEqual(ack["code"], "ForceModeDisabled")


# ============================================================
# Chat joins
# ============================================================

class TestChatJoins(SocketTestCase):

    def test_keyword_join_broadcasts(self):
        from api.game_events import make_chat_relay
        relay = make_chat_relay(self.socketio, self.ctx)
        self.viewer.get_received()

        self.assertTrue(relay.handle("Viewer42", "Я ЛЕГЕНДА!"))
        relay.handle("viewer42", "легенда again")
        self.assertFalse(relay.handle("Nightbot", "легенда"))

        received = self.viewer.get_received()
        joined = [r["args"][0] for r in received if r["name"] == "participant:joined"]
        chat = [r["args"][0] for r in received if r["name"] == "chat:message"]
        self.assertEqual(joined, [{"username": "Viewer42"}])
        self.assertEqual([c["message"] for c in chat], ["Я ЛЕГЕНДА!", "легенда again"])
        self.assertEqual(self.ctx.machine.participants.snapshot(), ["Viewer42"])


# ============================================================
# HTTP
# ============================================================

class TestHttpRoutes(SocketTestCase):

    def setUp(self):
        super().setUp()
        self.http = self.app.test_client()

    def test_health(self):
        self.assertEqual(self.http.get("/health").get_json(), {"status": "ok"})
        body = self.http.get("/api/health").get_json()
        self.assertTrue(body["ok"])
        self.assertIsInstance(body["timestamp"], int)

    def test_force_enabled(self):
        self.assertEqual(self.http.get("/api/force-enabled").get_json(), {"enabled": True})

    def test_skins_empty_before_refresh(self):
        self.assertEqual(self.http.get("/api/skins").get_json(), [])

    def test_audit_requires_password(self):
        self.assertEqual(self.http.get("/api/audit").status_code, 401)
        self.assertEqual(self.http.get("/api/audit?password=guess").status_code, 401)
        self.login()
        resp = self.http.get("/api/audit", headers={"X-Admin-Password": PASSWORD})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()[-1]["action"], "HOST_LOGIN")
        self.assertEqual(self.http.get(f"/api/audit?password={PASSWORD}").status_code, 200)

    def test_json_404(self):
        resp = self.http.get("/api/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json(), {"error": "Not found"})


class TestBackgroundLoops(SocketTestCase):

    def test_stopped_loops_exit_immediately(self):
        loops = BackgroundLoops(self.socketio, self.ctx)
        loops.stop()
        self.assertTrue(loops.stopped)
        loops._broadcast_loop()
        loops._sweep_loop()


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
