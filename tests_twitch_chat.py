#!/usr/bin/env python3
"""
SKINDROP — Chat Ingest & Skins Catalog Tests

Run: python tests_twitch_chat.py

Network boundaries (the IRC socket, httpx) are mocked.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

import httpx

from tools.skins_catalog import (
    PREFERRED_SKINS, STEAM_CDN, SkinCatalog, normalize_name, select_skins,
)
from tools.twitch_chat import ChatRelay, TwitchChatClient, parse_irc_line


# ============================================================
# IRC parsing
# ============================================================

class TestParseIrcLine(unittest.TestCase):

    def test_privmsg_with_tags(self):
        line = ("@badge-info=;color=#FF0000;display-name=Cool\\sFan;mod=0 "
                ":coolfan!coolfan@coolfan.tmi.twitch.tv PRIVMSG #shinneeshinn :легенда тут\r\n")
        self.assertEqual(parse_irc_line(line), ("Cool Fan", "легенда тут"))

    def test_privmsg_without_tags(self):
        line = ":someone!someone@someone.tmi.twitch.tv PRIVMSG #chan :hi there"
        self.assertEqual(parse_irc_line(line), ("someone", "hi there"))

    def test_non_privmsg(self):
        self.assertIsNone(parse_irc_line("PING :tmi.twitch.tv"))
        self.assertIsNone(parse_irc_line(":tmi.twitch.tv 001 justinfan123 :Welcome, GLHF!"))


# ============================================================
# Relay
# ============================================================

class TestChatRelay(unittest.TestCase):

    def setUp(self):
        self.joined, self.chat = [], []
        self.relay = ChatRelay("легенда", self.joined.append,
                               lambda u, m: self.chat.append((u, m)), own_username="SkinBot")

    def test_keyword_join(self):
        self.assertTrue(self.relay.handle("Alice", "  ЛЕГЕНДА  "))
        self.assertEqual(self.joined, ["Alice"])
        self.assertEqual(self.chat, [("Alice", "  ЛЕГЕНДА  ")])

    def test_plain_chat_relayed_only(self):
        self.assertFalse(self.relay.handle("Bob", "hello"))
        self.assertEqual(self.joined, [])
        self.assertEqual(self.chat, [("Bob", "hello")])

    def test_bots_and_self_ignored(self):
        for bot in ("Nightbot", "StreamElements", "skinbot"):
            self.assertFalse(self.relay.handle(bot, "легенда"))
        self.assertEqual((self.joined, self.chat), ([], []))


# ============================================================
# IRC client
# ============================================================

class TestTwitchChatClient(unittest.TestCase):

    def setUp(self):
        self.relay = MagicMock()
        self.client = TwitchChatClient("#ShinneeShinn", self.relay)

    def test_status(self):
        self.assertEqual(self.client.status(), {"connected": False, "channel": "shinneeshinn"})

    def test_anonymous_credentials(self):
        nick, password = self.client._credentials()
        self.assertTrue(nick.startswith("justinfan"))
        self.assertEqual(password, "SCHMOOPIIE")

    def test_bot_credentials(self):
        client = TwitchChatClient("chan", self.relay, username="SkinBot", oauth_token="abc123")
        self.assertEqual(client._credentials(), ("skinbot", "oauth:abc123"))

    def test_ping_answered(self):
        self.client._sock = MagicMock()
        self.client.handle_line("PING :tmi.twitch.tv")
        self.client._sock.sendall.assert_called_once_with(b"PONG :tmi.twitch.tv\r\n")

    def test_privmsg_forwarded(self):
        self.client.handle_line(":fan!fan@fan.tmi.twitch.tv PRIVMSG #shinneeshinn :легенда")
        self.relay.handle.assert_called_once_with("fan", "легенда")

    def test_reconnect_request(self):
        with self.assertRaises(ConnectionError):
            self.client.handle_line(":tmi.twitch.tv RECONNECT")

    def test_login_failure_notice(self):
        with self.assertRaises(ConnectionError):
            self.client.handle_line(":tmi.twitch.tv NOTICE * :Login authentication failed")

    def test_control_words_in_chat_are_relayed(self):
        self.client.handle_line("@display-name=Troll;mod=0 :troll!troll@troll.tmi.twitch.tv "
                                "PRIVMSG #shinneeshinn :легенда pls RECONNECT")
        self.client.handle_line(":a!a@a.tmi.twitch.tv PRIVMSG #shinneeshinn "
                                ":легенда NOTICE Login authentication failed lol")
        self.assertEqual(self.relay.handle.call_args_list[0].args,
                         ("Troll", "легенда pls RECONNECT"))
        self.assertEqual(self.relay.handle.call_args_list[1].args,
                         ("a", "легенда NOTICE Login authentication failed lol"))
        self.assertEqual(self.relay.handle.call_count, 2)

    def test_chat_keyword_join_survives_control_words(self):
        joined = []
        client = TwitchChatClient("shinneeshinn", ChatRelay("легенда", joined.append))
        client.handle_line(":troll!troll@troll.tmi.twitch.tv PRIVMSG #shinneeshinn "
                           ":легенда RECONNECT")
        self.assertEqual(joined, ["troll"])

    def test_failed_connect_then_stop(self):
        def fail():
            self.client._stop.set()
            raise OSError("network unreachable")

        with patch.object(self.client, "_connect", side_effect=fail):
            self.client.run_forever()
        self.assertFalse(self.client.connected)


# ============================================================
# Skins catalog
# ============================================================

def _response(data):
    resp = MagicMock()
    resp.json.return_value = data
    resp.raise_for_status.return_value = None
    return resp


class TestSkinsCatalog(unittest.TestCase):

    def test_normalize_name(self):
        self.assertEqual(normalize_name("StatTrak™ AWP | Dragon Lore (Factory New)"),
                         "awp | dragon lore")
        self.assertEqual(normalize_name("★ Souvenir Butterfly Knife | Fade"),
                         "butterfly knife | fade")

    def test_select_exact_and_loose_matches(self):
        items = [
            {"name": "StatTrak™ AWP | Dragon Lore (Factory New)", "icon_url": "abc", "classid": 77},
            {"name": "★ Karambit | Fade (Minimal Wear)", "image": "https://img.example/k.png"},
        ]
        skins = select_skins(items)
        self.assertEqual(len(skins), 14)
        self.assertEqual(skins[0]["id"], "77")
        self.assertEqual(skins[0]["image"], STEAM_CDN + "abc")
        self.assertEqual(skins[0]["weapon"], "AWP")

        glock = skins[[w for w, _ in PREFERRED_SKINS].index("Glock-18")]
        self.assertEqual(glock["name"], "★ Karambit | Fade (Minimal Wear)")
        self.assertEqual(glock["image"], "https://img.example/k.png")

        howl = skins[1]
        self.assertEqual(howl["id"], "fallback-1")
        self.assertIn("placehold.co", howl["image"])

    def test_empty_before_refresh(self):
        self.assertEqual(SkinCatalog(["https://a.example/x.json"]).skins(), [])

    def test_fallback_when_every_source_fails(self):
        catalog = SkinCatalog(["https://a.example/x.json", "https://b.example/x.json"])
        with patch("httpx.get", side_effect=httpx.ConnectError("down")) as get:
            skins = catalog.refresh()
        self.assertEqual(get.call_count, 2)
        self.assertEqual(len(skins), 14)
        self.assertTrue(all(s["id"].startswith("fallback-") for s in skins))
        self.assertEqual(catalog.skins(), skins)

    def test_second_source_used(self):
        catalog = SkinCatalog(["https://a.example/x.json", "https://b.example/x.json"])
        data = {"1": {"name": "M4A4 | Howl (Field-Tested)", "id": "howl"}}
        with patch("httpx.get", side_effect=[httpx.ConnectError("down"), _response(data)]):
            skins = catalog.refresh()
        self.assertEqual(skins[1]["id"], "howl")

    def test_garbage_json_falls_back(self):
        resp = _response(None)
        resp.json.side_effect = ValueError("not json")
        with patch("httpx.get", return_value=resp):
            skins = SkinCatalog(["https://a.example/x.json"]).refresh()
        self.assertEqual(skins[0]["id"], "fallback-0")


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
