"""
SKINDROP — Twitch Chat Ingest

Reads the streamer's Twitch chat over IRC and turns it into two streams:
every non-bot message (relayed to the overlay) and keyword joins (added to the
participant registry).

Without bot credentials the reader logs in anonymously as a read-only
"justinfan" user, which is all joining needs. A dropped connection only
pauses chat joins; the host can still add people by hand.

Usage:
    from tools.twitch_chat import ChatRelay, TwitchChatClient
    relay = ChatRelay("легенда", on_participant=registry.add, on_chat=print)
    client = TwitchChatClient("shinneeshinn", relay)
    client.run_forever()       # blocks; call client.stop() from another thread
"""

import logging
import random
import socket
import ssl
import threading
from typing import Callable, Optional

logger = logging.getLogger("skindrop.twitch")

TWITCH_IRC_HOST = "irc.chat.twitch.tv"
TWITCH_IRC_PORT = 6697
TWITCH_SERVER_PREFIX = "tmi.twitch.tv"
READ_TIMEOUT = 360          # Twitch pings roughly every 5 minutes
MAX_BACKOFF = 60

BOT_USERNAMES = frozenset({
    "nightbot",
    "streamelements",
    "streamlabs",
    "moobot",
    "fossabot",
    "wizebot",
    "deepbot",
    "phantombot",
})

_TAG_ESCAPES = {"\\s": " ", "\\:": ";", "\\\\": "\\", "\\r": "\r", "\\n": "\n"}


def _unescape_tag(value: str) -> str:
    out, i = [], 0
    while i < len(value):
        pair = value[i:i + 2]
        if pair in _TAG_ESCAPES:
            out.append(_TAG_ESCAPES[pair])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


def _split_line(line: str) -> tuple[dict, str, str, str]:
    """Break a raw IRC line into (tags, prefix, command, params)."""
    line = line.rstrip("\r\n")
    tags = {}
    if line.startswith("@"):
        raw_tags, _, line = line[1:].partition(" ")
        for item in raw_tags.split(";"):
            key, _, value = item.partition("=")
            tags[key] = _unescape_tag(value)

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")
    command, _, params = line.partition(" ")
    return tags, prefix, command, params


def parse_irc_line(line: str) -> Optional[tuple[str, str]]:
    """(display_name, message) for a PRIVMSG line, None for anything else."""
    tags, prefix, command, params = _split_line(line)
    if command != "PRIVMSG" or not prefix:
        return None
    _channel, _, message = params.partition(" :")

    login = prefix.split("!", 1)[0]
    name = tags.get("display-name") or login or "anonymous"
    return name, message


class ChatRelay:
    """Filters bots, relays chat, detects the join keyword."""

    def __init__(self, keyword: str,
                 on_participant: Callable[[str], object],
                 on_chat: Optional[Callable[[str, str], object]] = None,
                 own_username: Optional[str] = None):
        self.keyword = keyword.lower()
        self.on_participant = on_participant
        self.on_chat = on_chat
        self.own_username = (own_username or "").lower()

    def handle(self, username: str, message: str) -> bool:
        """Process one chat message. Returns True if it was a join."""
        name_lower = username.lower()
        if name_lower in BOT_USERNAMES or (self.own_username and name_lower == self.own_username):
            return False

        if self.on_chat:
            self.on_chat(username, message)

        if self.keyword and self.keyword in message.lower().strip():
            logger.info(f"Join keyword from {username}")
            self.on_participant(username)
            return True
        return False


class TwitchChatClient:

    def __init__(self, channel: str, relay: ChatRelay,
                 username: Optional[str] = None, oauth_token: Optional[str] = None,
                 host: str = TWITCH_IRC_HOST, port: int = TWITCH_IRC_PORT):
        self.channel = channel.lstrip("#").lower()
        self.relay = relay
        self.username = username
        self.oauth_token = oauth_token
        self.host = host
        self.port = port
        self.connected = False
        self._stop = threading.Event()
        self._sock: Optional[socket.socket] = None

    def status(self) -> dict:
        return {"connected": self.connected, "channel": self.channel}

    # ── Connection ──

    def _credentials(self) -> tuple[str, str]:
        if self.username and self.oauth_token:
            token = self.oauth_token
            if not token.startswith("oauth:"):
                token = f"oauth:{token}"
            return self.username.lower(), token
        return f"justinfan{random.randint(10000, 99999)}", "SCHMOOPIIE"

    def _send(self, line: str) -> None:
        self._sock.sendall(f"{line}\r\n".encode("utf-8"))

    def _connect(self) -> None:
        raw = socket.create_connection((self.host, self.port), timeout=30)
        context = ssl.create_default_context()
        self._sock = context.wrap_socket(raw, server_hostname=self.host)
        self._sock.settimeout(READ_TIMEOUT)

        nick, password = self._credentials()
        self._send("CAP REQ :twitch.tv/tags twitch.tv/commands")
        self._send(f"PASS {password}")
        self._send(f"NICK {nick}")
        self._send(f"JOIN #{self.channel}")
        self.connected = True
        logger.info(f"Connected to Twitch IRC as {nick}, channel #{self.channel}")

    def _close(self) -> None:
        self.connected = False
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def handle_line(self, line: str) -> None:
        _tags, prefix, command, params = _split_line(line)
        if command == "PING":
            self._send(f"PONG {params}")
            return

        from_server = prefix in ("", TWITCH_SERVER_PREFIX)
        if command == "RECONNECT" and from_server:
            raise ConnectionError("Twitch requested reconnect")
        if command == "NOTICE" and from_server and "Login authentication failed" in params:
            raise ConnectionError("Twitch login failed")

        parsed = parse_irc_line(line)
        if parsed:
            self.relay.handle(*parsed)

    def _read_loop(self) -> None:
        buffer = b""
        while not self._stop.is_set():
            chunk = self._sock.recv(4096)
            if not chunk:
                raise ConnectionError("Twitch closed the connection")
            buffer += chunk
            *lines, buffer = buffer.split(b"\r\n")
            for raw in lines:
                if raw:
                    self.handle_line(raw.decode("utf-8", errors="replace"))

    def run_forever(self) -> None:
        """Connect and read until stop(); reconnects with exponential backoff."""
        backoff = 1
        while not self._stop.is_set():
            try:
                self._connect()
                backoff = 1
                self._read_loop()
            except (OSError, ConnectionError) as e:
                if self._stop.is_set():
                    break
                logger.warning(f"Twitch chat disconnected: {e}; retrying in {backoff}s")
            finally:
                self._close()
            if self._stop.wait(backoff):
                break
            backoff = min(backoff * 2, MAX_BACKOFF)
        logger.info("Twitch chat reader stopped")

    def stop(self) -> None:
        self._stop.set()
        self._close()
