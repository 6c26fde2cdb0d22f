"""
SKINDROP — Live-Stream Skin Giveaway Server

Flask + Flask-SocketIO server for the 14-tile reveal game: the host panel and
the player board talk to it over Socket.IO, viewers join from Twitch chat.

Usage:
    python web_app.py                  # or: skindrop
    PORT=3000 ADMIN_PASSWORD=... ALLOW_FORCE_MAX_WIN=true python web_app.py
"""
import logging
import random
import secrets
import threading
import time
from typing import Optional

# ── Structured logging ──
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("skindrop")

from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from api.game_events import (
    GameContext, broadcast_chat_status, broadcast_state, make_chat_relay, register_game_events,
)
from config.settings import GameSettings
from tools.audit_trail import AuditTrail
from tools.host_sessions import HostSessionGate
from tools.participants import ParticipantRegistry
from tools.round_state import RoundStateMachine
from tools.skins_catalog import SkinCatalog
from tools.twitch_chat import TwitchChatClient


# ═══════════════════════════════════════════════
# Background loops
# ═══════════════════════════════════════════════

class BackgroundLoops:
    """Periodic state rebroadcast, session sweep and the Twitch reader.

    Started once by main(); stop() ends every loop at its next wake-up.
    """

    def __init__(self, socketio: SocketIO, ctx: GameContext):
        self.socketio = socketio
        self.ctx = ctx
        self._stop = threading.Event()
        self._started = False

    def _broadcast_loop(self):
        while not self._stop.wait(self.ctx.settings.state_broadcast_interval):
            broadcast_state(self.socketio, self.ctx)
            broadcast_chat_status(self.socketio, self.ctx)

    def _sweep_loop(self):
        while not self._stop.wait(self.ctx.settings.session_sweep_interval):
            self.ctx.gate.sweep_expired()

    def start(self):
        if self._started:
            return
        self._started = True
        self.socketio.start_background_task(self._broadcast_loop)
        self.socketio.start_background_task(self._sweep_loop)
        if self.ctx.chat is not None:
            self.socketio.start_background_task(self.ctx.chat.run_forever)
        logger.info("Background loops started")

    def stop(self):
        self._stop.set()
        if self.ctx.chat is not None:
            self.ctx.chat.stop()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()


# ═══════════════════════════════════════════════
# App factory
# ═══════════════════════════════════════════════

def create_app(settings: Optional[GameSettings] = None,
               rng: Optional[random.Random] = None) -> tuple[Flask, SocketIO, GameContext]:
    settings = settings or GameSettings.from_env()

    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
    app.secret_key = settings.secret_key or secrets.token_hex(32)
    if not settings.secret_key:
        logger.warning("FLASK_SECRET_KEY not set; using a per-process random key")

    cors = settings.cors_origins
    socketio = SocketIO(
        app,
        cors_allowed_origins="*" if cors == ["*"] else cors,
        async_mode="threading",
        ping_interval=25,
        ping_timeout=60,
    )

    audit = AuditTrail()
    catalog = SkinCatalog(settings.skins_sources, timeout=settings.skins_timeout)
    machine = RoundStateMachine(
        target_avg=settings.default_target_avg,
        max_win=settings.default_max_win,
        max_picks=settings.default_max_picks,
        force_enabled=settings.allow_force_max_win,
        rng=rng,
        participants=ParticipantRegistry(),
        audit=audit,
        skins_provider=catalog.skins,
    )
    gate = HostSessionGate(settings.admin_password, ttl_seconds=settings.session_ttl_seconds)
    ctx = GameContext(settings=settings, machine=machine, gate=gate, audit=audit,
                      catalog=catalog)
    if settings.twitch_enabled:
        ctx.chat = TwitchChatClient(
            settings.twitch_channel,
            make_chat_relay(socketio, ctx),
            username=settings.twitch_bot_username or None,
            oauth_token=settings.twitch_oauth_token or None,
        )

    register_game_events(socketio, ctx)

    # ── HTTP routes ──

    @app.route("/health")
    def health_check():
        return jsonify({"status": "ok"}), 200

    @app.route("/api/health")
    def api_health():
        return jsonify({"ok": True, "timestamp": int(time.time() * 1000)})

    @app.route("/api/skins")
    def api_skins():
        return jsonify(catalog.skins())

    @app.route("/api/audit")
    def api_audit():
        password = request.headers.get("X-Admin-Password") or request.args.get("password")
        if not gate.check_password(password):
            return jsonify({"error": "Unauthorized"}), 401
        return jsonify(audit.entries())

    @app.route("/api/force-enabled")
    def api_force_enabled():
        return jsonify({"enabled": settings.allow_force_max_win})

    @app.errorhandler(404)
    def error_404(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def error_500(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    return app, socketio, ctx


def main():
    settings = GameSettings.from_env()
    app, socketio, ctx = create_app(settings)

    logger.info("Loading skins catalog...")
    skins = ctx.catalog.refresh()
    ctx.machine.refresh_skins()
    logger.info(f"Loaded {len(skins)} skins")

    loops = BackgroundLoops(socketio, ctx)
    loops.start()
    if ctx.chat is None:
        logger.warning("Twitch chat disabled; participants can still be added manually")

    logger.info(f"SKINDROP — http://{settings.host}:{settings.port}")
    logger.info(f"Force Max Win: {'ENABLED' if settings.allow_force_max_win else 'DISABLED'}")
    try:
        socketio.run(app, host=settings.host, port=settings.port, allow_unsafe_werkzeug=True)
    finally:
        loops.stop()


if __name__ == "__main__":
    main()
