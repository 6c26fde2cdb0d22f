"""
SKINDROP — Socket.IO Game Events

Request/response handlers for the host panel and the player board, plus the
broadcasts that keep every overlay in sync. Handlers return their ack; a
GameError anywhere in a handler becomes {"ok": False, "error": ..., "code": ...}.

    host:*      privileged, need a live host session on this connection
    player:*    the winner's board
    game:*      read-only

Usage:
    from api.game_events import GameContext, register_game_events
    register_game_events(socketio, ctx)
"""

import functools
import logging
import time
from dataclasses import dataclass
from typing import Optional

from flask import request
from flask_socketio import emit

from config.game_schema import (
    AddBankPayload, AddParticipantPayload, ClickTilePayload, ConfigUpdatePayload,
    ForceMaxWinPayload, LoginPayload, PickWinnerPayload, ResumePayload, parse_payload,
)
from config.settings import GameSettings
from tools import game_errors
from tools.audit_trail import AuditTrail
from tools.game_errors import AuthorizationError, GameError
from tools.host_sessions import HostSessionGate
from tools.round_state import RoundStateMachine
from tools.skins_catalog import SkinCatalog
from tools.twitch_chat import ChatRelay, TwitchChatClient

logger = logging.getLogger("skindrop.events")


@dataclass
class GameContext:
    """Everything the handlers share. One per server process."""
    settings: GameSettings
    machine: RoundStateMachine
    gate: HostSessionGate
    audit: AuditTrail
    catalog: SkinCatalog
    chat: Optional[TwitchChatClient] = None

    def chat_status(self) -> dict:
        if self.chat is None:
            return {"connected": False, "channel": self.settings.twitch_channel}
        return self.chat.status()


def _short(token: Optional[str]) -> Optional[str]:
    return token[:8] if token else None


def acked(handler):
    """Turn GameErrors raised by a handler into an error ack."""
    @functools.wraps(handler)
    def wrapper(*args):
        try:
            return handler(*args)
        except GameError as e:
            logger.info(f"{handler.__name__} rejected for {request.sid}: {e}")
            return e.to_ack()
    return wrapper


def broadcast_state(socketio, ctx: GameContext) -> None:
    socketio.emit("game:state", ctx.machine.snapshot())


def broadcast_chat_status(socketio, ctx: GameContext) -> None:
    socketio.emit("twitch:status", ctx.chat_status())


def make_chat_relay(socketio, ctx: GameContext) -> ChatRelay:
    """ChatRelay wired to the registry and the chat:message / participant:joined broadcasts."""

    def on_participant(username: str) -> None:
        if ctx.machine.add_participant(username):
            socketio.emit("participant:joined", {"username": username})
            broadcast_state(socketio, ctx)

    def on_chat(username: str, message: str) -> None:
        socketio.emit("chat:message", {
            "username": username,
            "message": message,
            "ts": int(time.time() * 1000),
        })

    return ChatRelay(ctx.settings.join_keyword, on_participant, on_chat,
                     own_username=ctx.settings.twitch_bot_username)


def register_game_events(socketio, ctx: GameContext) -> None:
    machine, gate, audit = ctx.machine, ctx.gate, ctx.audit

    def require_host() -> str:
        return _short(gate.require(request.sid))

    # ── Connection ──

    @socketio.on("connect")
    def on_connect(auth=None):
        logger.info(f"Client connected: {request.sid}")
        emit("game:state", machine.snapshot())
        emit("twitch:status", ctx.chat_status())

    @socketio.on("disconnect")
    def on_disconnect(*args):
        # Host sessions survive disconnects so a reload can host:resume
        logger.info(f"Client disconnected: {request.sid}")

    @socketio.on("game:getState")
    def get_state(data=None):
        return machine.snapshot()

    # ── Host session ──

    @socketio.on("host:login")
    @acked
    def host_login(data=None):
        payload = parse_payload(LoginPayload, data)
        token = gate.login(payload.password, request.sid)
        audit.record("HOST_LOGIN", session_id=_short(token))
        return {"ok": True, "token": token}

    @socketio.on("host:logout")
    @acked
    def host_logout(data=None):
        token = gate.token_for(request.sid)
        gate.logout(request.sid)
        if token is not None:
            audit.record("HOST_LOGOUT", session_id=_short(token))
        return {"ok": True}

    @socketio.on("host:resume")
    @acked
    def host_resume(data=None):
        payload = parse_payload(ResumePayload, data)
        if not gate.rebind(payload.token, request.sid):
            raise AuthorizationError("SessionExpired", "Session expired, log in again")
        audit.record("HOST_RESUME", session_id=_short(payload.token))
        return {"ok": True}

    # ── Host controls ──

    @socketio.on("host:updateConfig")
    @acked
    def host_update_config(data=None):
        session = require_host()
        payload = parse_payload(ConfigUpdatePayload, data, tag="InvalidConfig")
        config = machine.update_config(payload.target_avg, payload.max_win, session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True, **config}

    @socketio.on("host:pickWinner")
    @acked
    def host_pick_winner(data=None):
        session = require_host()
        payload = parse_payload(PickWinnerPayload, data)
        winner = machine.pick_winner(payload.manual, session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True, "winner": winner}

    @socketio.on("host:startRound")
    @acked
    def host_start_round(data=None):
        session = require_host()
        round_id = machine.start_round(session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True, "roundId": round_id}

    @socketio.on("host:reset")
    @acked
    def host_reset(data=None):
        session = require_host()
        machine.reset(session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True}

    @socketio.on("host:clearParticipants")
    @acked
    def host_clear_participants(data=None):
        session = require_host()
        machine.clear_participants(session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True}

    @socketio.on("host:addParticipant")
    @acked
    def host_add_participant(data=None):
        session = require_host()
        payload = parse_payload(AddParticipantPayload, data)
        added = machine.add_participant(payload.username, session_id=session)
        if added:
            socketio.emit("participant:joined", {"username": payload.username.strip()})
            broadcast_state(socketio, ctx)
        return {"ok": True, "added": added}

    @socketio.on("host:addBank")
    @acked
    def host_add_bank(data=None):
        session = require_host()
        payload = parse_payload(AddBankPayload, data)
        bank = machine.add_bank(payload.amount, session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True, "bank": bank}

    @socketio.on("host:forceMaxWin")
    @acked
    def host_force_max_win(data=None):
        session = require_host()
        if not machine.force_enabled:
            raise game_errors.force_mode_disabled()
        payload = parse_payload(ForceMaxWinPayload, data)
        if not gate.check_password(payload.password):
            raise AuthorizationError("InvalidPassword", "Wrong password")
        message = machine.force_max_win(payload.mode, session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True, "message": message}

    @socketio.on("host:cancelForce")
    @acked
    def host_cancel_force(data=None):
        session = require_host()
        machine.cancel_force(session_id=session)
        broadcast_state(socketio, ctx)
        return {"ok": True}

    # ── Player ──

    @socketio.on("player:pickWinner")
    @acked
    def player_pick_winner(data=None):
        winner = machine.pick_winner()
        broadcast_state(socketio, ctx)
        return {"ok": True, "winner": winner}

    @socketio.on("player:startRound")
    @acked
    def player_start_round(data=None):
        round_id = machine.start_round(require_ready=True)
        broadcast_state(socketio, ctx)
        return {"ok": True, "roundId": round_id}

    @socketio.on("player:clickTile")
    @acked
    def player_click_tile(data=None):
        payload = parse_payload(ClickTilePayload, data)
        reveal = machine.click_tile(payload.tile_index)
        broadcast_state(socketio, ctx)
        socketio.emit("tile:revealed", reveal.to_dict())
        return {"ok": True, **{k: v for k, v in reveal.to_dict().items() if k != "tileIndex"}}
