"""
SKINDROP — Round State Machine

Owns the single live round: who won the draw, the hidden outcome sequence,
which tiles are open and the running bank.

    IDLE ──pick_winner──▶ READY ──start_round──▶ PLAYING ──last pick / STOP──▶ ENDED
      ▲                                                                         │
      └──────────────────────────────── reset ◀─────────────────────────────────┘

Every method validates before it mutates, so a raised GameError leaves the
round exactly as it was. Callers broadcast after the method returns; nothing
here talks to the network.

Usage:
    from tools.round_state import RoundStateMachine
    machine = RoundStateMachine(target_avg=9000, max_win=20000, max_picks=10)
    machine.add_participant("alice")
    machine.pick_winner()
    machine.start_round()
    reveal = machine.click_tile(4)
    reveal.to_dict()  # → {"tileIndex": 4, "outcome": {...}, "bankAfter": ..., "roundEnded": ...}
"""

import logging
import math
import random
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from config.settings import (
    ADD_BANK_BOUNDS, MAX_PICKS_BOUNDS, MAX_WIN_BOUNDS, TARGET_AVG_BOUNDS, TILE_COUNT, clamp,
)
from prize_engine import (
    OutcomeGenerator, Profile, SequenceIntegrityError, Stop, apply_outcome,
)
from tools import game_errors
from tools.audit_trail import AuditTrail
from tools.participants import ParticipantRegistry

logger = logging.getLogger("skindrop.round")


class RoundStatus(str, Enum):
    IDLE = "IDLE"
    READY = "READY"
    PLAYING = "PLAYING"
    ENDED = "ENDED"


class ForceMode(str, Enum):
    NONE = "NONE"
    NEXT_ROUND = "NEXT_ROUND"
    THIS_ROUND = "THIS_ROUND"


@dataclass
class OpenedTile:
    tile_index: int
    pick_index: int
    outcome: object
    bank_after: int

    def to_dict(self) -> dict:
        return {
            "tileIndex": self.tile_index,
            "pickIndex": self.pick_index,
            "outcome": self.outcome.to_dict(),
            "bankAfter": self.bank_after,
        }


@dataclass
class TileReveal:
    """Result of one click: what the player saw and whether the round is over."""
    tile_index: int
    pick_index: int
    outcome: object
    bank_after: int
    round_ended: bool

    def to_dict(self) -> dict:
        return {
            "tileIndex": self.tile_index,
            "outcome": self.outcome.to_dict(),
            "bankAfter": self.bank_after,
            "roundEnded": self.round_ended,
        }


@dataclass
class RoundState:
    target_avg: int
    max_win: int
    max_picks: int
    status: RoundStatus = RoundStatus.IDLE
    round_id: Optional[str] = None
    winner: Optional[str] = None
    bank: int = 0
    pick_index: int = 0
    opened_tiles: dict = field(default_factory=dict)
    sequence: list = field(default_factory=list)
    force_mode: ForceMode = ForceMode.NONE
    profile: Optional[Profile] = None
    skins: list = field(default_factory=list)

    def public_snapshot(self, participants: list[str]) -> dict:
        """Everything a client may see. The sequence never leaves the server."""
        return {
            "roundId": self.round_id,
            "winner": self.winner,
            "bank": self.bank,
            "maxWin": self.max_win,
            "targetAvg": self.target_avg,
            "maxPicks": self.max_picks,
            "pickIndex": self.pick_index,
            "openedTiles": {str(i): t.to_dict() for i, t in sorted(self.opened_tiles.items())},
            "status": self.status.value,
            "forceMode": self.force_mode.value,
            "profile": self.profile.value if self.profile else None,
            "skins": list(self.skins),
            "participants": participants,
        }


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    return value


class RoundStateMachine:

    def __init__(
        self,
        target_avg: int = 9000,
        max_win: int = 20000,
        max_picks: int = 10,
        force_enabled: bool = False,
        rng: Optional[random.Random] = None,
        generator: Optional[OutcomeGenerator] = None,
        participants: Optional[ParticipantRegistry] = None,
        audit: Optional[AuditTrail] = None,
        skins_provider: Optional[Callable[[], list]] = None,
    ):
        if generator is not None and rng is None:
            rng = generator.rng
        self.rng = rng if rng is not None else random.Random()
        self.generator = generator or OutcomeGenerator(self.rng)
        self.participants = participants if participants is not None else ParticipantRegistry()
        self.audit = audit if audit is not None else AuditTrail()
        self.force_enabled = force_enabled
        self._skins_provider = skins_provider or (lambda: [])
        self._lock = threading.RLock()
        self.state = RoundState(
            target_avg=int(clamp(target_avg, TARGET_AVG_BOUNDS)),
            max_win=int(clamp(max_win, MAX_WIN_BOUNDS)),
            max_picks=int(clamp(max_picks, MAX_PICKS_BOUNDS)),
            skins=list(self._skins_provider()),
        )

    # ── Read side ──

    def snapshot(self) -> dict:
        with self._lock:
            return self.state.public_snapshot(self.participants.snapshot())

    @property
    def status(self) -> RoundStatus:
        return self.state.status

    def refresh_skins(self) -> None:
        """Re-read the board faces, unless a round is mid-play."""
        with self._lock:
            if self.state.status != RoundStatus.PLAYING:
                self.state.skins = list(self._skins_provider())

    # ── Configuration ──

    def update_config(self, target_avg=None, max_win=None, session_id: str = None) -> dict:
        """Clamp and apply new round parameters. Takes effect from the next round."""
        changes = {}
        if target_avg is not None:
            value = _as_number(target_avg)
            if value is None:
                raise game_errors.invalid_config("targetAvg", target_avg)
            changes["target_avg"] = int(clamp(value, TARGET_AVG_BOUNDS))
        if max_win is not None:
            value = _as_number(max_win)
            if value is None:
                raise game_errors.invalid_config("maxWin", max_win)
            changes["max_win"] = int(clamp(value, MAX_WIN_BOUNDS))

        with self._lock:
            for name, value in changes.items():
                setattr(self.state, name, value)
            self.audit.record("CONFIG_UPDATE", session_id=session_id,
                              note=", ".join(f"{k}={v}" for k, v in changes.items()) or None)
            return {"targetAvg": self.state.target_avg, "maxWin": self.state.max_win}

    # ── Participants ──

    def add_participant(self, name: str, session_id: str = None) -> bool:
        """Register a viewer. Host-added names (session_id given) are audited."""
        added = self.participants.add(name)
        if added and session_id is not None:
            self.audit.record("PARTICIPANT_ADDED", session_id=session_id, note=name.strip())
        return added

    def clear_participants(self, session_id: str = None) -> None:
        with self._lock:
            self.participants.clear()
            self.audit.record("PARTICIPANTS_CLEARED", session_id=session_id)

    # ── Round lifecycle ──

    def pick_winner(self, manual: Optional[str] = None, session_id: str = None) -> str:
        with self._lock:
            names = self.participants.snapshot()
            if not names:
                raise game_errors.no_participants()
            if self.state.status == RoundStatus.PLAYING:
                raise game_errors.round_in_progress()

            if manual is not None and manual.strip():
                winner = self.participants.resolve(manual)
                if winner is None:
                    raise game_errors.unknown_participant(manual)
            else:
                winner = names[self.rng.randrange(len(names))]

            self.state.winner = winner
            self.state.status = RoundStatus.READY
            self.audit.record("WINNER_PICKED", session_id=session_id, note=winner)
            return winner

    def start_round(self, session_id: str = None, require_ready: bool = False) -> str:
        """Generate the hidden sequence and open the board. Returns the new round id."""
        with self._lock:
            state = self.state
            if not state.winner:
                raise game_errors.no_winner_selected()
            if state.status == RoundStatus.PLAYING:
                raise game_errors.round_in_progress()
            if require_ready and state.status != RoundStatus.READY:
                raise game_errors.round_not_ready()

            round_id = uuid.uuid4().hex
            if state.force_mode == ForceMode.NEXT_ROUND:
                sequence = self.generator.generate_forced_max_win_sequence(
                    state.max_win, state.max_picks)
                profile = Profile.JACKPOT
                action, note = "ROUND_START_FORCED", "Force mode: NEXT_ROUND"
            else:
                result = self.generator.generate_sequence(
                    state.target_avg, state.max_win, state.max_picks)
                sequence, profile = result.sequence, result.profile
                action, note = "ROUND_START", f"Profile: {profile.value}"

            state.round_id = round_id
            state.bank = 0
            state.pick_index = 0
            state.opened_tiles = {}
            state.sequence = sequence
            state.profile = profile
            state.force_mode = ForceMode.NONE
            state.status = RoundStatus.PLAYING
            state.skins = list(self._skins_provider())

            self.audit.record(action, round_id=round_id, session_id=session_id, note=note)
            return round_id

    def click_tile(self, tile_index) -> TileReveal:
        with self._lock:
            state = self.state
            if state.status != RoundStatus.PLAYING:
                raise game_errors.round_inactive()
            if state.pick_index >= state.max_picks:
                raise game_errors.picks_exhausted()
            if (isinstance(tile_index, bool) or not isinstance(tile_index, int)
                    or not 0 <= tile_index < TILE_COUNT):
                raise game_errors.invalid_tile_index(tile_index)
            if tile_index in state.opened_tiles:
                raise game_errors.tile_already_opened(tile_index)
            if state.pick_index >= len(state.sequence):
                raise SequenceIntegrityError(
                    f"Round {state.round_id} has {len(state.sequence)} outcomes "
                    f"but pick {state.pick_index} was requested"
                )

            pick_index = state.pick_index
            outcome = state.sequence[pick_index]
            bank_after = apply_outcome(state.bank, outcome, cap=state.max_win)

            state.opened_tiles[tile_index] = OpenedTile(tile_index, pick_index, outcome, bank_after)
            state.bank = bank_after
            state.pick_index += 1

            if isinstance(outcome, Stop) or state.pick_index >= state.max_picks:
                state.status = RoundStatus.ENDED
                self.audit.record("ROUND_ENDED", round_id=state.round_id,
                                  note=f"Final bank: {state.bank}")

            return TileReveal(tile_index, pick_index, outcome, bank_after,
                              state.status == RoundStatus.ENDED)

    def add_bank(self, amount, session_id: str = None) -> int:
        """Top up the live bank between picks. Returns the new bank."""
        value = _as_number(amount)
        if value is None:
            raise game_errors.invalid_amount(amount)
        with self._lock:
            state = self.state
            if state.status != RoundStatus.PLAYING:
                raise game_errors.round_inactive()
            added = int(clamp(value, ADD_BANK_BOUNDS))
            state.bank = min(state.bank + added, state.max_win)
            self.audit.record("BANK_ADDED", round_id=state.round_id, session_id=session_id,
                              note=f"+{added}, total: {state.bank}")
            return state.bank

    # ── Force max win ──

    def force_max_win(self, mode, session_id: str = None) -> str:
        """Arm the next round or rewrite the current one so it ends on max win."""
        if not self.force_enabled:
            raise game_errors.force_mode_disabled()
        try:
            mode = ForceMode(mode)
        except ValueError:
            raise game_errors.invalid_force_mode(mode) from None
        if mode == ForceMode.NONE:
            raise game_errors.invalid_force_mode(mode.value)

        with self._lock:
            state = self.state
            if mode == ForceMode.NEXT_ROUND:
                state.force_mode = ForceMode.NEXT_ROUND
                self.audit.record("FORCE_MAX_WIN_NEXT_ROUND", round_id=state.round_id,
                                  session_id=session_id)
                return "Next round will pay max win"

            if state.status != RoundStatus.PLAYING:
                raise game_errors.round_inactive()
            if state.bank > state.max_win:
                raise game_errors.bank_above_max_win(state.bank, state.max_win)

            state.sequence = self.generator.force_sequence_to_max_win(
                state.bank, state.pick_index, state.max_win, state.max_picks, state.sequence)
            state.force_mode = ForceMode.THIS_ROUND
            self.audit.record("FORCE_MAX_WIN_THIS_ROUND", round_id=state.round_id,
                              session_id=session_id,
                              note=f"bank {state.bank} at pick {state.pick_index}")
            return "Remaining tiles rewritten for max win"

    def cancel_force(self, session_id: str = None) -> None:
        with self._lock:
            self.state.force_mode = ForceMode.NONE
            self.audit.record("FORCE_CANCELLED", round_id=self.state.round_id,
                              session_id=session_id)

    def reset(self, session_id: str = None) -> None:
        """Back to IDLE. Keeps the configuration, drops everything else."""
        with self._lock:
            old = self.state
            self.state = RoundState(
                target_avg=old.target_avg,
                max_win=old.max_win,
                max_picks=old.max_picks,
                skins=list(self._skins_provider()),
            )
            self.participants.clear()
            self.audit.record("GAME_RESET", round_id=old.round_id, session_id=session_id)
        logger.info("Game reset")
