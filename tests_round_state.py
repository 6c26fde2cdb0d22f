#!/usr/bin/env python3
"""
SKINDROP — Round State Machine Tests

Run: python tests_round_state.py

Covers the round lifecycle, tile clicks, force max win and the registry /
audit trail the machine writes to. Boards are pinned with FixedGenerator so
every click has a known outcome.
"""

import random
import sys
import threading
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from prize_engine import (
    Add, GeneratedSequence, Mult, OutcomeGenerator, Profile, SequenceIntegrityError, Stop,
    VarianceStrategy, calculate_bank,
)
from tools.audit_trail import AuditTrail
from tools.game_errors import GameError, PreconditionError, ValidationError
from tools.participants import ParticipantRegistry
from tools.round_state import ForceMode, RoundStateMachine, RoundStatus


class FixedGenerator(OutcomeGenerator):
    """Standard rounds always get the same board."""

    def __init__(self, sequence, rng=None):
        super().__init__(rng or random.Random(0))
        self.fixed = list(sequence)

    def generate_sequence(self, target_avg, max_win, max_picks, forced_profile=None):
        return GeneratedSequence(
            sequence=list(self.fixed),
            profile=Profile.NORMAL,
            expected_value=calculate_bank(self.fixed, len(self.fixed) - 1),
            strategy=VarianceStrategy.EXPONENTIAL,
            cap=max_win,
        )


def _machine(sequence=None, max_picks=10, force_enabled=False, names=("alice", "bob")):
    gen = FixedGenerator(sequence if sequence is not None else [Add(100)] * max_picks)
    m = RoundStateMachine(target_avg=9000, max_win=20000, max_picks=max_picks,
                          force_enabled=force_enabled, generator=gen)
    for name in names:
        m.add_participant(name)
    return m


def _playing(sequence=None, **kw):
    m = _machine(sequence, **kw)
    m.pick_winner("alice")
    m.start_round()
    return m


# ============================================================
# Registry & audit
# ============================================================

class TestParticipantRegistry(unittest.TestCase):

    def test_dedupe_is_case_insensitive(self):
        reg = ParticipantRegistry()
        self.assertTrue(reg.add("Alice"))
        self.assertFalse(reg.add("alice"))
        self.assertFalse(reg.add("  ALICE "))
        self.assertTrue(reg.add("bob"))
        self.assertEqual(reg.snapshot(), ["Alice", "bob"])
        self.assertEqual(len(reg), 2)

    def test_blank_names_ignored(self):
        reg = ParticipantRegistry()
        self.assertFalse(reg.add(""))
        self.assertFalse(reg.add("   "))
        self.assertEqual(len(reg), 0)

    def test_resolve_returns_first_spelling(self):
        reg = ParticipantRegistry()
        reg.add("StreamFan")
        self.assertEqual(reg.resolve("streamfan"), "StreamFan")
        self.assertIn("STREAMFAN", reg)
        self.assertIsNone(reg.resolve("nobody"))

    def test_clear(self):
        reg = ParticipantRegistry()
        reg.add("a")
        reg.clear()
        self.assertEqual(reg.snapshot(), [])


class TestAuditTrail(unittest.TestCase):

    def test_keeps_latest_entries(self):
        audit = AuditTrail(limit=500)
        for i in range(520):
            audit.record("PING", note=str(i))
        entries = audit.entries()
        self.assertEqual(len(entries), 500)
        self.assertEqual(entries[0]["note"], "20")
        self.assertEqual(entries[-1]["note"], "519")

    def test_entry_shape(self):
        audit = AuditTrail(clock=lambda: 1234.5)
        audit.record("ROUND_START", round_id="r1", session_id="s1", note="Profile: low")
        self.assertEqual(audit.entries(), [{
            "ts": 1234.5, "action": "ROUND_START", "round_id": "r1",
            "session_id": "s1", "note": "Profile: low",
        }])


# ============================================================
# Lifecycle
# ============================================================

class TestRoundLifecycle(unittest.TestCase):

    def test_pick_winner_needs_participants(self):
        m = _machine(names=())
        with self.assertRaises(PreconditionError) as ctx:
            m.pick_winner()
        self.assertEqual(ctx.exception.tag, "NoParticipants")

    def test_manual_unknown_winner_changes_nothing(self):
        m = _machine()
        with self.assertRaises(PreconditionError) as ctx:
            m.pick_winner("mallory")
        self.assertEqual(ctx.exception.tag, "UnknownParticipant")
        self.assertEqual(m.status, RoundStatus.IDLE)
        self.assertIsNone(m.state.winner)

    def test_manual_winner_case_insensitive(self):
        m = _machine()
        self.assertEqual(m.pick_winner("ALICE"), "alice")
        self.assertEqual(m.status, RoundStatus.READY)

    def test_random_winner_uses_injected_rng(self):
        m = RoundStateMachine(rng=random.Random(7))
        for name in ("alice", "bob", "carol"):
            m.add_participant(name)
        expected = ["alice", "bob", "carol"][random.Random(7).randrange(3)]
        self.assertEqual(m.pick_winner(), expected)

    def test_start_requires_winner(self):
        m = _machine()
        with self.assertRaises(PreconditionError) as ctx:
            m.start_round()
        self.assertEqual(ctx.exception.tag, "NoWinnerSelected")

    def test_start_resets_round_fields(self):
        m = _playing()
        self.assertEqual(m.status, RoundStatus.PLAYING)
        self.assertEqual((m.state.bank, m.state.pick_index, m.state.opened_tiles), (0, 0, {}))
        self.assertEqual(len(m.state.round_id), 32)
        self.assertEqual(m.audit.entries()[-1]["action"], "ROUND_START")

    def test_cannot_restart_while_playing(self):
        m = _playing()
        with self.assertRaises(PreconditionError) as ctx:
            m.start_round()
        self.assertEqual(ctx.exception.tag, "RoundInProgress")

    def test_player_start_needs_ready(self):
        m = _playing([Add(10), Add(10)], max_picks=2)
        m.click_tile(0)
        m.click_tile(1)
        self.assertEqual(m.status, RoundStatus.ENDED)
        with self.assertRaises(PreconditionError) as ctx:
            m.start_round(require_ready=True)
        self.assertEqual(ctx.exception.tag, "RoundNotReady")
        m.start_round()   # host may replay the same winner
        self.assertEqual(m.status, RoundStatus.PLAYING)

    def test_reset_keeps_config(self):
        m = _playing()
        m.update_config(target_avg=5000, max_win=30000)
        m.reset()
        self.assertEqual(m.status, RoundStatus.IDLE)
        self.assertEqual((m.state.target_avg, m.state.max_win), (5000, 30000))
        self.assertIsNone(m.state.winner)
        self.assertEqual(m.participants.snapshot(), [])
        self.assertEqual(m.audit.entries()[-1]["action"], "GAME_RESET")

    def test_update_config_clamps_and_validates(self):
        m = _machine()
        self.assertEqual(m.update_config(target_avg=10, max_win=10 ** 9),
                         {"targetAvg": 1000, "maxWin": 500000})
        for bad in ("abc", True, float("nan")):
            with self.assertRaises(ValidationError) as ctx:
                m.update_config(target_avg=bad)
            self.assertEqual(ctx.exception.tag, "InvalidConfig")
        self.assertEqual(m.state.target_avg, 1000)


# ============================================================
# Clicks
# ============================================================

class TestClickTile(unittest.TestCase):

    def test_click_before_round(self):
        m = _machine()
        with self.assertRaises(PreconditionError) as ctx:
            m.click_tile(0)
        self.assertEqual(ctx.exception.tag, "RoundInactive")

    def test_invalid_indexes(self):
        m = _playing()
        for bad in (-1, 14, "3", None, True, 2.0):
            with self.assertRaises(ValidationError) as ctx:
                m.click_tile(bad)
            self.assertEqual(ctx.exception.tag, "InvalidTileIndex")
        self.assertEqual(m.state.pick_index, 0)

    def test_reclick_fails_without_change(self):
        m = _playing([Add(100), Add(200)] + [Add(1)] * 8)
        m.click_tile(5)
        before = m.snapshot()
        with self.assertRaises(ValidationError) as ctx:
            m.click_tile(5)
        self.assertEqual(ctx.exception.tag, "TileAlreadyOpened")
        self.assertEqual(m.snapshot(), before)

    def test_concurrent_clicks_on_same_tile(self):
        m = _playing([Add(100), Add(200)] + [Add(1)] * 8)
        workers = 8
        barrier = threading.Barrier(workers)
        reveals, tags = [], []

        def click():
            barrier.wait()
            try:
                reveals.append(m.click_tile(4))
            except ValidationError as e:
                tags.append(e.tag)

        threads = [threading.Thread(target=click) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(len(reveals), 1)
        self.assertEqual(tags, ["TileAlreadyOpened"] * (workers - 1))
        self.assertEqual(m.state.pick_index, 1)
        self.assertEqual(m.state.bank, 100)

    def test_distinct_tiles_both_persist(self):
        m = _playing([Add(100), Mult(2.0)] + [Add(1)] * 8)
        first = m.click_tile(3)
        second = m.click_tile(11)
        self.assertEqual((first.bank_after, second.bank_after), (100, 200))
        opened = m.snapshot()["openedTiles"]
        self.assertEqual(set(opened), {"3", "11"})
        self.assertEqual(opened["11"], {"tileIndex": 11, "pickIndex": 1,
                                        "outcome": {"t": "MULT", "value": 2.0},
                                        "bankAfter": 200})

    def test_stop_ends_round(self):
        m = _playing([Add(3000), Stop()] + [Add(0)] * 8)
        m.click_tile(0)
        reveal = m.click_tile(1)
        self.assertTrue(reveal.round_ended)
        self.assertEqual(reveal.to_dict()["outcome"], {"t": "STOP"})
        self.assertEqual(m.state.bank, 3000)
        self.assertEqual(m.status, RoundStatus.ENDED)
        self.assertEqual(m.audit.entries()[-1]["note"], "Final bank: 3000")
        with self.assertRaises(PreconditionError):
            m.click_tile(2)

    def test_last_pick_ends_round(self):
        m = _playing([Add(10), Add(20)], max_picks=2)
        self.assertFalse(m.click_tile(0).round_ended)
        self.assertTrue(m.click_tile(1).round_ended)
        self.assertEqual(m.state.bank, 30)

    def test_bank_capped_at_max_win(self):
        m = _playing([Add(15000), Mult(2.0)] + [Add(0)] * 8)
        m.click_tile(0)
        self.assertEqual(m.click_tile(1).bank_after, 20000)

    def test_short_sequence_is_integrity_error(self):
        m = _playing([Add(1)])
        m.click_tile(0)
        with self.assertRaises(SequenceIntegrityError):
            m.click_tile(1)

    def test_snapshot_hides_sequence(self):
        snap = _playing().snapshot()
        self.assertNotIn("sequence", snap)
        self.assertEqual(snap["participants"], ["alice", "bob"])
        self.assertEqual(snap["status"], "PLAYING")


# ============================================================
# Bank & force
# ============================================================

class TestHostOverrides(unittest.TestCase):

    def test_add_bank_only_while_playing(self):
        m = _machine()
        with self.assertRaises(PreconditionError) as ctx:
            m.add_bank(100)
        self.assertEqual(ctx.exception.tag, "RoundInactive")

    def test_add_bank_clamps(self):
        m = _playing()
        self.assertEqual(m.add_bank(-50), 0)
        self.assertEqual(m.add_bank(1500), 1500)
        self.assertEqual(m.add_bank(150000), 20000)
        with self.assertRaises(ValidationError):
            m.add_bank("lots")

    def test_force_disabled(self):
        m = _playing()
        with self.assertRaises(PreconditionError) as ctx:
            m.force_max_win("NEXT_ROUND")
        self.assertEqual(ctx.exception.tag, "ForceModeDisabled")

    def test_force_rejects_unknown_mode(self):
        m = _playing(force_enabled=True)
        for bad in ("LATER", "NONE"):
            with self.assertRaises(ValidationError):
                m.force_max_win(bad)

    def test_force_next_round(self):
        m = _machine(force_enabled=True)
        m.force_max_win("NEXT_ROUND")
        self.assertEqual(m.state.force_mode, ForceMode.NEXT_ROUND)
        m.pick_winner()
        m.start_round()
        self.assertEqual(m.state.force_mode, ForceMode.NONE)
        self.assertEqual(m.state.profile, Profile.JACKPOT)
        self.assertEqual(calculate_bank(m.state.sequence, 9), 20000)
        self.assertEqual(m.audit.entries()[-1]["action"], "ROUND_START_FORCED")

        for tile in range(10):
            reveal = m.click_tile(tile)
        self.assertTrue(reveal.round_ended)
        self.assertEqual(m.state.bank, 20000)

    def test_force_this_round_needs_play(self):
        m = _machine(force_enabled=True)
        with self.assertRaises(PreconditionError) as ctx:
            m.force_max_win(ForceMode.THIS_ROUND)
        self.assertEqual(ctx.exception.tag, "RoundInactive")

    def test_force_this_round_rewrites_tail(self):
        board = [Add(500)] * 3 + [Stop()] + [Add(100)] * 6
        m = _playing(board, force_enabled=True)
        for tile in (0, 1, 2):
            m.click_tile(tile)
        self.assertEqual(m.state.bank, 1500)

        m.force_max_win("THIS_ROUND")
        self.assertEqual(m.state.force_mode, ForceMode.THIS_ROUND)
        self.assertEqual(m.state.sequence[:3], board[:3])

        for tile in range(3, 10):
            reveal = m.click_tile(tile)
            self.assertNotIsInstance(reveal.outcome, Stop)
        self.assertTrue(reveal.round_ended)
        self.assertEqual(m.state.bank, 20000)

    def test_force_this_round_bank_above_max(self):
        m = _playing(force_enabled=True)
        m.add_bank(20000)
        m.update_config(max_win=5000)
        with self.assertRaises(PreconditionError) as ctx:
            m.force_max_win("THIS_ROUND")
        self.assertEqual(ctx.exception.tag, "BankAboveMaxWin")

    def test_cancel_force(self):
        m = _machine(force_enabled=True)
        m.force_max_win("NEXT_ROUND")
        m.cancel_force()
        self.assertEqual(m.state.force_mode, ForceMode.NONE)
        self.assertEqual(m.audit.entries()[-1]["action"], "FORCE_CANCELLED")


class TestGameErrors(unittest.TestCase):

    def test_ack_shape(self):
        err = PreconditionError("NoParticipants", "No participants have joined")
        self.assertIsInstance(err, GameError)
        self.assertEqual(err.to_ack(), {"ok": False, "error": "No participants have joined",
                                        "code": "NoParticipants"})


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
