#!/usr/bin/env python3
"""
SKINDROP — Prize Engine Test Suite

Run: python tests.py
     python tests.py -v              # verbose
     python tests.py TestForcedSequence

Test categories:
  TestOutcomes          — tagged outcomes, wire format, malformed values
  TestBankEvaluator     — apply / replay / calculate rules
  TestProfiles          — profile draw, curves, caps
  TestStandardSequence  — cap, stop floor, replay consistency
  TestForcedSequence    — fresh forced boards and mid-round rewrites
  TestPrizeSimulator    — Monte Carlo summary
  TestSettings          — env parsing and clamping
  TestPayloadSchemas    — pydantic payloads → game ValidationError
"""

import os
import random
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from prize_engine import (
    Add, Mult, OutcomeGenerator, Profile, SequenceIntegrityError, Stop,
    apply_outcome, calculate_bank, outcome_from_dict, replay_bank, round_cap,
    sequence_to_dicts, VarianceStrategy, MIN_GUARANTEED_BALANCE,
)
from prize_engine.profiles import profile_for_draw, stop_probability, mult_probability


# ============================================================
# Outcomes
# ============================================================

class TestOutcomes(unittest.TestCase):

    def test_wire_format(self):
        self.assertEqual(Add(250).to_dict(), {"t": "ADD", "amount": 250})
        self.assertEqual(Mult(1.5).to_dict(), {"t": "MULT", "value": 1.5})
        self.assertEqual(Stop().to_dict(), {"t": "STOP"})

    def test_from_dict_inverts_to_dict(self):
        seq = [Add(10), Mult(2.0), Stop()]
        self.assertEqual([outcome_from_dict(d) for d in sequence_to_dicts(seq)], seq)

    def test_malformed_add_rejected(self):
        for bad in (-1, 2.5, float("nan"), "10", True):
            with self.assertRaises(SequenceIntegrityError, msg=repr(bad)):
                Add(bad)

    def test_integral_float_add_normalised(self):
        self.assertEqual(Add(300.0).amount, 300)
        self.assertIsInstance(Add(300.0).amount, int)

    def test_unknown_mult_factor_rejected(self):
        with self.assertRaises(SequenceIntegrityError):
            Mult(3.0)

    def test_unknown_tag_rejected(self):
        with self.assertRaises(SequenceIntegrityError):
            outcome_from_dict({"t": "BONUS"})


# ============================================================
# Bank Evaluator
# ============================================================

class TestBankEvaluator(unittest.TestCase):

    def test_apply_rules(self):
        self.assertEqual(apply_outcome(100, Add(50)), 150)
        self.assertEqual(apply_outcome(1001, Mult(1.5)), 1501)   # floored
        self.assertEqual(apply_outcome(700, Stop()), 700)

    def test_apply_caps(self):
        self.assertEqual(apply_outcome(15000, Mult(2.0), cap=20000), 20000)
        self.assertEqual(apply_outcome(19990, Add(50), cap=20000), 20000)

    def test_apply_rejects_non_outcome(self):
        with self.assertRaises(SequenceIntegrityError):
            apply_outcome(0, {"t": "ADD", "amount": 5})

    def test_calculate_bank_stops_at_stop(self):
        seq = [Add(1000), Add(1500), Stop(), Add(9999), Add(9999)]
        self.assertEqual(calculate_bank(seq, 1), 2500)
        self.assertEqual(calculate_bank(seq, 4), 2500)

    def test_calculate_bank_negative_index(self):
        self.assertEqual(calculate_bank([Add(10)], -1), 0)

    def test_replay_from_midpoint(self):
        seq = [Add(100), Add(200), Mult(2.0), Add(5)]
        self.assertEqual(replay_bank(seq, 1000, 2, 4), 2005)


# ============================================================
# Profiles
# ============================================================

class TestProfiles(unittest.TestCase):

    def test_profile_thresholds(self):
        self.assertEqual(profile_for_draw(0.0), Profile.LOW)
        self.assertEqual(profile_for_draw(0.1499), Profile.LOW)
        self.assertEqual(profile_for_draw(0.15), Profile.NORMAL)
        self.assertEqual(profile_for_draw(0.9699), Profile.NORMAL)
        self.assertEqual(profile_for_draw(0.97), Profile.JACKPOT)

    def test_caps(self):
        self.assertEqual(round_cap(Profile.JACKPOT, 20000), 20000)
        self.assertEqual(round_cap(Profile.NORMAL, 20000), 15000)
        self.assertEqual(round_cap(Profile.LOW, 20001), 15000)

    def test_curve_index_clamped(self):
        self.assertEqual(stop_probability(Profile.NORMAL, 0), 0.04)
        self.assertEqual(stop_probability(Profile.NORMAL, 40), 0.25)
        self.assertEqual(mult_probability(Profile.JACKPOT, 99), 0.08)


# ============================================================
# Standard sequences
# ============================================================

class TestStandardSequence(unittest.TestCase):

    def test_invariants_over_many_seeds(self):
        """Length, cap, stop floor and replay hold for every board."""
        for seed in range(300):
            gen = OutcomeGenerator(random.Random(seed))
            result = gen.generate_sequence(target_avg=9000, max_win=20000, max_picks=10)
            seq = result.sequence

            self.assertEqual(len(seq), 10)
            self.assertEqual(result.expected_value, calculate_bank(seq, 9))
            self.assertEqual(result.cap, round_cap(result.profile, 20000))

            bank = 0
            for outcome in seq:
                if isinstance(outcome, Stop):
                    self.assertGreaterEqual(bank, MIN_GUARANTEED_BALANCE, f"seed {seed}")
                    break
                bank = apply_outcome(bank, outcome)
                self.assertLessEqual(bank, result.cap, f"seed {seed}")

    def test_forced_profile(self):
        gen = OutcomeGenerator(random.Random(1))
        for name in ("low", "normal", "jackpot"):
            self.assertEqual(gen.generate_sequence(9000, 20000, 10, forced_profile=name).profile.value,
                             name)

    def test_same_seed_same_board(self):
        a = OutcomeGenerator(random.Random(42)).generate_sequence(9000, 20000, 10)
        b = OutcomeGenerator(random.Random(42)).generate_sequence(9000, 20000, 10)
        self.assertEqual(a.sequence, b.sequence)
        self.assertEqual(a.profile, b.profile)

    def test_base_add_amounts_floor(self):
        gen = OutcomeGenerator(random.Random(5))
        for strategy in VarianceStrategy:
            amounts = gen.generate_base_add_amounts(1000, 14, Profile.LOW, strategy)
            self.assertEqual(len(amounts), 14)
            self.assertTrue(all(a >= 5 for a in amounts))

    def test_rejects_zero_picks(self):
        with self.assertRaises(ValueError):
            OutcomeGenerator().generate_sequence(9000, 20000, 0)


# ============================================================
# Forced sequences
# ============================================================

class TestForcedSequence(unittest.TestCase):

    def test_fresh_forced_board_hits_max_win(self):
        gen = OutcomeGenerator(random.Random(11))
        for max_win in (1, 5000, 20000, 123457, 500000):
            for picks in range(2, 15):
                for _ in range(5):
                    seq = gen.generate_forced_max_win_sequence(max_win, picks)
                    self.assertEqual(len(seq), picks)
                    self.assertFalse(any(isinstance(o, Stop) for o in seq))
                    self.assertLessEqual(sum(isinstance(o, Mult) for o in seq), 2)
                    self.assertEqual(calculate_bank(seq, picks - 1), max_win,
                                     f"max_win={max_win} picks={picks}")

    def test_two_picks_has_no_multiplier(self):
        gen = OutcomeGenerator(random.Random(0))
        for _ in range(20):
            seq = gen.generate_forced_max_win_sequence(20000, 2)
            self.assertTrue(all(isinstance(o, Add) for o in seq))

    def test_forced_board_argument_checks(self):
        gen = OutcomeGenerator()
        with self.assertRaises(ValueError):
            gen.generate_forced_max_win_sequence(0, 10)
        with self.assertRaises(ValueError):
            gen.generate_forced_max_win_sequence(20000, 1)

    def test_tail_rewrite_hits_max_win_and_keeps_prefix(self):
        gen = OutcomeGenerator(random.Random(23))
        checked = 0
        for _ in range(400):
            base = gen.generate_sequence(9000, 20000, 10).sequence
            pick = gen.rng.randrange(10)
            if any(isinstance(o, Stop) for o in base[:pick]):
                continue
            bank = calculate_bank(base, pick - 1)
            patched = gen.force_sequence_to_max_win(bank, pick, 20000, 10, base)

            self.assertEqual(patched[:pick], base[:pick])
            self.assertFalse(any(isinstance(o, Stop) for o in patched[pick:]))
            self.assertEqual(replay_bank(patched, bank, pick, 10), 20000)
            checked += 1
        self.assertGreater(checked, 100)

    def test_tail_rewrite_from_low_bank(self):
        """Bank 1500 at pick 3: seven picks left, none stop, ends on 20000."""
        gen = OutcomeGenerator(random.Random(3))
        base = [Add(500), Add(500), Add(500)] + [Stop()] + [Add(10)] * 6
        patched = gen.force_sequence_to_max_win(1500, 3, 20000, 10, base)
        self.assertEqual(patched[:3], base[:3])
        self.assertFalse(any(isinstance(o, Stop) for o in patched[3:]))
        self.assertEqual(sum(isinstance(o, Mult) for o in patched[3:]), 1)
        self.assertEqual(calculate_bank(patched, 9), 20000)

    def test_tail_rewrite_errors(self):
        gen = OutcomeGenerator()
        with self.assertRaises(ValueError):
            gen.force_sequence_to_max_win(25000, 3, 20000, 10, [Add(0)] * 10)
        with self.assertRaises(SequenceIntegrityError):
            gen.force_sequence_to_max_win(0, 3, 20000, 10, [Add(0)] * 4)


# ============================================================
# Prize simulator
# ============================================================

class TestPrizeSimulator(unittest.TestCase):

    def test_simulate_rounds_summary(self):
        from tools.prize_sim import simulate_rounds
        result = simulate_rounds(target_avg=9000, max_win=20000, max_picks=10,
                                 rounds=400, seed=9)
        self.assertEqual(sum(s.rounds for s in result.profiles.values()), 400)
        self.assertEqual(set(result.profiles), {"low", "normal", "jackpot"})
        self.assertTrue(result.forced_ok)
        self.assertLessEqual(result.profiles["normal"].max_bank, 15000)
        self.assertIn("forced_ok", result.to_dict())


# ============================================================
# Settings & payloads
# ============================================================

class TestSettings(unittest.TestCase):

    def test_defaults_clamped(self):
        from config.settings import GameSettings
        s = GameSettings(default_max_picks=50, default_max_win=1, default_target_avg=10 ** 9)
        self.assertEqual(s.default_max_picks, 14)
        self.assertEqual(s.default_max_win, 5000)
        self.assertEqual(s.default_target_avg, 100000)

    def test_from_env(self):
        from config.settings import GameSettings
        env = {
            "ADMIN_PASSWORD": "pw",
            "ALLOW_FORCE_MAX_WIN": "true",
            "DEFAULT_MAX_PICKS": "1",
            "PORT": "not-a-number",
            "CORS_ORIGINS": "https://a.example, https://b.example",
        }
        with patch.dict(os.environ, env):
            s = GameSettings.from_env()
        self.assertEqual(s.admin_password, "pw")
        self.assertTrue(s.allow_force_max_win)
        self.assertEqual(s.default_max_picks, 2)
        self.assertEqual(s.port, 3000)
        self.assertEqual(s.cors_origins, ["https://a.example", "https://b.example"])

    def test_force_flag_needs_literal_true(self):
        from config.settings import GameSettings
        with patch.dict(os.environ, {"ALLOW_FORCE_MAX_WIN": "false"}):
            self.assertFalse(GameSettings.from_env().allow_force_max_win)

    def test_fractional_intervals(self):
        from config.settings import GameSettings
        env = {"STATE_BROADCAST_INTERVAL": "2.5", "SESSION_SWEEP_INTERVAL": "90.5"}
        with patch.dict(os.environ, env):
            s = GameSettings.from_env()
        self.assertEqual(s.state_broadcast_interval, 2.5)
        self.assertEqual(s.session_sweep_interval, 90.5)

        with patch.dict(os.environ, {"STATE_BROADCAST_INTERVAL": "soon"}):
            self.assertEqual(GameSettings.from_env().state_broadcast_interval, 5.0)


class TestPayloadSchemas(unittest.TestCase):

    def test_camel_case_aliases(self):
        from config.game_schema import ConfigUpdatePayload, ClickTilePayload, parse_payload
        p = parse_payload(ConfigUpdatePayload, {"targetAvg": 8000, "maxWin": 30000})
        self.assertEqual((p.target_avg, p.max_win), (8000, 30000))
        self.assertEqual(parse_payload(ClickTilePayload, {"tileIndex": 3}).tile_index, 3)

    def test_missing_payload_is_empty(self):
        from config.game_schema import PickWinnerPayload, parse_payload
        self.assertIsNone(parse_payload(PickWinnerPayload, None).manual)

    def test_bad_payload_becomes_validation_error(self):
        from config.game_schema import ConfigUpdatePayload, ForceMaxWinPayload, parse_payload
        from tools.game_errors import ValidationError

        with self.assertRaises(ValidationError) as ctx:
            parse_payload(ForceMaxWinPayload, {"mode": "SOMETIME", "password": "x"})
        self.assertEqual(ctx.exception.tag, "InvalidPayload")

        with self.assertRaises(ValidationError) as ctx:
            parse_payload(ConfigUpdatePayload, {"targetAvg": "lots"}, tag="InvalidConfig")
        self.assertEqual(ctx.exception.tag, "InvalidConfig")

        with self.assertRaises(ValidationError):
            parse_payload(ConfigUpdatePayload, [1, 2, 3])


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
