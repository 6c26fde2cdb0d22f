"""
SKINDROP — Outcome Generator

Builds the hidden outcome sequence for a round, and the forced variants used
by the host's "max win" override.

All randomness is drawn from the injected ``random.Random`` so a seeded
generator always produces the same board.

Usage:
    from prize_engine import OutcomeGenerator
    gen = OutcomeGenerator(random.Random(7))
    result = gen.generate_sequence(target_avg=9000, max_win=20000, max_picks=10)
    result.sequence, result.profile, result.expected_value

    forced = gen.generate_forced_max_win_sequence(max_win=20000, max_picks=10)
    patched = gen.force_sequence_to_max_win(1500, 3, 20000, 10, result.sequence)
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from prize_engine.bank import calculate_bank, replay_bank
from prize_engine.outcomes import Add, Mult, SequenceIntegrityError, Stop, sequence_to_dicts
from prize_engine.profiles import (
    MIN_GUARANTEED_BALANCE, MULT_X15_WEIGHT, Profile,
    mult_probability, profile_for_draw, round_cap, stop_probability,
)


MIN_ADD_AMOUNT = 5

# Forced sequences: where the multipliers may land, as fractions of the board
FORCED_MULT_WINDOW = (0.25, 0.7)
FORCED_MULT_X15_WEIGHT = 0.8
FORCED_TWO_MULTS_CHANCE = 0.4

# Tail rewrite: add a multiplier only when the bank is still this far from max
TAIL_MULT_BANK_RATIO = 0.2
TAIL_MULT_X15_WEIGHT = 0.7
TAIL_POST_MULT_SHARE = 0.3

# Spread of a single add around its even share
SPLIT_VARIANCE = (0.4, 1.6)


class VarianceStrategy(str, Enum):
    """How a round's base add amounts are spread around their average."""
    EXPONENTIAL = "exponential"          # many small, a few large
    BIMODAL = "bimodal"                  # either clearly low or clearly high
    PROFILE_UNIFORM = "profile_uniform"  # uniform, width set by the profile


@dataclass
class GeneratedSequence:
    sequence: list
    profile: Profile
    expected_value: int
    strategy: VarianceStrategy
    cap: int

    def to_dict(self) -> dict:
        return {
            "sequence": sequence_to_dicts(self.sequence),
            "profile": self.profile.value,
            "expected_value": self.expected_value,
            "strategy": self.strategy.value,
            "cap": self.cap,
        }


class OutcomeGenerator:
    """Pure sequence builder. Holds nothing but its random source."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()

    # ── Per-round draws ──────────────────────────────────────

    def select_profile(self) -> Profile:
        return profile_for_draw(self.rng.random())

    def select_strategy(self) -> VarianceStrategy:
        r = self.rng.random()
        if r < 0.33:
            return VarianceStrategy.EXPONENTIAL
        if r < 0.66:
            return VarianceStrategy.BIMODAL
        return VarianceStrategy.PROFILE_UNIFORM

    def _variance(self, strategy: VarianceStrategy, profile: Profile) -> float:
        u = self.rng.random
        if strategy == VarianceStrategy.EXPONENTIAL:
            return min(-math.log(u() + 0.01) * 0.5, 3.0)
        if strategy == VarianceStrategy.BIMODAL:
            if u() < 0.4:
                return 0.1 + u() * 0.4
            return 1.2 + u() * 1.5
        if profile == Profile.JACKPOT:
            return 0.2 + u() * 2.5
        if profile == Profile.LOW:
            return 0.1 + u() * 0.8
        return 0.15 + u() * 2.0

    def generate_base_add_amounts(
        self,
        target_avg: int,
        max_picks: int,
        profile: Profile,
        strategy: Optional[VarianceStrategy] = None,
    ) -> list[int]:
        """One add amount per pick, averaging roughly target_avg / max_picks.

        Amounts are floored at MIN_ADD_AMOUNT and shuffled so their size says
        nothing about their position on the board.
        """
        if max_picks <= 0:
            return []
        strategy = strategy or self.select_strategy()
        base = target_avg / max_picks
        amounts = [
            max(MIN_ADD_AMOUNT, round(base * self._variance(strategy, profile)))
            for _ in range(max_picks)
        ]
        self.rng.shuffle(amounts)
        return amounts

    # ── Standard rounds ──────────────────────────────────────

    def generate_sequence(
        self,
        target_avg: int,
        max_win: int,
        max_picks: int,
        forced_profile: Optional[Union[Profile, str]] = None,
    ) -> GeneratedSequence:
        """Draw a full board for a normal round."""
        if max_picks < 1:
            raise ValueError(f"max_picks must be >= 1, got {max_picks}")

        profile = Profile(forced_profile) if forced_profile else self.select_profile()
        cap = round_cap(profile, max_win)
        strategy = self.select_strategy()
        base_amounts = self.generate_base_add_amounts(target_avg, max_picks, profile, strategy)

        sequence: list = []
        running = 0
        stopped = False

        for i in range(max_picks):
            if stopped:
                # Placeholders keep the length fixed; nothing after a Stop is applied
                sequence.append(Add(0))
                continue

            stop_p = stop_probability(profile, i)
            mult_p = mult_probability(profile, i)
            r = self.rng.random()

            if r < stop_p and running >= MIN_GUARANTEED_BALANCE:
                sequence.append(Stop())
                stopped = True
            elif r < stop_p + mult_p:
                factor = 1.5 if self.rng.random() < MULT_X15_WEIGHT else 2.0
                if math.floor(running * factor) > cap:
                    factor = 1.5
                if math.floor(running * factor) <= cap:
                    sequence.append(Mult(factor))
                    running = math.floor(running * factor)
                else:
                    # Even x1.5 would break the cap: top the bank up to it instead
                    amount = cap - running
                    sequence.append(Add(amount))
                    running += amount
            else:
                amount = min(base_amounts[i], max(0, cap - running))
                sequence.append(Add(amount))
                running += amount

        expected_value = calculate_bank(sequence, max_picks - 1)
        if expected_value != running:
            raise SequenceIntegrityError(
                f"Replay mismatch: running={running}, replayed={expected_value}"
            )

        return GeneratedSequence(
            sequence=sequence,
            profile=profile,
            expected_value=expected_value,
            strategy=strategy,
            cap=cap,
        )

    # ── Forced max win ───────────────────────────────────────

    def _split_amounts(self, total: int, count: int) -> list[int]:
        """Split total into count non-negative ints that sum to it exactly."""
        if count <= 0:
            return []
        total = max(0, int(total))
        low, high = SPLIT_VARIANCE
        base = total / count
        amounts = []
        remaining = total
        for _ in range(count - 1):
            amount = int(base * (low + self.rng.random() * (high - low)))
            amount = min(max(amount, 0), remaining)
            amounts.append(amount)
            remaining -= amount
        amounts.append(remaining)
        self.rng.shuffle(amounts)
        return amounts

    @staticmethod
    def _settle_final_pick(sequence: list, start_bank: int, start: int,
                           last: int, max_win: int) -> None:
        """Rewrite sequence[last] as the add that lands exactly on max_win."""
        bank_before_last = replay_bank(sequence, start_bank, start, last)
        remainder = max_win - bank_before_last
        if remainder < 0:
            raise SequenceIntegrityError(
                f"Bank {bank_before_last} already past max win {max_win} before final pick"
            )
        sequence[last] = Add(remainder)
        final = replay_bank(sequence, start_bank, start, last + 1)
        if final != max_win:
            raise SequenceIntegrityError(f"Forced sequence ends at {final}, expected {max_win}")

    def generate_forced_max_win_sequence(self, max_win: int, max_picks: int) -> list:
        """A board with no Stop that ends exactly on max_win.

        One or two multipliers sit in the middle of the board; the adds around
        them vary in size; the last pick absorbs rounding.
        """
        if max_win <= 0:
            raise ValueError(f"max_win must be > 0, got {max_win}")
        if max_picks < 2:
            raise ValueError(f"max_picks must be >= 2, got {max_picks}")

        lo, hi = FORCED_MULT_WINDOW
        window_start = max(1, math.floor(max_picks * lo))
        window_end = min(max_picks - 1, max(window_start + 1, math.floor(max_picks * hi)))
        slots = list(range(window_start, window_end))

        num_mults = 2 if self.rng.random() < FORCED_TWO_MULTS_CHANCE else 1
        num_mults = min(num_mults, len(slots))
        positions = sorted(self.rng.sample(slots, num_mults)) if num_mults else []
        factors = [1.5 if self.rng.random() < FORCED_MULT_X15_WEIGHT else 2.0 for _ in positions]

        product = 1.0
        for f in factors:
            product *= f

        if positions:
            last_mult = positions[-1]
            pre_target = math.floor(max_win / product)
            pre_count = last_mult - (len(positions) - 1)
            post_count = max_picks - last_mult - 1
            pre_amounts = self._split_amounts(pre_target, pre_count)
            post_amounts = self._split_amounts(max_win - math.floor(pre_target * product), post_count)
        else:
            last_mult = -1
            pre_amounts = []
            post_amounts = self._split_amounts(max_win, max_picks)

        pre_iter, post_iter, factor_iter = iter(pre_amounts), iter(post_amounts), iter(factors)
        sequence: list = []
        for i in range(max_picks):
            if i in positions:
                sequence.append(Mult(next(factor_iter)))
            elif i < last_mult:
                sequence.append(Add(next(pre_iter)))
            else:
                sequence.append(Add(next(post_iter)))

        self._settle_final_pick(sequence, 0, 0, max_picks - 1, max_win)
        return sequence

    def force_sequence_to_max_win(
        self,
        current_bank: int,
        current_pick_index: int,
        max_win: int,
        max_picks: int,
        existing_sequence: list,
    ) -> list:
        """Rewrite the unopened tail so the round finishes exactly on max_win.

        Picks before current_pick_index are returned untouched. Any Stop left
        in the tail is neutralised first.
        """
        if len(existing_sequence) < max_picks:
            raise SequenceIntegrityError(
                f"Sequence has {len(existing_sequence)} outcomes, expected {max_picks}"
            )
        if current_bank > max_win:
            raise ValueError(f"Bank {current_bank} is already above max win {max_win}")

        sequence = list(existing_sequence)
        if current_pick_index >= max_picks:
            return sequence

        start = max(0, current_pick_index)
        remaining = max_picks - start

        for i in range(start, max_picks):
            if isinstance(sequence[i], Stop):
                sequence[i] = Add(0)

        deficit = max_win - current_bank

        if remaining >= 3 and current_bank < max_win * TAIL_MULT_BANK_RATIO:
            mult_pos = start + self.rng.randrange(remaining // 2)
            factor = 1.5 if self.rng.random() < TAIL_MULT_X15_WEIGHT else 2.0
            sequence[mult_pos] = Mult(factor)

            post_reserve = math.floor(deficit * TAIL_POST_MULT_SHARE)
            target_before = math.floor((max_win - post_reserve) / factor)
            before = self._split_amounts(max(0, target_before - current_bank), mult_pos - start)
            for offset, amount in enumerate(before):
                sequence[start + offset] = Add(amount)

            bank_at_mult = replay_bank(sequence, current_bank, start, mult_pos + 1)
            after = self._split_amounts(max_win - bank_at_mult, max_picks - mult_pos - 1)
            for offset, amount in enumerate(after):
                sequence[mult_pos + 1 + offset] = Add(amount)
        else:
            for offset, amount in enumerate(self._split_amounts(deficit, remaining)):
                sequence[start + offset] = Add(amount)

        self._settle_final_pick(sequence, current_bank, start, max_picks - 1, max_win)
        return sequence
