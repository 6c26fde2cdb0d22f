"""
SKINDROP — Bank Evaluator

Replays outcomes into a bank value. The round state machine applies outcomes
one at a time with apply_outcome(); the generators and tests replay whole
prefixes with calculate_bank() / replay_bank(). All three share the same rules.
"""

from __future__ import annotations

import math
from typing import Optional

from prize_engine.outcomes import Add, Mult, Outcome, SequenceIntegrityError, Stop


def apply_outcome(bank: int, outcome: Outcome, cap: Optional[int] = None) -> int:
    """Return the bank after one outcome. Stop leaves the bank untouched."""
    if isinstance(outcome, Add):
        bank = bank + outcome.amount
    elif isinstance(outcome, Mult):
        bank = math.floor(bank * outcome.factor)
    elif not isinstance(outcome, Stop):
        raise SequenceIntegrityError(f"Not an outcome: {outcome!r}")
    if cap is not None and bank > cap:
        bank = cap
    return bank


def replay_bank(sequence: list, start_bank: int, start: int, stop: int) -> int:
    """Replay sequence[start:stop] on top of start_bank, halting at the first Stop."""
    bank = start_bank
    for outcome in sequence[start:stop]:
        if isinstance(outcome, Stop):
            break
        bank = apply_outcome(bank, outcome)
    return bank


def calculate_bank(sequence: list, up_to_index: int) -> int:
    """Bank after replaying picks 0..up_to_index inclusive."""
    if up_to_index < 0:
        return 0
    return replay_bank(sequence, 0, 0, up_to_index + 1)
