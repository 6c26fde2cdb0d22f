"""
SKINDROP — Prize Engine

Outcome sequences for the 14-tile reveal board: the standard weighted
generator, the forced max-win variants and the bank replay rules.

Usage:
    from prize_engine import OutcomeGenerator, calculate_bank
    gen = OutcomeGenerator()
    result = gen.generate_sequence(target_avg=9000, max_win=20000, max_picks=10)
    calculate_bank(result.sequence, 9) == result.expected_value
"""

from prize_engine.bank import apply_outcome, calculate_bank, replay_bank
from prize_engine.generator import GeneratedSequence, OutcomeGenerator, VarianceStrategy
from prize_engine.outcomes import (
    Add, Mult, Outcome, OutcomeKind, SequenceIntegrityError, Stop,
    outcome_from_dict, sequence_to_dicts,
)
from prize_engine.profiles import MIN_GUARANTEED_BALANCE, Profile, round_cap

__all__ = [
    "Add",
    "Mult",
    "Stop",
    "Outcome",
    "OutcomeKind",
    "SequenceIntegrityError",
    "outcome_from_dict",
    "sequence_to_dicts",
    "Profile",
    "round_cap",
    "MIN_GUARANTEED_BALANCE",
    "apply_outcome",
    "calculate_bank",
    "replay_bank",
    "OutcomeGenerator",
    "GeneratedSequence",
    "VarianceStrategy",
]
