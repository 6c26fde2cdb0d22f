"""
SKINDROP — Round Profiles & Probability Curves

A profile is drawn once per round and decides how quickly the board turns
against the player (stop curve), how often a multiplier shows up (mult curve)
and how high the running bank may climb (cap).

Curves are indexed by pick number. Rounds with more picks than a curve has
entries reuse the last entry.
"""

from __future__ import annotations

import math
from enum import Enum


class Profile(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    JACKPOT = "jackpot"


# ═══════════════════════════════════════════════════════════════
# Curves (per pick index 0-13, one per tile on the board)
# ═══════════════════════════════════════════════════════════════

STOP_CURVES = {
    Profile.NORMAL:  [0.04, 0.05, 0.06, 0.07, 0.08, 0.09, 0.10, 0.12, 0.14, 0.16, 0.18, 0.20, 0.22, 0.25],
    Profile.LOW:     [0.08, 0.09, 0.10, 0.11, 0.12, 0.14, 0.16, 0.18, 0.20, 0.22, 0.25, 0.28, 0.30, 0.35],
    Profile.JACKPOT: [0.01, 0.02, 0.03, 0.04, 0.05, 0.06, 0.07, 0.08, 0.10, 0.12, 0.14, 0.16, 0.18, 0.20],
}

MULT_CURVES = {
    Profile.NORMAL:  [0.02, 0.02, 0.02, 0.025, 0.03, 0.03, 0.035, 0.035, 0.04, 0.04, 0.045, 0.045, 0.05, 0.05],
    Profile.LOW:     [0.01, 0.01, 0.015, 0.015, 0.02, 0.02, 0.025, 0.025, 0.03, 0.03, 0.035, 0.035, 0.04, 0.04],
    Profile.JACKPOT: [0.04, 0.04, 0.05, 0.05, 0.055, 0.055, 0.06, 0.06, 0.065, 0.065, 0.07, 0.07, 0.075, 0.08],
}

# Cumulative thresholds for select_profile(): low 15%, normal 82%, jackpot 3%
PROFILE_WEIGHTS = {
    Profile.LOW: 0.15,
    Profile.NORMAL: 0.82,
    Profile.JACKPOT: 0.03,
}

# Chance that a standard-round multiplier is x1.5 (otherwise x2)
MULT_X15_WEIGHT = 0.85

NON_JACKPOT_CAP_RATIO = 0.75

# Running bank a round must reach before a Stop may fire
MIN_GUARANTEED_BALANCE = 2000


def _curve_value(curve: list[float], pick_index: int) -> float:
    return curve[min(max(pick_index, 0), len(curve) - 1)]


def stop_probability(profile: Profile, pick_index: int) -> float:
    return _curve_value(STOP_CURVES[profile], pick_index)


def mult_probability(profile: Profile, pick_index: int) -> float:
    return _curve_value(MULT_CURVES[profile], pick_index)


def profile_for_draw(r: float) -> Profile:
    """Map a uniform draw in [0, 1) to a profile."""
    if r < PROFILE_WEIGHTS[Profile.LOW]:
        return Profile.LOW
    if r < PROFILE_WEIGHTS[Profile.LOW] + PROFILE_WEIGHTS[Profile.NORMAL]:
        return Profile.NORMAL
    return Profile.JACKPOT


def round_cap(profile: Profile, max_win: int) -> int:
    """Jackpot rounds may reach max_win; every other round stops at 75% of it."""
    if profile == Profile.JACKPOT:
        return int(max_win)
    return math.floor(max_win * NON_JACKPOT_CAP_RATIO)
