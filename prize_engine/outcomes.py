"""
SKINDROP — Tile Outcomes

The three things a tile can hold once it is opened:

    Add(amount)   bank += amount
    Mult(factor)  bank = floor(bank * factor), factor is 1.5 or 2.0
    Stop()        round ends on the spot

Each tag is its own frozen dataclass, so an Add always has an amount and a
Mult always has a factor. The wire format matches what the board client reads:

    {"t": "ADD", "amount": 1200}
    {"t": "MULT", "value": 1.5}
    {"t": "STOP"}
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


MULT_FACTORS = (1.5, 2.0)


class SequenceIntegrityError(RuntimeError):
    """A sequence or outcome is malformed. Always a bug, never a user error."""


class OutcomeKind(str, Enum):
    ADD = "ADD"
    MULT = "MULT"
    STOP = "STOP"


@dataclass(frozen=True)
class Add:
    amount: int
    kind: ClassVar[OutcomeKind] = OutcomeKind.ADD

    def __post_init__(self):
        amount = self.amount
        if isinstance(amount, bool) or not isinstance(amount, int):
            if isinstance(amount, float) and not math.isnan(amount) and amount.is_integer():
                object.__setattr__(self, "amount", int(amount))
            else:
                raise SequenceIntegrityError(f"Add amount must be an integer, got {amount!r}")
        if self.amount < 0:
            raise SequenceIntegrityError(f"Add amount must be >= 0, got {self.amount}")

    def to_dict(self) -> dict:
        return {"t": self.kind.value, "amount": self.amount}


@dataclass(frozen=True)
class Mult:
    factor: float
    kind: ClassVar[OutcomeKind] = OutcomeKind.MULT

    def __post_init__(self):
        if self.factor not in MULT_FACTORS:
            raise SequenceIntegrityError(
                f"Mult factor must be one of {MULT_FACTORS}, got {self.factor!r}"
            )

    def to_dict(self) -> dict:
        return {"t": self.kind.value, "value": self.factor}


@dataclass(frozen=True)
class Stop:
    kind: ClassVar[OutcomeKind] = OutcomeKind.STOP

    def to_dict(self) -> dict:
        return {"t": self.kind.value}


Outcome = Union[Add, Mult, Stop]


def outcome_from_dict(data: dict) -> Outcome:
    """Inverse of ``Outcome.to_dict()``."""
    tag = str(data.get("t", "")).upper()
    if tag == OutcomeKind.ADD.value:
        return Add(data.get("amount", 0))
    if tag == OutcomeKind.MULT.value:
        return Mult(float(data.get("value", 0)))
    if tag == OutcomeKind.STOP.value:
        return Stop()
    raise SequenceIntegrityError(f"Unknown outcome tag: {data.get('t')!r}")


def sequence_to_dicts(sequence: list) -> list[dict]:
    return [o.to_dict() for o in sequence]
