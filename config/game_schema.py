"""
SKINDROP — Socket Payload Schemas

Inbound payloads for the Socket.IO events. Field names on the wire are
camelCase (the browser client's convention); Python code uses snake_case.

Usage:
    from config.game_schema import ConfigUpdatePayload, parse_payload
    payload = parse_payload(ConfigUpdatePayload, {"targetAvg": 8000})
    payload.target_avg  # → 8000.0
"""

from __future__ import annotations
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tools.game_errors import ValidationError


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ═══════════════════════════════════════════════════════════════
# Host
# ═══════════════════════════════════════════════════════════════

class LoginPayload(_Payload):
    password: str = ""


class ResumePayload(_Payload):
    token: str


class ConfigUpdatePayload(_Payload):
    target_avg: Optional[float] = Field(default=None, alias="targetAvg")
    max_win: Optional[float] = Field(default=None, alias="maxWin")


class PickWinnerPayload(_Payload):
    manual: Optional[str] = None


class AddBankPayload(_Payload):
    amount: float = 0


class AddParticipantPayload(_Payload):
    username: str = Field(min_length=1, max_length=64)


class ForceMaxWinPayload(_Payload):
    mode: Literal["NEXT_ROUND", "THIS_ROUND"]
    password: str = ""


# ═══════════════════════════════════════════════════════════════
# Player
# ═══════════════════════════════════════════════════════════════

class ClickTilePayload(_Payload):
    # Range and type are checked by the round itself (InvalidTileIndex)
    tile_index: Any = Field(default=None, alias="tileIndex")


def parse_payload(model: type[_Payload], data: Any, tag: str = "InvalidPayload") -> _Payload:
    """Validate a raw event payload, raising the game's ValidationError on failure."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(tag, f"Expected an object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
        raise ValidationError(tag, f"{field}: {first.get('msg', 'invalid value')}") from e
