"""
SKINDROP — Game Errors

User-facing failures. Every one is raised before any state is touched, so a
caller can safely re-issue the request after fixing it.

    ValidationError     bad input (tile index, payload, config value)
    AuthorizationError  missing/expired session, wrong password
    PreconditionError   the game is not in a state that allows the action

Broken sequences are not in this family: see prize_engine.SequenceIntegrityError.
"""


class GameError(Exception):
    """Base for errors returned to the caller as {"ok": False, ...}."""

    tag = "GameError"
    default_message = "Request failed"

    def __init__(self, tag: str = None, message: str = None):
        self.tag = tag or self.tag
        self.message = message or self.default_message
        super().__init__(f"{self.tag}: {self.message}")

    def to_ack(self) -> dict:
        return {"ok": False, "error": self.message, "code": self.tag}


class ValidationError(GameError):
    tag = "ValidationError"
    default_message = "Invalid request"


class AuthorizationError(GameError):
    tag = "Unauthorized"
    default_message = "Authorization required"


class PreconditionError(GameError):
    tag = "PreconditionFailed"
    default_message = "Action not allowed right now"


# ── Concrete cases ──

def invalid_tile_index(tile_index) -> ValidationError:
    return ValidationError("InvalidTileIndex", f"Invalid tile index: {tile_index!r}")


def tile_already_opened(tile_index: int) -> ValidationError:
    return ValidationError("TileAlreadyOpened", f"Tile {tile_index} is already open")


def no_participants() -> PreconditionError:
    return PreconditionError("NoParticipants", "No participants have joined")


def unknown_participant(name: str) -> PreconditionError:
    return PreconditionError("UnknownParticipant", f"{name!r} is not a participant")


def no_winner_selected() -> PreconditionError:
    return PreconditionError("NoWinnerSelected", "Pick a winner first")


def round_inactive() -> PreconditionError:
    return PreconditionError("RoundInactive", "Round is not active")


def round_in_progress() -> PreconditionError:
    return PreconditionError("RoundInProgress", "A round is already being played")


def picks_exhausted() -> PreconditionError:
    return PreconditionError("PicksExhausted", "All picks have been used")


def force_mode_disabled() -> PreconditionError:
    return PreconditionError("ForceModeDisabled", "Force mode is disabled on this server")


def bank_above_max_win(bank: int, max_win: int) -> PreconditionError:
    return PreconditionError(
        "BankAboveMaxWin", f"Bank {bank} is already above max win {max_win}"
    )


def round_not_ready() -> PreconditionError:
    return PreconditionError("RoundNotReady", "The round can only be started once a winner is picked")


def invalid_config(field: str, value) -> ValidationError:
    return ValidationError("InvalidConfig", f"{field} must be a number, got {value!r}")


def invalid_amount(value) -> ValidationError:
    return ValidationError("InvalidAmount", f"Amount must be a number, got {value!r}")


def invalid_force_mode(mode) -> ValidationError:
    return ValidationError("InvalidForceMode", f"Unknown force mode {mode!r}")
