"""
SKINDROP — Server Configuration

Everything the server reads from the environment (or a .env file next to it).

    ADMIN_PASSWORD          shared host password (login + force re-check)
    ALLOW_FORCE_MAX_WIN     "true" enables the force max win override
    DEFAULT_MAX_WIN         starting max win            (20000)
    DEFAULT_TARGET_AVG      starting target average     (9000)
    DEFAULT_MAX_PICKS       picks per round, 2-14       (10)
    TWITCH_CHANNEL / TWITCH_BOT_USERNAME / TWITCH_OAUTH_TOKEN / JOIN_KEYWORD
    SESSION_TTL_SECONDS     host session idle timeout   (86400)
    STATE_BROADCAST_INTERVAL / SESSION_SWEEP_INTERVAL   (5 / 3600 seconds)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent


# ============================================================
# Game Bounds
# ============================================================

TILE_COUNT = 14
TARGET_AVG_BOUNDS = (1000, 100000)
MAX_WIN_BOUNDS = (5000, 500000)
MAX_PICKS_BOUNDS = (2, TILE_COUNT)
ADD_BANK_BOUNDS = (0, 100000)

DEFAULT_SKINS_SOURCES = [
    "https://cdn.jsdelivr.net/gh/qwkdev/csapi@main/data2.json",
    "https://raw.githubusercontent.com/qwkdev/csapi/main/data2.json",
]


def clamp(value, bounds: tuple):
    lo, hi = bounds
    return max(lo, min(hi, value))


def _env_bool(key: str, default: bool = False) -> bool:
    return os.getenv(key, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_list(key: str, default: list) -> list:
    raw = os.getenv(key, "")
    if not raw.strip():
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# ============================================================
# Settings
# ============================================================

@dataclass
class GameSettings:
    admin_password: str = ""
    allow_force_max_win: bool = False

    default_max_win: int = 20000
    default_target_avg: int = 9000
    default_max_picks: int = 10

    host: str = "0.0.0.0"
    port: int = 3000
    secret_key: str = ""
    cors_origins: list = field(default_factory=lambda: ["http://localhost:5173",
                                                         "http://localhost:3000"])

    twitch_enabled: bool = True
    twitch_channel: str = "shinneeshinn"
    twitch_bot_username: str = ""
    twitch_oauth_token: str = ""
    join_keyword: str = "легенда"

    session_ttl_seconds: int = 24 * 60 * 60
    state_broadcast_interval: float = 5.0
    session_sweep_interval: float = 60 * 60

    skins_sources: list = field(default_factory=lambda: list(DEFAULT_SKINS_SOURCES))
    skins_timeout: float = 10.0

    def __post_init__(self):
        self.default_max_win = clamp(self.default_max_win, MAX_WIN_BOUNDS)
        self.default_target_avg = clamp(self.default_target_avg, TARGET_AVG_BOUNDS)
        self.default_max_picks = clamp(self.default_max_picks, MAX_PICKS_BOUNDS)

    @classmethod
    def from_env(cls) -> "GameSettings":
        production = os.getenv("NODE_ENV", os.getenv("APP_ENV", "development")) == "production"
        return cls(
            admin_password=os.getenv("ADMIN_PASSWORD", ""),
            allow_force_max_win=_env_bool("ALLOW_FORCE_MAX_WIN"),
            default_max_win=_env_int("DEFAULT_MAX_WIN", 20000),
            default_target_avg=_env_int("DEFAULT_TARGET_AVG", 9000),
            default_max_picks=_env_int("DEFAULT_MAX_PICKS", 10),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
            secret_key=os.getenv("FLASK_SECRET_KEY") or os.getenv("SECRET_KEY", ""),
            cors_origins=_env_list(
                "CORS_ORIGINS",
                ["*"] if production else ["http://localhost:5173", "http://localhost:3000"],
            ),
            twitch_enabled=_env_bool("TWITCH_ENABLED", True),
            twitch_channel=os.getenv("TWITCH_CHANNEL", "shinneeshinn"),
            twitch_bot_username=os.getenv("TWITCH_BOT_USERNAME", ""),
            twitch_oauth_token=os.getenv("TWITCH_OAUTH_TOKEN", ""),
            join_keyword=os.getenv("JOIN_KEYWORD", "легенда"),
            session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 24 * 60 * 60),
            state_broadcast_interval=_env_float("STATE_BROADCAST_INTERVAL", 5.0),
            session_sweep_interval=_env_float("SESSION_SWEEP_INTERVAL", 60 * 60),
            skins_sources=_env_list("SKINS_SOURCES", DEFAULT_SKINS_SOURCES),
        )
