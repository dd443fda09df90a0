"""Runtime configuration for the MyDoctor.mu backend.

Values come from the process environment, optionally seeded from a local
`.env` file. `load_settings()` is called once when the app starts.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name, default)
    if isinstance(value, str):
        return value.strip()
    return default


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if not value:
        return default
    try:
        return int(float(value))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed != parsed:  # NaN
        return default
    return parsed


@dataclass(frozen=True)
class Settings:
    data_file: Path
    mongodb_uri: str | None
    mongodb_db: str
    mongodb_timeout_ms: int
    slack_bot_token: str | None
    slack_channel_id: str | None
    slack_timeout_s: float
    admin_token: str
    admin_username: str
    admin_password_hash: str | None
    secret_key: str
    log_level: str
    host: str
    port: int
    debug: bool


def load_settings() -> Settings:
    return Settings(
        data_file=Path(_env_str("MYDOCTOR_DATA_FILE", "data.json") or "data.json"),
        mongodb_uri=_env_str("MONGODB_URI") or None,
        mongodb_db=_env_str("MONGODB_DB", "mydoctor") or "mydoctor",
        mongodb_timeout_ms=max(100, _env_int("MONGODB_TIMEOUT_MS", 5000)),
        slack_bot_token=_env_str("SLACK_BOT_TOKEN") or None,
        slack_channel_id=_env_str("SLACK_CHANNEL_ID") or None,
        slack_timeout_s=max(0.5, min(_env_float("SLACK_TIMEOUT_S", 10.0), 60.0)),
        admin_token=_env_str("ADMIN_TOKEN", "dev-admin-token") or "dev-admin-token",
        admin_username=_env_str("ADMIN_USERNAME", "admin") or "admin",
        admin_password_hash=_env_str("ADMIN_PASSWORD_HASH") or None,
        secret_key=_env_str("APP_SECRET", "dev-secret-key") or "dev-secret-key",
        log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
        host=_env_str("HOST", "0.0.0.0") or "0.0.0.0",
        port=_env_int("PORT", 5000),
        debug=_env_bool("FLASK_DEBUG", False),
    )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
