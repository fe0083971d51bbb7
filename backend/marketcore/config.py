# backend/marketcore/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/marketcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///marketcore.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Reject backward moves and exits from delivered/cancelled.
    # Turn off to accept any requested transition.
    ORDER_STRICT_TRANSITIONS = _env_flag("ORDER_STRICT_TRANSITIONS", True)

    # Location pings older than this are ignored for auto-assignment
    DRIVER_LOCATION_MAX_AGE_MINUTES = int(os.environ.get("DRIVER_LOCATION_MAX_AGE_MINUTES", "15"))

    # A delivery counts as on time when delivered within this many minutes of assignment
    DRIVER_ON_TIME_MINUTES = int(os.environ.get("DRIVER_ON_TIME_MINUTES", "45"))
