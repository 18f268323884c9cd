"""
HomeHarmony — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

ORPHAN_POLICIES = ("reassign", "block", "leave")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite (members, tasks, items and the follow-up ledger share one file)
    DATABASE_PATH: str = "data/household.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Clock
    TIMEZONE: str = "UTC"

    # Recurring chores
    FOLLOW_UP_CHECK_MINUTES: int = 15
    FOLLOW_UP_FIRE_HOUR: int = 5

    # New task defaults
    NEW_TASK_DUE_DAYS: int = 7
    DEFAULT_TASK_WEIGHT: int = 2
    DEFAULT_TASK_DURATION_DAYS: int = 7

    # What happens to a removed member's open tasks: reassign | block | leave
    ORPHANED_TASK_POLICY: str = "reassign"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator(
        "FOLLOW_UP_CHECK_MINUTES", "FOLLOW_UP_FIRE_HOUR", "NEW_TASK_DUE_DAYS",
        "DEFAULT_TASK_WEIGHT", "DEFAULT_TASK_DURATION_DAYS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("FOLLOW_UP_FIRE_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"FOLLOW_UP_FIRE_HOUR must be 0-23, got {v}")
        return v

    @field_validator("ORPHANED_TASK_POLICY", mode="before")
    @classmethod
    def check_policy(cls, v: str) -> str:
        policy = str(v).strip().lower()
        if policy not in ORPHAN_POLICIES:
            raise ValueError(f"ORPHANED_TASK_POLICY must be one of {ORPHAN_POLICIES}")
        return policy


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/household.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        FOLLOW_UP_CHECK_MINUTES=os.getenv("FOLLOW_UP_CHECK_MINUTES", "15"),
        FOLLOW_UP_FIRE_HOUR=os.getenv("FOLLOW_UP_FIRE_HOUR", "5"),
        NEW_TASK_DUE_DAYS=os.getenv("NEW_TASK_DUE_DAYS", "7"),
        DEFAULT_TASK_WEIGHT=os.getenv("DEFAULT_TASK_WEIGHT", "2"),
        DEFAULT_TASK_DURATION_DAYS=os.getenv("DEFAULT_TASK_DURATION_DAYS", "7"),
        ORPHANED_TASK_POLICY=os.getenv("ORPHANED_TASK_POLICY", "reassign"),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
