"""Configuration constants for Money Pots."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

SQLITE_FILE_NAME = os.environ.get("MONEYPOTS_SQLITE", "moneypots.db")
DATABASE_URL = os.environ.get("MONEYPOTS_DATABASE_URL") or f"sqlite:///{SQLITE_FILE_NAME}"
_log_path = os.environ.get("MONEYPOTS_LOG_PATH", "").strip()
LOG_PATH: Optional[Path] = Path(_log_path) if _log_path else None
SQL_ECHO = os.environ.get("MONEYPOTS_SQL_ECHO", "").lower() in {"1", "true", "yes"}

DEFAULT_SPLIT: Dict[str, int] = {"current": 40, "save": 30, "spend": 15, "donate": 10, "invest": 5}
FALLBACK_SPLIT: Dict[str, int] = {"current": 100, "save": 0, "spend": 0, "donate": 0, "invest": 0}

CURRENCIES: Tuple[str, ...] = ("points", "inr")
DEFAULT_CURRENCY = "points"
MIN_CONVERSION_RATE = 0.1
MAX_CONVERSION_RATE = 100.0

INTEREST_FREQUENCIES: Tuple[str, ...] = ("weekly", "monthly")
DEFAULT_INTEREST_JAR = "save"

CHORE_FREQUENCIES: Tuple[str, ...] = ("daily", "weekly", "monthly", "once")
REWARD_CATEGORIES: Tuple[str, ...] = ("experience", "privilege", "item")

NOTIFICATION_PAGE_SIZE = 50

__all__ = [
    "SQLITE_FILE_NAME",
    "DATABASE_URL",
    "LOG_PATH",
    "SQL_ECHO",
    "DEFAULT_SPLIT",
    "FALLBACK_SPLIT",
    "CURRENCIES",
    "DEFAULT_CURRENCY",
    "MIN_CONVERSION_RATE",
    "MAX_CONVERSION_RATE",
    "INTEREST_FREQUENCIES",
    "DEFAULT_INTEREST_JAR",
    "CHORE_FREQUENCIES",
    "REWARD_CATEGORIES",
    "NOTIFICATION_PAGE_SIZE",
]
