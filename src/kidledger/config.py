"""Configuration constants for kidledger, read from the environment."""
from __future__ import annotations

import os
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

SQLITE_FILE_NAME = os.environ.get("KIDLEDGER_SQLITE", "kidledger.db")
SESSION_SECRET = os.environ.get("SESSION_SECRET", "change-this-session-secret")
DEFAULT_PARENTAL_PASSWORD = os.environ.get("DEFAULT_PARENTAL_PASSWORD", "1234")
MATURITY_CHECK_INTERVAL_SECONDS = float(os.environ.get("MATURITY_CHECK_INTERVAL_SECONDS", "30"))
PERSISTENCE_RETRY_ATTEMPTS = int(os.environ.get("PERSISTENCE_RETRY_ATTEMPTS", "3"))
PERSISTENCE_RETRY_BACKOFF_SECONDS = float(os.environ.get("PERSISTENCE_RETRY_BACKOFF_SECONDS", "0.05"))
_LOG_PATH = os.environ.get("KIDLEDGER_LOG_PATH", "")
LOG_PATH: Optional[Path] = Path(_LOG_PATH) if _LOG_PATH else None
PARENT_SESSION_KEY = "parent_authed"

# Calendar days and months in spending reports follow this zone.
TIMEZONE_NAME = os.environ.get("KIDLEDGER_TIMEZONE", "UTC")
REPORT_TIMEZONE: tzinfo = timezone.utc if TIMEZONE_NAME.upper() == "UTC" else ZoneInfo(TIMEZONE_NAME)

__all__ = [
    "DEFAULT_PARENTAL_PASSWORD",
    "LOG_PATH",
    "MATURITY_CHECK_INTERVAL_SECONDS",
    "PARENT_SESSION_KEY",
    "PERSISTENCE_RETRY_ATTEMPTS",
    "PERSISTENCE_RETRY_BACKOFF_SECONDS",
    "REPORT_TIMEZONE",
    "SESSION_SECRET",
    "SQLITE_FILE_NAME",
]
