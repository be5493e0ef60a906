"""
Configuration for the vault core.
Values come from the environment (optionally a .env file) and are read once at import.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/vault.db")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Heartbeat scheduler (inactivity sweep) - default disabled
HEARTBEAT_ENABLED = os.getenv("HEARTBEAT_ENABLED", "false").lower() == "true"
INACTIVITY_SWEEP_INTERVAL_SEC = int(os.getenv("INACTIVITY_SWEEP_INTERVAL_SEC", "3600"))

# Owner inactivity threshold bounds
MIN_INACTIVITY_DAYS = 1
MAX_INACTIVITY_DAYS = 365
DEFAULT_INACTIVITY_DAYS = int(os.getenv("DEFAULT_INACTIVITY_DAYS", "30"))

# Owner audit log page size
AUDIT_LOG_LIMIT = int(os.getenv("AUDIT_LOG_LIMIT", "100"))

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def is_heartbeat_enabled():
    """Check if heartbeat system is enabled."""
    return HEARTBEAT_ENABLED


def get_sweep_interval():
    """Get inactivity sweep interval in seconds."""
    return INACTIVITY_SWEEP_INTERVAL_SEC


def is_valid_inactivity_days(days) -> bool:
    """Inactivity threshold must be a whole number of days within bounds."""
    if isinstance(days, bool) or not isinstance(days, int):
        return False
    return MIN_INACTIVITY_DAYS <= days <= MAX_INACTIVITY_DAYS


def validate_heartbeat_config() -> List[str]:
    """Validate heartbeat configuration and return any issues."""
    issues = []

    if INACTIVITY_SWEEP_INTERVAL_SEC < 1:
        issues.append("INACTIVITY_SWEEP_INTERVAL_SEC must be >= 1")

    if not is_valid_inactivity_days(DEFAULT_INACTIVITY_DAYS):
        issues.append(
            f"DEFAULT_INACTIVITY_DAYS must be between {MIN_INACTIVITY_DAYS} and {MAX_INACTIVITY_DAYS}"
        )

    return issues
