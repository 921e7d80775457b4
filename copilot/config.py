"""Environment-based configuration for the copilot client."""

import os
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from msgspec import Struct


DEFAULT_API_BASE_URL = "https://api.legalsay.ai"
DEFAULT_JURISDICTION = "United States (General)"

JURISDICTIONS: List[str] = [
    "United States (General)",
    "California",
    "New York",
    "Delaware",
    "United Kingdom",
    "European Union",
    "United Arab Emirates",
    "Singapore",
]


class Settings(Struct, kw_only=True):
    """Resolved runtime settings. Timeouts are in seconds."""
    api_base_url: str = DEFAULT_API_BASE_URL
    analyze_timeout: float = 60.0
    explain_timeout: float = 30.0
    extract_timeout: float = 60.0
    redline_timeout: float = 120.0
    connect_timeout: float = 10.0
    stream_read_timeout: float = 120.0
    max_upload_mb: int = 10
    default_jurisdiction: str = DEFAULT_JURISDICTION
    session_db_path: str = "legalsay_sessions.db"
    session_cleanup_hours: int = 24
    log_level: str = "INFO"
    log_dir: str = "logs"


def _env_number(name: str, default, cast):
    value = os.getenv(name)
    if not value:
        return default
    try:
        return cast(value)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {value!r}; using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load settings from the environment, reading a .env file first.

    Args:
        env_file: Optional path to a .env file (defaults to dotenv's search)

    Returns:
        Settings instance
    """
    load_dotenv(env_file)

    return Settings(
        api_base_url=os.getenv("LEGALSAY_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
        analyze_timeout=_env_float("ANALYZE_TIMEOUT", 60.0),
        explain_timeout=_env_float("EXPLAIN_TIMEOUT", 30.0),
        extract_timeout=_env_float("EXTRACT_TIMEOUT", 60.0),
        redline_timeout=_env_float("REDLINE_TIMEOUT", 120.0),
        connect_timeout=_env_float("CONNECT_TIMEOUT", 10.0),
        stream_read_timeout=_env_float("STREAM_READ_TIMEOUT", 120.0),
        max_upload_mb=_env_int("MAX_UPLOAD_MB", 10),
        default_jurisdiction=os.getenv("DEFAULT_JURISDICTION", DEFAULT_JURISDICTION),
        session_db_path=os.getenv("SESSION_DB_PATH", "legalsay_sessions.db"),
        session_cleanup_hours=_env_int("SESSION_CLEANUP_HOURS", 24),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_dir=os.getenv("LOG_DIR", "logs"),
    )
