"""
Runtime configuration.

Values come from environment variables (optionally loaded from .env by
``load_env``); anything unset falls back to the defaults below.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import FrozenSet, List, Optional

from .models import Group
from .normalize import SUPPORTED_CONTENT_TYPES

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB, inclusive
DEBOUNCE_MS = 300
DEFAULT_API_URL = "http://localhost:3001/api"

BOOTSTRAP_GROUPS = [
    ("1", "AI", "AI and Machine Learning", "2025-01-01"),
    ("2", "SDM1", "Software Development Manager", "2025-01-02"),
    ("3", "SDM", "Senior Development Manager", "2025-01-03"),
    ("4", "OK", "Other Candidates", "2025-01-04"),
]


def bootstrap_groups() -> List[Group]:
    """Fresh copies of the groups every store starts with."""
    return [
        Group(
            id=gid,
            name=name,
            description=desc,
            created_at=datetime.fromisoformat(created).replace(tzinfo=timezone.utc),
        )
        for gid, name, desc, created in BOOTSTRAP_GROUPS
    ]


@dataclass
class Settings:
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    timeout: float = 30.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    max_file_size: int = MAX_FILE_SIZE
    allowed_types: FrozenSet[str] = field(default_factory=lambda: SUPPORTED_CONTENT_TYPES)
    debounce_ms: int = DEBOUNCE_MS
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """Build Settings from RESUMEPARSER_* environment variables."""
    log_dir = os.getenv("RESUMEPARSER_LOG_DIR")
    return Settings(
        api_url=os.getenv("RESUMEPARSER_API_URL", DEFAULT_API_URL).rstrip("/"),
        api_token=os.getenv("RESUMEPARSER_API_TOKEN") or None,
        timeout=_env_float("RESUMEPARSER_TIMEOUT", 30.0),
        retry_attempts=_env_int("RESUMEPARSER_RETRY_ATTEMPTS", 3),
        retry_delay=_env_float("RESUMEPARSER_RETRY_DELAY", 1.0),
        max_file_size=_env_int("RESUMEPARSER_MAX_FILE_SIZE", MAX_FILE_SIZE),
        debounce_ms=_env_int("RESUMEPARSER_DEBOUNCE_MS", DEBOUNCE_MS),
        log_level=os.getenv("RESUMEPARSER_LOG_LEVEL", "INFO"),
        log_dir=Path(log_dir) if log_dir else None,
    )
