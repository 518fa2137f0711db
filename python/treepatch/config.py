"""
Runtime settings.

Defaults live here; environment variables (TREEPATCH_*) override them and CLI
flags override both.
"""

import contextlib
import os
from dataclasses import dataclass
from typing import Optional

# The raw transcript ring keeps the newest 50k characters for diagnostics.
DEFAULT_RAW_BUFFER_CHARS = 50_000


@dataclass
class Settings:
    raw_buffer_chars: int = DEFAULT_RAW_BUFFER_CHARS
    log_level: str = "WARNING"
    log_json: bool = False


def load_settings() -> Settings:
    settings = Settings()

    raw = os.environ.get("TREEPATCH_RAW_BUFFER_CHARS")
    if raw is not None:
        with contextlib.suppress(ValueError):
            settings.raw_buffer_chars = max(0, int(raw))

    level = os.environ.get("TREEPATCH_LOG_LEVEL")
    if level:
        settings.log_level = level.upper()

    log_json = os.environ.get("TREEPATCH_LOG_JSON")
    if log_json is not None:
        settings.log_json = log_json.lower() in ("true", "1", "yes")

    return settings


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drops the cached instance so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
