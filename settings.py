"""Environment configuration.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from errors import SettingsError


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    admin_secret: str = ""
    initial_scene: str = ""
    group_count: int = 5
    group_capacity: int = 16
    default_round_seconds: int = 30
    timeline_file: Path | None = None
    log_level: str = "INFO"


def _int(environ, key: str, default: int, lo: int = 1) -> int:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        v = int(raw)
    except ValueError:
        raise SettingsError(f"{key} must be an integer, got {raw!r}") from None
    if v < lo:
        raise SettingsError(f"{key} must be >= {lo}, got {v}")
    return v


def load_settings(environ=None, dotenv_path: str | Path | None = None) -> Settings:
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    timeline = (environ.get("TIMELINE_FILE") or "").strip()
    level = (environ.get("LOG_LEVEL") or "INFO").strip().upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise SettingsError(f"LOG_LEVEL {level!r} is not a logging level")

    return Settings(
        host=(environ.get("HOST") or "0.0.0.0").strip(),
        port=_int(environ, "PORT", 8080),
        admin_secret=environ.get("ADMIN_SECRET") or "",
        initial_scene=(environ.get("INITIAL_SCENE") or "").strip(),
        group_count=_int(environ, "GROUP_COUNT", 5),
        group_capacity=_int(environ, "GROUP_CAPACITY", 16),
        default_round_seconds=_int(environ, "DEFAULT_ROUND_SECONDS", 30),
        timeline_file=Path(timeline) if timeline else None,
        log_level=level,
    )
