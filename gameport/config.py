"""
gameport/config.py - Local configuration management

Reads engine config from a platform-appropriate config directory:
  - macOS/Linux: ~/.gameport/config.toml
  - Windows: %APPDATA%\\gameport\\config.toml

Every section is optional. A missing file, a bad file, or a missing key
falls back to the defaults below.

Example:
    [storage]
    path = "~/.gameport/gameport.db"

    [schedule]
    utc_offset_minutes = 345   # Nepal Time
    open_hour = 10
    close_hour = 17
    check_interval_seconds = 60

    [backup]
    interval_seconds = 30

    [admin]
    email = "admin@gameport.np"
    username = "admin"
    password = "admin"

    [fees]
    team_create = 20
    team_join = 5
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "gameport"
    return Path.home() / ".gameport"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_DB_PATH = str(CONFIG_DIR / "gameport.db")


# ============================================================================
# Data Types
# ============================================================================

@dataclass
class StorageConfig:
    """Where the durable documents live."""

    path: str = DEFAULT_DB_PATH  # ":memory:" for throwaway stores


@dataclass
class ScheduleConfig:
    """Daily service window, evaluated in a fixed UTC offset."""

    utc_offset_minutes: int = 345  # UTC+05:45
    open_hour: int = 10
    close_hour: int = 17  # exclusive
    check_interval_seconds: int = 60


@dataclass
class BackupConfig:
    interval_seconds: int = 30


@dataclass
class AdminConfig:
    """The privileged identity. Never stored as a user row."""

    email: str = "admin@gameport.np"
    username: str = "admin"
    password: str = "admin"
    user_id: str = "admin_001"
    display_name: str = "GamePort Admin"


@dataclass
class FeesConfig:
    team_create: int = 20
    team_join: int = 5


@dataclass
class SessionConfig:
    popup_window_seconds: int = 3600  # unread system broadcasts younger than this pop up


@dataclass
class GamePortConfig:
    """Top-level configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    fees: FeesConfig = field(default_factory=FeesConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


# ============================================================================
# Parsing
# ============================================================================

def _expand(path: str) -> str:
    """Expand ~ in a path string, leaving :memory: alone."""
    if path == ":memory:":
        return path
    return str(Path(path).expanduser())


def _section(raw: dict, name: str) -> dict:
    data = raw.get(name, {})
    return data if isinstance(data, dict) else {}


def _pick(data: dict, defaults, keys: list[str]) -> dict:
    """Take the keys present in data, defaulting the rest from a dataclass instance."""
    return {key: data.get(key, getattr(defaults, key)) for key in keys}


def load_config(path: Path | None = None) -> GamePortConfig:
    """
    Read config from TOML file.

    Args:
        path: Override config file path (default: ~/.gameport/config.toml)

    Returns:
        GamePortConfig. Missing file or bad TOML returns the defaults.
    """
    config_path = path or CONFIG_PATH

    if not config_path.exists():
        return GamePortConfig()

    try:
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return GamePortConfig()

    # Parse [storage] section
    storage_data = _section(raw, "storage")
    storage = StorageConfig(path=_expand(storage_data.get("path", DEFAULT_DB_PATH)))

    # Parse [schedule] section
    schedule = ScheduleConfig(**_pick(
        _section(raw, "schedule"),
        ScheduleConfig(),
        ["utc_offset_minutes", "open_hour", "close_hour", "check_interval_seconds"],
    ))
    if not 0 <= schedule.open_hour < schedule.close_hour <= 24:
        logger.warning(
            f"Invalid service window {schedule.open_hour}-{schedule.close_hour}, using defaults"
        )
        schedule = ScheduleConfig(
            utc_offset_minutes=schedule.utc_offset_minutes,
            check_interval_seconds=schedule.check_interval_seconds,
        )

    # Parse [backup] section
    backup = BackupConfig(**_pick(_section(raw, "backup"), BackupConfig(), ["interval_seconds"]))

    # Parse [admin] section
    admin = AdminConfig(**_pick(
        _section(raw, "admin"),
        AdminConfig(),
        ["email", "username", "password", "user_id", "display_name"],
    ))

    # Parse [fees] section
    fees = FeesConfig(**_pick(_section(raw, "fees"), FeesConfig(), ["team_create", "team_join"]))

    # Parse [session] section
    session = SessionConfig(**_pick(
        _section(raw, "session"), SessionConfig(), ["popup_window_seconds"]
    ))

    return GamePortConfig(
        storage=storage,
        schedule=schedule,
        backup=backup,
        admin=admin,
        fees=fees,
        session=session,
    )
