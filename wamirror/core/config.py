"""
Configuration and path resolution for wamirror.

Centralizes OS-specific default directories and loads the runtime
configuration from a YAML file, environment variables and explicit
overrides (in increasing priority).
"""
import os
import platform
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from wamirror.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

APP_NAME = "wamirror"
CONFIG_FILENAME = "config.yaml"

DEFAULT_STALE_AFTER = timedelta(hours=24)
DEFAULT_SYNC_TIMEOUT = 30.0
DEFAULT_FOLLOW_TIMEOUT = 120.0

ENV_PREFIX = "WAMIRROR_"


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory based on OS.

    Returns
    ----
    Path
        Directory holding config.yaml and the store/ subdirectory
    """
    system = platform.system()
    home = Path.home()

    if system == 'Darwin':  # macOS
        return home / "Library" / "Application Support" / APP_NAME
    elif system == 'Windows':
        return home / "AppData" / "Roaming" / APP_NAME
    elif system == 'Linux':
        xdg = os.environ.get("XDG_CONFIG_HOME")
        if xdg:
            return Path(xdg) / APP_NAME
        return home / ".config" / APP_NAME
    else:
        return home / f".{APP_NAME}"


@dataclass
class MirrorConfig:
    """
    Runtime configuration passed explicitly to the store, scheduler and CLI.

    Attributes:
        store_dir: Directory holding messages.db, the session database and media
        no_auto_sync: Never run the staleness-driven auto-sync
        stale_after: Age of the last sync after which auto-sync triggers
        sync_timeout: Seconds to wait for history-sync completion on auto-sync
        follow_timeout: Seconds to wait for completion on an explicit one-shot sync
        transport: ``module:Class`` import path of the transport implementation
    """
    store_dir: Path = field(default_factory=lambda: get_default_config_dir() / "store")
    no_auto_sync: bool = False
    stale_after: timedelta = DEFAULT_STALE_AFTER
    sync_timeout: float = DEFAULT_SYNC_TIMEOUT
    follow_timeout: float = DEFAULT_FOLLOW_TIMEOUT
    transport: Optional[str] = None

    @property
    def messages_db_path(self) -> Path:
        return self.store_dir / "messages.db"

    @property
    def session_db_path(self) -> Path:
        return self.store_dir / "session.db"

    @property
    def media_dir(self) -> Path:
        return self.store_dir / "media"

    def ensure_directories(self):
        """Create the store and media directories (mode 0700)."""
        for directory in (self.store_dir, self.media_dir):
            try:
                directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(f"Cannot create directory {directory}: {e}") from e


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"Invalid boolean for {key}: {value!r}")


def _parse_number(key: str, value: Any, unit: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid number of {unit} for {key}: {value!r}")
    if number < 0:
        raise ConfigurationError(f"{key} must not be negative")
    return number


def _parse_seconds(key: str, value: Any) -> float:
    return _parse_number(key, value, "seconds")


def _parse_hours(key: str, value: Any) -> float:
    return _parse_number(key, value, "hours")


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert raw file/env values to MirrorConfig field types."""
    known = {f.name for f in fields(MirrorConfig)}
    result = {}

    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        if value is None:
            continue

        if key == "store_dir":
            result[key] = Path(value).expanduser()
        elif key == "no_auto_sync":
            result[key] = _parse_bool(key, value)
        elif key == "stale_after":
            if isinstance(value, timedelta):
                result[key] = value
            else:
                result[key] = timedelta(hours=_parse_hours(key, value))
        elif key in ("sync_timeout", "follow_timeout"):
            result[key] = _parse_seconds(key, value)
        else:
            result[key] = str(value)

    return result


def _load_file(path: Path) -> Dict[str, Any]:
    """Load the YAML config file; a missing file yields no settings."""
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    logger.debug("Loaded config from %s", path)
    return data


def _load_environment() -> Dict[str, Any]:
    """Read WAMIRROR_* environment variables."""
    mapping = {
        "STORE": "store_dir",
        "NO_AUTO_SYNC": "no_auto_sync",
        "SYNC_TIMEOUT": "sync_timeout",
        "TRANSPORT": "transport",
    }
    values = {}
    for suffix, key in mapping.items():
        value = os.environ.get(ENV_PREFIX + suffix)
        if value is not None:
            values[key] = value
    return values


def load_config(config_path: Optional[Path] = None, **overrides) -> MirrorConfig:
    """
    Build the runtime configuration.

    Priority: defaults < YAML file < environment < explicit overrides.
    Overrides whose value is None are ignored.

    Parameters
    ----
    config_path : Path, optional
        YAML file to read. Defaults to ``<config dir>/config.yaml``.
    **overrides
        Field values taking precedence over every other source

    Returns
    ----
    MirrorConfig
        Merged configuration

    Raises
    ---
    ConfigurationError
        If the file cannot be parsed or a value is invalid
    """
    if config_path is None:
        config_path = get_default_config_dir() / CONFIG_FILENAME

    merged: Dict[str, Any] = {}
    merged.update(_coerce(_load_file(Path(config_path))))
    merged.update(_coerce(_load_environment()))
    merged.update(_coerce({k: v for k, v in overrides.items() if v is not None}))

    return replace(MirrorConfig(), **merged)
