"""config_loader.py Simple JSON configuration loader for the habit grid server."""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _resolve_config_path(config_file: str) -> Path:
    """Resolve config path supporting env overrides and repo defaults."""

    env_override = os.getenv("HABITGRID_CONFIG_PATH")
    if env_override:
        env_path = Path(env_override).expanduser()
        if env_path.is_dir():
            return env_path / config_file
        return env_path

    path = Path(config_file)
    if path.exists() or path.is_absolute():
        return path

    package_dir = Path(__file__).resolve().parent
    candidate = package_dir / config_file
    if candidate.exists():
        return candidate

    root_candidate = package_dir.parent / config_file
    if root_candidate.exists():
        return root_candidate

    # Default: create alongside config package to keep config scoped
    return candidate


def _deep_merge(base: dict, update: dict) -> dict:
    for key, value in update.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_file: str = "server_config.json") -> dict[str, Any]:
    """Load configuration from a JSON file, then apply environment overrides.

    Missing keys are filled from the defaults, so a partial file is enough.

    Args:
        config_file: Config file name or path

    Returns:
        Configuration dict
    """
    config_path = _resolve_config_path(config_file)

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, creating default")
        config = create_default_config()
        save_config(config, config_file)
    else:
        try:
            with open(config_path, encoding="utf-8") as f:
                config = _deep_merge(create_default_config(), json.load(f))
            logger.info(f"Loaded configuration from {config_path}")
        except Exception as e:
            logger.error(f"Error loading config {config_file}: {e}")
            config = create_default_config()

    if "HABITGRID_HOST" in os.environ:
        config.setdefault("server", {})["host"] = os.environ["HABITGRID_HOST"]
    if "HABITGRID_PORT" in os.environ:
        config.setdefault("server", {})["port"] = int(os.environ["HABITGRID_PORT"])
    if "HABITGRID_DB_PATH" in os.environ:
        config.setdefault("storage", {})["path"] = os.environ["HABITGRID_DB_PATH"]

    return config


def save_config(config: dict[str, Any], config_file: str = "server_config.json"):
    """Write configuration to disk."""
    config_path = _resolve_config_path(config_file)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4, ensure_ascii=False)
        logger.info(f"Saved configuration to {config_path}")
    except Exception as e:
        logger.error(f"Error saving config {config_file}: {e}")


_DEFAULT_CONFIG: dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 8000},
    "storage": {
        "backend": "sqlite",  # sqlite|sheets
        "path": "habits.db",
        "sheet_id": "",
        "credentials_file": "service_account.json",
        "habits_worksheet": "Habits",
        "snapshots_worksheet": "Snapshots",
    },
    "grid": {
        # First date column; empty keeps whatever the store already has
        "start_date": "",
        "days_ahead": 30,
    },
    "engine": {
        "lock_timeout": 10,
        "tie_break": "column",  # column|random
    },
    "logging": {"level": "INFO", "file": "logs/server_{time:YYYY-MM-DD}.log"},
}


def create_default_config() -> dict[str, Any]:
    """Return a fresh copy of the default server configuration."""
    return copy.deepcopy(_DEFAULT_CONFIG)


class ConfigLoader:
    """Holds the loaded configuration and offers dotted-key access."""

    def __init__(self, config_file: str = "server_config.json"):
        self.config_file = config_file
        self.config_path = _resolve_config_path(config_file)
        self._config = None
        self.load()

    def load(self) -> dict[str, Any]:
        self._config = load_config(self.config_file)
        return self._config

    def get_config(self) -> dict[str, Any]:
        if self._config is None:
            self.load()
        return self._config  # type: ignore[return-value]

    def get(self, key: str, default: Any = None):
        """Get a value, supporting dotted notation like 'engine.tie_break'."""
        value: Any = self.get_config()
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any):
        config = self.get_config()
        keys = key.split('.')
        for k in keys[:-1]:
            config = config.setdefault(k, {})
        config[keys[-1]] = value

    def save_config(self):
        save_config(self.get_config(), self.config_file)
