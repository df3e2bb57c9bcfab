"""
Configuration Management
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from packrip.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "rip": {
        "mode": "manual",
        "window_seconds": 70,
        "period_seconds": 360,
        "channels": [],
    },
    "broadcast": {
        "enabled": False,
        "endpoint": "https://api.twitch.tv/helix/extensions/pubsub",
        "client_id": "",
        "secret": "",
        "owner_id": "",
        "token_ttl_seconds": 60,
        "timeout_seconds": 5,
    },
    "storage": {
        "data_file": "data.json",
    },
    "server": {
        "host": "0.0.0.0",
        "port": 3000,
    },
    "app": {
        "leaderboard_limit": 50,
    },
}

_ENV_SECTIONS = {
    "RIP_": "rip",
    "BROADCAST_": "broadcast",
    "STORAGE_": "storage",
    "SERVER_": "server",
    "APP_": "app",
}

# Secrets are masked when the effective configuration is logged
_SECRET_KEYS = {"secret"}


def default_config_path() -> Path:
    override = os.getenv("PACKRIP_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent.parent / "config" / "packrip.conf"


def load_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from defaults, the config file and environment variables"""
    config: Dict[str, Any] = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}

    config_file = Path(config_file) if config_file else default_config_path()
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                file_config = json.load(f)
            for section, values in file_config.items():
                if isinstance(values, dict):
                    config.setdefault(section, {}).update(values)
                else:
                    config[section] = values
            logger.info(f"Loaded configuration from {config_file}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file {config_file}: {e}")
    else:
        logger.warning(f"Config file {config_file} not found. Using defaults and environment variables.")

    # Override with environment variables, defined in .env
    config = _apply_env_overrides(config)

    logger.info(f"Effective configuration: {json.dumps(_masked(config), indent=2)}")
    return config


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        for prefix, section in _ENV_SECTIONS.items():
            if key.startswith(prefix):
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break
    return config


def _masked(config: Dict[str, Any]) -> Dict[str, Any]:
    masked: Dict[str, Any] = {}
    for section, values in config.items():
        if isinstance(values, dict):
            masked[section] = {
                key: ("***" if key in _SECRET_KEYS and value else value)
                for key, value in values.items()
            }
        else:
            masked[section] = values
    return masked


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def as_bool(value: Any, default: bool = False) -> bool:
    """Interpret env-style flags such as "1", "true", "yes"."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def as_list(value: Any) -> List[str]:
    """Accept a JSON list, a comma separated string, or a real list."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    text = str(value).strip()
    if text.startswith("["):
        try:
            return [str(item).strip() for item in json.loads(text) if str(item).strip()]
        except json.JSONDecodeError:
            logger.warning(f"Could not parse list value {text!r}; falling back to comma split")
    return [item.strip() for item in text.split(",") if item.strip()]
