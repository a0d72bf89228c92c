"""Configuration and preferences for llm-key-ring.

Both live in the same directory (see `models.config_dir`):

    preferences.json   written by `lkr config set-path`; holds config_path
    config.yml         optional; every setting has a default

config.yml format:

    keychain:
      service: com.llm-key-ring
    providers:
      my-gateway: MY_GATEWAY_API_KEY

The clipboard clear delay is fixed at 30 seconds and is not configurable.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from .atomic_writer import write_atomic
from .errors import ConfigError
from .models import SERVICE_NAME, config_dir

logger = logging.getLogger(__name__)

_PROVIDER_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_ENV_VAR_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def default_config_path() -> Path:
    return config_dir() / "config.yml"


def preferences_path() -> Path:
    return config_dir() / "preferences.json"


def _read_preferences() -> Dict[str, str]:
    path = preferences_path()
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.error(f"Ignoring unreadable preferences file {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _write_preferences(prefs: Dict[str, str]) -> None:
    path = preferences_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    write_atomic(path, json.dumps(prefs, indent=2, sort_keys=True))


def get_preference(key: str) -> Optional[str]:
    return _read_preferences().get(key)


def set_preference(key: str, value: str) -> None:
    prefs = _read_preferences()
    prefs[key] = value
    _write_preferences(prefs)
    logger.info(f"Preference '{key}' set to: {value}")


def clear_preference(key: str) -> None:
    """Remove a preference. Missing keys are not an error."""
    prefs = _read_preferences()
    if prefs.pop(key, None) is None:
        logger.debug(f"Preference '{key}' not set, nothing to clear")
        return
    _write_preferences(prefs)
    logger.info(f"Preference '{key}' cleared")


@dataclass
class Settings:
    """Effective configuration."""
    service: str = SERVICE_NAME
    providers: Dict[str, str] = field(default_factory=dict)
    source: Optional[str] = None


def _get_config_path() -> Optional[str]:
    """
    Get config file path.

    Priority order:
    1. config_path preference (set with `lkr config set-path`)
    2. Default location: ~/.config/llm-key-ring/config.yml

    Returns:
        Absolute path to config file, or None if there is none
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    return None


def load_config() -> Settings:
    """
    Load and validate configuration from YAML file.

    The path is resolved on every call, never cached at module level.

    Returns:
        Settings (defaults when no config file exists)

    Raises:
        ConfigError: If the config file is unreadable, not valid YAML, or has invalid values
    """
    config_path = _get_config_path()
    if config_path is None:
        logger.debug("No config file found, using defaults")
        return Settings()

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    settings = Settings(source=config_path)

    # An empty file is a valid "all defaults" config
    if config is None:
        return settings

    if not isinstance(config, dict):
        raise ConfigError(f"Config at {config_path} must be a mapping")

    keychain = config.get('keychain') or {}
    if not isinstance(keychain, dict):
        raise ConfigError("'keychain' must be a mapping")
    if 'service' in keychain:
        service = keychain['service']
        if not isinstance(service, str) or not service.strip():
            raise ConfigError("'keychain.service' must be a non-empty string")
        settings.service = service

    if 'clipboard' in config:
        logger.warning("Warning: 'clipboard' settings are ignored; the clipboard always clears after 30s")

    providers = config.get('providers') or {}
    if not isinstance(providers, dict):
        raise ConfigError(
            "'providers' must be a mapping\n"
            "Required format:\n"
            "providers:\n"
            "  my-provider: MY_PROVIDER_API_KEY"
        )
    for provider, env_var in providers.items():
        if not isinstance(provider, str) or not _PROVIDER_PATTERN.match(provider):
            raise ConfigError(f"Provider '{provider}' must match [a-z0-9][a-z0-9-]*")
        if not isinstance(env_var, str) or not _ENV_VAR_PATTERN.match(env_var):
            raise ConfigError(f"Environment variable for provider '{provider}' is not a valid name: {env_var}")
        settings.providers[provider] = env_var

    logger.info(f"Configuration loaded successfully from {config_path}")
    return settings
