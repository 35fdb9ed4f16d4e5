"""JSON configuration for the ``boundhttp`` CLI.

Values resolve in three layers: built-in defaults, then the config file, then
``BOUNDHTTP_*`` environment variables.
"""

import json
import os
from pathlib import Path

from boundhttp.rich_utils import Colors, console

DEFAULT_REQUEST = {
    "timeout_millis": 600000,
    "max_retry_count": 1,
    "retry_delay_millis": 250,
    "retry_strategy": "linear",
    "max_size": "1 GB",
    "user_agent": "boundhttp/0.1",
}

DEFAULT_PROXY = {
    "enabled": False,
    "http_host": "",
    "http_port": "",
    "https_host": "",
    "https_port": "",
}

DEFAULTS = {
    "request": DEFAULT_REQUEST,
    "proxy": DEFAULT_PROXY,
}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "BOUNDHTTP_TIMEOUT_MILLIS": ("request", "timeout_millis"),
    "BOUNDHTTP_MAX_RETRY_COUNT": ("request", "max_retry_count"),
    "BOUNDHTTP_MAX_SIZE": ("request", "max_size"),
    "BOUNDHTTP_PROXY_ENABLED": ("proxy", "enabled"),
    "BOUNDHTTP_HTTP_PROXY_HOST": ("proxy", "http_host"),
    "BOUNDHTTP_HTTP_PROXY_PORT": ("proxy", "http_port"),
    "BOUNDHTTP_HTTPS_PROXY_HOST": ("proxy", "https_host"),
    "BOUNDHTTP_HTTPS_PROXY_PORT": ("proxy", "https_port"),
}


def _warn(message: str) -> None:
    console.print(f"Warning: {message}", style=Colors.YELLOW)


def get_config_path() -> Path:
    env_path = os.getenv("BOUNDHTTP_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".boundhttp" / "config.json"


def load_config() -> dict:
    """Reads the config file; a missing or unreadable file counts as empty."""
    path = get_config_path()
    if not path.exists():
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        _warn(f"Could not load config from {path}: {e}")
        return {}

    if not isinstance(data, dict):
        _warn(f"Could not load config from {path}: expected a JSON object.")
        return {}
    return data


def save_config(config: dict) -> None:
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".tmp")
    partial.write_text(json.dumps(config, indent=2), encoding="utf-8")
    os.replace(partial, path)


def _fill_section(config: dict, name: str, defaults: dict) -> bool:
    """Adds missing keys of section ``name``; returns True if anything changed."""
    section = config.get(name)
    if not isinstance(section, dict):
        config[name] = dict(defaults)
        return True

    missing = {key: value for key, value in defaults.items() if key not in section}
    section.update(missing)
    return bool(missing)


def ensure_defaults() -> dict:
    """Makes sure the config file carries every known section and key."""
    config = load_config()
    changed = [_fill_section(config, name, defaults) for name, defaults in DEFAULTS.items()]
    if any(changed):
        save_config(config)
    return config


def _convert_env_value(value: str, default):
    """Converts an environment string to the type of the section default."""
    if isinstance(default, bool):
        return value.strip().lower() == "true"
    if isinstance(default, int):
        try:
            return int(value)
        except ValueError:
            _warn(f"Ignoring non-integer value '{value}' from environment.")
            return default
    return value


def get_section(name: str) -> dict:
    """Returns section ``name`` with defaults, file values and env overrides applied."""
    stored = load_config().get(name)
    merged = dict(DEFAULTS.get(name, {}))
    if isinstance(stored, dict):
        merged.update(stored)

    for env_var, (section_name, key) in ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if section_name == name and env_value is not None:
            merged[key] = _convert_env_value(env_value, merged.get(key))
    return merged
