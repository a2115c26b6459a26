import json
import os
from typing import Any, Dict

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify Web API (OAuth PKCE)
    "spotify_client_id": "",
    # Optional; only needed for app-only catalog browsing (client credentials).
    "spotify_client_secret": "",
    "app_origin": "http://127.0.0.1:8888",
    # Empty means "<app_origin>/callback".
    "spotify_redirect_uri": "",
    "spotify_scopes": [
        "user-read-private",
        "user-read-email",
        "user-library-read",
        "user-top-read",
        "user-read-recently-played",
        "playlist-read-private",
    ],
    "spotify_show_dialog": False,
    "spotify_storage_path": "data/spotify_session.json",

    # Request behavior
    "spotify_request_timeout": 10,
    "spotify_max_retries": 2,
    "spotify_backoff_base": 1.0,
    "spotify_refresh_margin_seconds": 300,

    # Browsing
    "default_page_size": 20,

    # Logging
    "log_level": "INFO",
    "log_file": "",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": False},
    "spotify_client_secret": {"type": str, "required": False},
    "app_origin": {"type": str, "required": True},
    "spotify_redirect_uri": {"type": str, "required": False},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_show_dialog": {"type": bool, "required": False},
    "spotify_storage_path": {"type": str, "required": True},

    "spotify_request_timeout": {"type": (int, float), "required": False, "min": 1, "max": 120},
    "spotify_max_retries": {"type": int, "required": False, "min": 0, "max": 10},
    "spotify_backoff_base": {"type": (int, float), "required": False, "min": 0.1, "max": 10.0},
    "spotify_refresh_margin_seconds": {"type": int, "required": False, "min": 0, "max": 3000},

    "default_page_size": {"type": int, "required": False, "min": 1, "max": 50},

    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "log_file": {"type": str, "required": False},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> bool:
    """Save configuration to file."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except OSError as e:
        raise IOError(f"Failed to save config: {e}") from e


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; don't let True pass as a number
        expected_type = rules.get("type")
        is_bool_as_number = isinstance(value, bool) and expected_type is not bool
        if expected_type and (is_bool_as_number or not isinstance(value, expected_type)):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    origin = config.get("app_origin")
    if isinstance(origin, str) and not origin.startswith(("http://", "https://")):
        errors.append(f"Field 'app_origin' must start with http:// or https://, got '{origin}'")

    return len(errors) == 0, errors


def update_config(key: str, value: Any, path: str = CONFIG_PATH) -> tuple[bool, str]:
    """
    Update a single config field with validation.
    Returns (success, message).
    """
    config = load_config(path)

    # Check if key is valid
    if key not in CONFIG_SCHEMA:
        return False, f"Unknown config key: {key}"

    # Create temporary config with new value
    test_config = config.copy()
    test_config[key] = value

    # Validate the change
    is_valid, errors = validate_config(test_config)
    if not is_valid:
        return False, f"Validation failed: {', '.join(errors)}"

    # Save the updated config
    config[key] = value
    save_config(config, path)

    return True, f"Updated '{key}' to '{value}'"


def reset_to_defaults(path: str = CONFIG_PATH) -> tuple[bool, str]:
    """Reset configuration to default values."""
    try:
        save_config(DEFAULT_CONFIG.copy(), path)
        return True, "Configuration reset to defaults"
    except IOError as e:
        return False, f"Failed to reset config: {e}"


def get_config_value(key: str, default: Any = None, path: str = CONFIG_PATH) -> Any:
    """Get a single config value with optional default."""
    try:
        config = load_config(path)
    except (OSError, json.JSONDecodeError):
        return default
    return config.get(key, default)

