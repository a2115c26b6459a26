import questionary
from config import (
    load_config, validate_config, update_config, reset_to_defaults,
    CONFIG_SCHEMA
)
from spotify_catalog.session import callback_address_from_config
from utils.logger import log_info, log_error, log_success

SECRET_KEYS = {"spotify_client_secret"}


async def config_menu(config: dict) -> dict:
    """
    Display the configuration menu and handle user selections.
    Returns the potentially updated config dict.
    """
    while True:
        choice = await questionary.select(
            "⚙️ Config Menu — What would you like to do?",
            choices=[
                "View current config",
                "Update a setting",
                "Reset to defaults",
                "Validate configuration",
                "Back"
            ]
        ).ask_async()

        if choice == "View current config":
            await view_config(config)

        elif choice == "Update a setting":
            config = await update_setting_menu(config)

        elif choice == "Reset to defaults":
            config = await reset_config_menu(config)

        elif choice == "Validate configuration":
            await validate_config_menu(config)

        else:
            break

    return config


async def view_config(config: dict):
    """Display the current configuration in a readable format."""
    print("\n" + "=" * 50)
    print("📋 Current Configuration")
    print("=" * 50)

    categories = {
        "Spotify App": ["spotify_client_id", "spotify_client_secret", "app_origin", "spotify_redirect_uri", "spotify_scopes", "spotify_show_dialog"],
        "Session Storage": ["spotify_storage_path"],
        "Requests": ["spotify_request_timeout", "spotify_max_retries", "spotify_backoff_base", "spotify_refresh_margin_seconds"],
        "Browsing": ["default_page_size"],
        "Logging": ["log_level", "log_file"],
    }

    for category, keys in categories.items():
        print(f"\n{category}:")
        for key in keys:
            if key not in config:
                continue
            value = config[key]
            if key in SECRET_KEYS and value:
                value = "********"
            elif isinstance(value, bool):
                value = "✓ Enabled" if value else "✗ Disabled"
            elif isinstance(value, list):
                value = ", ".join(str(v) for v in value) or "(none)"
            print(f"  {key}: {value}")

    print(f"\nEffective callback address: {callback_address_from_config(config)}")
    print("  (an address set from the account menu takes precedence)")

    print("\n" + "=" * 50)
    await questionary.press_any_key_to_continue().ask_async()


async def update_setting_menu(config: dict) -> dict:
    """Menu to update individual settings."""
    editable_keys = list(CONFIG_SCHEMA.keys())
    editable_keys.append("Back")

    key = await questionary.select(
        "Select setting to update:",
        choices=editable_keys
    ).ask_async()

    if key is None or key == "Back":
        return config

    schema = CONFIG_SCHEMA.get(key, {})
    current_value = config.get(key, "Not set")

    if key not in SECRET_KEYS:
        print(f"\nCurrent value: {current_value}")

    # Handle different types of inputs
    if "choices" in schema:
        new_value = await questionary.select(
            f"Select new value for {key}:",
            choices=schema["choices"]
        ).ask_async()

    elif schema.get("type") == bool:
        new_value = await questionary.confirm(
            f"Enable {key}?",
            default=current_value if isinstance(current_value, bool) else True
        ).ask_async()

    elif schema.get("type") in [int, (int, float)]:
        min_val = schema.get("min", 0)
        max_val = schema.get("max", 9999)
        new_value_str = await questionary.text(
            f"Enter new value for {key} ({min_val}-{max_val}):",
            default=str(current_value) if current_value != "Not set" else ""
        ).ask_async()

        try:
            if schema.get("type") == int:
                new_value = int(new_value_str)
            else:
                new_value = float(new_value_str)
        except (TypeError, ValueError):
            log_error("Invalid number format")
            return config

    elif schema.get("type") == list:
        raw = await questionary.text(
            f"Enter comma-separated values for {key}:",
            default=", ".join(current_value) if isinstance(current_value, list) else ""
        ).ask_async()
        new_value = [v.strip() for v in (raw or "").split(",") if v.strip()]

    elif key in SECRET_KEYS:
        new_value = await questionary.password(f"Enter new value for {key}:").ask_async()

    else:
        new_value = await questionary.text(
            f"Enter new value for {key}:",
            default=str(current_value) if current_value != "Not set" else ""
        ).ask_async()

    if new_value is None:
        log_info("Cancelled.")
        return config

    success, message = update_config(key, new_value)

    if success:
        log_success(message if key not in SECRET_KEYS else f"Updated '{key}'")
        config[key] = new_value
    else:
        log_error(message)

    return config


async def reset_config_menu(config: dict) -> dict:
    """Menu to reset configuration to defaults."""
    confirm = await questionary.confirm(
        "⚠️ Reset all settings to defaults? This cannot be undone.",
        default=False
    ).ask_async()

    if confirm:
        success, message = reset_to_defaults()

        if success:
            log_success(message)
            config = load_config()
        else:
            log_error(message)

    return config


async def validate_config_menu(config: dict):
    """Validate the current configuration and show any errors."""
    is_valid, errors = validate_config(config)

    print("\n" + "=" * 50)
    print("🔍 Configuration Validation")
    print("=" * 50)

    if is_valid:
        log_success("Configuration is valid! ✓")
    else:
        log_error("Configuration has errors:")
        for error in errors:
            print(f"  ✗ {error}")

    print("=" * 50)
    await questionary.press_any_key_to_continue().ask_async()
