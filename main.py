import asyncio
import json
import os
import sys

from config import CONFIG_PATH, get_config_value, load_config, reset_to_defaults
from spotify_catalog import SpotifySession
from utils.logger import setup_logging, log_info, log_warning, log_error
from menus.main_menu import main_menu
from menus.browse_menu import browse_menu
from menus.session_menu import session_menu
from menus.config_menu import config_menu


def build_session(config: dict) -> SpotifySession:
    """Composition root: the one SpotifySession the menus share."""
    return SpotifySession.from_config(config)


async def run(config: dict):
    session = build_session(config)

    while True:
        choice = await main_menu(session.is_configured())

        if choice == "Browse":
            await browse_menu(session, config)

        elif choice == "Spotify account":
            await session_menu(session, config)

        elif choice == "Config Menu":
            config = await config_menu(config)
            session = build_session(config)

        else:
            log_info("Exiting program...")
            break


if __name__ == "__main__":
    setup_logging(get_config_value("log_level", "INFO"))

    if not os.path.exists(CONFIG_PATH):
        log_warning(f"{CONFIG_PATH} not found, writing defaults.")
        reset_to_defaults()

    try:
        config = load_config()
    except FileNotFoundError as e:
        log_error(f"Config file not found: {e}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        sys.exit(1)

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log_info("Interrupted.")
