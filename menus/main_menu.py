import questionary


async def main_menu(connected: bool) -> str:
    """Top-level menu; returns the selected entry."""
    status = "🟢 connected" if connected else "⚪ not connected"
    return await questionary.select(
        f"🎶 Spotify Catalog ({status}) — What would you like to do?",
        choices=[
            "Browse",
            "Spotify account",
            "Config Menu",
            "Exit"
        ]
    ).ask_async()
