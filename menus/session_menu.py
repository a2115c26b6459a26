import questionary
from spotify_catalog import SpotifyCatalogError, SpotifySession, extract_query_params
from spotify_catalog.auth import check_spotify_credentials, spotify_app_setup_instructions
from utils.logger import log_info, log_error, log_success, log_warning


async def session_menu(session: SpotifySession, config: dict):
    """
    Spotify account menu: log in, finish a login from the pasted redirect URL,
    connect app-only access, change the callback address, log out.
    """
    while True:
        choice = await questionary.select(
            "🔐 Spotify Account — Choose an option:",
            choices=[
                "Show session status",
                "Log in with Spotify",
                "Complete login (paste redirect URL)",
                "Connect app-only access (client secret)",
                "Change callback address",
                "Show app setup instructions",
                "Log out",
                "Back"
            ]
        ).ask_async()

        try:
            if choice == "Show session status":
                await show_status(session)

            elif choice == "Log in with Spotify":
                await start_login(session, config)

            elif choice == "Complete login (paste redirect URL)":
                await complete_login(session)

            elif choice == "Connect app-only access (client secret)":
                await connect_app(session, config)

            elif choice == "Change callback address":
                await change_callback_address(session)

            elif choice == "Show app setup instructions":
                print(spotify_app_setup_instructions(redirect_uri=session.callback_address))

            elif choice == "Log out":
                session.logout()
                log_success("Logged out. Stored Spotify tokens were removed.")

            else:
                break
        except SpotifyCatalogError as e:
            log_error(str(e))


async def show_status(session: SpotifySession):
    print(f"\nCallback address: {session.callback_address}")

    if not session.is_configured():
        log_warning("Not connected to Spotify.")
        return

    if not session.is_user_authorized():
        log_info("Connected with app-only access (public catalog only).")
        return

    profile = await session.current_user()
    if profile:
        log_success(f"Logged in as {profile.get('display_name') or profile.get('id')}")
    else:
        log_warning("Logged in, but the profile could not be loaded right now.")


async def start_login(session: SpotifySession, config: dict):
    client_id = await questionary.text(
        "Spotify Client ID:",
        default=str(config.get("spotify_client_id") or "")
    ).ask_async()
    if client_id is None:
        return

    status = check_spotify_credentials(client_id, session.callback_address, config.get("spotify_scopes") or [])
    if not status["ok"]:
        log_error(status["message"])
        return

    request = session.start_login(client_id)
    log_info("Your browser should open Spotify's consent page. If it does not, open this URL:")
    print(f"\n{request.auth_url}\n")
    log_info(f"After approving, Spotify redirects to {request.redirect_uri}.")
    log_info("Copy that full URL from the address bar and choose 'Complete login'.")


async def complete_login(session: SpotifySession):
    redirect_url = await questionary.text("Paste the full redirect URL:").ask_async()
    if not redirect_url:
        return

    params = extract_query_params(redirect_url)
    await session.handle_callback(params)
    log_success("Spotify login complete.")


async def connect_app(session: SpotifySession, config: dict):
    client_id = await questionary.text(
        "Spotify Client ID:",
        default=str(config.get("spotify_client_id") or "")
    ).ask_async()
    client_secret = await questionary.password("Spotify Client Secret:").ask_async()
    if client_id is None or client_secret is None:
        return

    await session.connect_app(client_id, client_secret or config.get("spotify_client_secret") or "")
    log_success("Spotify API configured for app-only browsing.")


async def change_callback_address(session: SpotifySession):
    print(f"\nCurrent callback address: {session.callback_address}")
    value = await questionary.text(
        "New callback address (empty to restore the default):",
        default=""
    ).ask_async()
    if value is None:
        return

    session.callback_address = value
    log_success(f"Callback address is now {session.callback_address}")
    log_info("Make sure it is registered exactly like this in the Spotify dashboard.")
