import questionary
from spotify_catalog import SpotifyCatalogError, SpotifySession, Unauthenticated
from utils.logger import log_info, log_error, log_warning


def print_tracks(title: str, tracks):
    print(f"\n🎵 {title}")
    if not tracks:
        log_info("Nothing to show.")
        return
    for index, track in enumerate(tracks, start=1):
        artists = track.artist_names or "Unknown artist"
        print(f"  {index:>2}. {track.name} — {artists} [{track.album.name}] {track.duration}")


def print_playlists(title: str, playlists):
    print(f"\n📂 {title}")
    if not playlists:
        log_info("Nothing to show.")
        return
    for index, playlist in enumerate(playlists, start=1):
        description = f" — {playlist.description}" if playlist.description else ""
        print(f"  {index:>2}. {playlist.name} ({playlist.tracks_total} tracks){description}")


def print_categories(categories):
    print("\n🏷️ Browse Categories")
    if not categories:
        log_info("Nothing to show.")
        return
    print("  " + " · ".join(c.name for c in categories))


async def browse_menu(session: SpotifySession, config: dict):
    """
    Catalog browsing menu. Every option goes through the session; catalog
    pages keep working offline with placeholder data.
    """
    page_size = int(config.get("default_page_size", 20))

    while True:
        choice = await questionary.select(
            "🎧 Browse — Choose an option:",
            choices=[
                "Search tracks",
                "Featured playlists",
                "New releases",
                "Categories",
                "Tracks of a featured playlist",
                "My saved tracks",
                "My top tracks",
                "Recently played",
                "My playlists",
                "Back"
            ]
        ).ask_async()

        try:
            if choice == "Search tracks":
                query = await questionary.text("What do you want to listen to?").ask_async()
                if query:
                    print_tracks(f"Results for '{query}'", await session.search_tracks(query, page_size))

            elif choice == "Featured playlists":
                print_playlists("Featured Playlists", await session.featured_playlists(page_size))

            elif choice == "New releases":
                print_tracks("New Releases", await session.new_releases(page_size))

            elif choice == "Categories":
                print_categories(await session.categories())

            elif choice == "Tracks of a featured playlist":
                await pick_playlist_tracks(session, page_size)

            elif choice == "My saved tracks":
                print_tracks("Liked Songs", await session.saved_tracks(page_size))

            elif choice == "My top tracks":
                print_tracks("Your Top Tracks", await session.top_tracks(page_size))

            elif choice == "Recently played":
                print_tracks("Recently Played", await session.recently_played(page_size))

            elif choice == "My playlists":
                print_playlists("Your Library", await session.user_playlists(page_size))

            else:
                break
        except Unauthenticated:
            log_warning("You are not logged in. Open 'Spotify account' and log in first.")
        except SpotifyCatalogError as e:
            log_error(str(e))


async def pick_playlist_tracks(session: SpotifySession, page_size: int):
    playlists = await session.featured_playlists(page_size)
    if not playlists:
        log_info("No playlists available.")
        return

    choices = [questionary.Choice(title=p.name, value=p) for p in playlists]
    choices.append(questionary.Choice(title="Back", value=None))
    playlist = await questionary.select("Select a playlist:", choices=choices).ask_async()
    if playlist is None:
        return

    print_tracks(playlist.name, await session.playlist_tracks(playlist.id))
