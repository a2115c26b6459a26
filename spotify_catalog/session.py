import logging
import webbrowser
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import httpx

from .auth import DEFAULT_SCOPES, AuthorizationFlow, LoginRequest, TokenEndpoint, is_valid_callback_address
from .catalog import CatalogService
from .client import SpotifyClient
from .errors import InvalidConfiguration, TransportError, UpstreamError
from .models import Category, Playlist, Track
from .token_manager import CredentialStore, Credentials, JsonFileStorage, now_ms
from .token_refresher import DEFAULT_REFRESH_MARGIN_MS, TokenRefresher

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = "http://127.0.0.1:8888"


def default_callback_address(origin: str = DEFAULT_ORIGIN) -> str:
    return f"{str(origin or DEFAULT_ORIGIN).rstrip('/')}/callback"


def callback_address_from_config(config: Optional[Dict[str, Any]]) -> str:
    """spotify_redirect_uri when set, otherwise <app_origin>/callback."""

    config = config or {}
    explicit = str(config.get("spotify_redirect_uri") or "").strip()
    return explicit or default_callback_address(config.get("app_origin") or DEFAULT_ORIGIN)


class SpotifySession:
    """Everything the UI layer talks to: login, logout and catalog queries.

    Build one per process at the composition root and pass it around; tests
    build their own with a MemoryStorage, a fake clock and an httpx
    MockTransport.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        default_redirect_uri: str = "",
        scopes: Iterable[str] = DEFAULT_SCOPES,
        show_dialog: bool = False,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        refresh_margin_ms: int = DEFAULT_REFRESH_MARGIN_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        navigate: Callable[[str], Any] = webbrowser.open,
        on_query_consumed: Optional[Callable[[], Any]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.default_redirect_uri = default_redirect_uri or default_callback_address()

        token_endpoint = TokenEndpoint(timeout=timeout, transport=transport)
        self.flow = AuthorizationFlow(
            store,
            token_endpoint=token_endpoint,
            redirect_uri=lambda: self.callback_address,
            scopes=scopes,
            show_dialog=show_dialog,
            navigate=navigate,
            on_query_consumed=on_query_consumed,
            clock=clock,
        )
        self.refresher = TokenRefresher(store, token_endpoint=token_endpoint, margin_ms=refresh_margin_ms, clock=clock)
        self.client = SpotifyClient(
            self.refresher,
            timeout=timeout,
            max_retries=max_retries,
            backoff_base=backoff_base,
            transport=transport,
        )
        self.catalog = CatalogService(self.client)

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "SpotifySession":
        config = config or {}
        storage = kwargs.pop("storage", None) or JsonFileStorage(config.get("spotify_storage_path") or "data/spotify_session.json")
        return cls(
            CredentialStore(storage),
            default_redirect_uri=callback_address_from_config(config),
            scopes=config.get("spotify_scopes") or DEFAULT_SCOPES,
            show_dialog=bool(config.get("spotify_show_dialog", False)),
            timeout=float(config.get("spotify_request_timeout", 10)),
            max_retries=int(config.get("spotify_max_retries", 2)),
            backoff_base=float(config.get("spotify_backoff_base", 1.0)),
            refresh_margin_ms=int(config.get("spotify_refresh_margin_seconds", 300)) * 1000,
            **kwargs,
        )

    # -----------------
    # Session state
    # -----------------

    @property
    def callback_address(self) -> str:
        return self.store.get_redirect_uri() or self.default_redirect_uri

    @callback_address.setter
    def callback_address(self, redirect_uri: Optional[str]) -> None:
        redirect_uri = str(redirect_uri or "").strip()
        if redirect_uri and not is_valid_callback_address(redirect_uri):
            raise InvalidConfiguration(f"Callback address {redirect_uri!r} is not an absolute http(s) URL.")
        # An empty value drops the override and goes back to the default.
        self.store.set_redirect_uri(redirect_uri or None)

    def is_configured(self) -> bool:
        return self.store.load() is not None or self.store.get_app_credentials() is not None

    def is_user_authorized(self) -> bool:
        return self.store.load() is not None

    def start_login(self, client_id: str) -> LoginRequest:
        return self.flow.start_login(client_id)

    async def handle_callback(self, query_params: Mapping[str, Any]) -> Credentials:
        return await self.flow.handle_callback(query_params)

    async def connect_app(self, client_id: str, client_secret: str) -> None:
        """Browse the public catalog with app-only (client credentials) access."""

        client_id = str(client_id or "").strip()
        client_secret = str(client_secret or "").strip()
        if not client_id or not client_secret:
            raise InvalidConfiguration("Both Client ID and Client Secret are required.")

        await self.refresher.fetch_app_token(client_id, client_secret)
        self.store.set_app_credentials(client_id, client_secret)
        logger.info("Spotify app credentials configured")

    def logout(self) -> None:
        """Forget every piece of auth state. Safe to call repeatedly."""

        self.store.clear_all()
        self.refresher.forget_app_token()
        logger.info("Logged out of Spotify")

    async def get_valid_access_token(self) -> Optional[str]:
        return await self.refresher.get_valid_access_token()

    async def current_user(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.me()
        except (UpstreamError, TransportError) as e:
            logger.warning("Could not load Spotify profile: %s", e)
            return None

    # -----------------
    # Catalog
    # -----------------

    async def search_tracks(self, query: str, limit: int = 20) -> List[Track]:
        return await self.catalog.search_tracks(query, limit)

    async def featured_playlists(self, limit: int = 20) -> List[Playlist]:
        return await self.catalog.featured_playlists(limit)

    async def new_releases(self, limit: int = 20) -> List[Track]:
        return await self.catalog.new_releases(limit)

    async def categories(self, limit: int = 50) -> List[Category]:
        return await self.catalog.categories(limit)

    async def playlist_tracks(self, playlist_id: str, limit: int = 100) -> List[Track]:
        return await self.catalog.playlist_tracks(playlist_id, limit)

    async def saved_tracks(self, limit: int = 20) -> List[Track]:
        return await self.catalog.saved_tracks(limit)

    async def top_tracks(self, limit: int = 20, time_range: str = "medium_term") -> List[Track]:
        return await self.catalog.top_tracks(limit, time_range)

    async def recently_played(self, limit: int = 20) -> List[Track]:
        return await self.catalog.recently_played(limit)

    async def user_playlists(self, limit: int = 20) -> List[Playlist]:
        return await self.catalog.user_playlists(limit)
