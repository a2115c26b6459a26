import logging
from typing import Callable, Optional, Tuple

from .auth import TokenEndpoint
from .errors import RefreshFailed, TokenExchangeFailed, TransportError, UpstreamError
from .token_manager import CredentialStore, Credentials, expires_in_seconds, now_ms

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN_MS = 5 * 60 * 1000


class TokenRefresher:
    """Hands out access tokens, refreshing them shortly before they expire."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        token_endpoint: Optional[TokenEndpoint] = None,
        margin_ms: int = DEFAULT_REFRESH_MARGIN_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.token_endpoint = token_endpoint or TokenEndpoint()
        self.margin_ms = int(margin_ms)
        self.clock = clock
        self._app_token: Optional[Tuple[str, int]] = None

    async def get_valid_access_token(self) -> Optional[str]:
        """Return a usable access token, or None when the session is not authenticated."""

        credentials = self.store.load()
        if credentials is None:
            return await self._get_app_token()

        if not credentials.expires_within(self.margin_ms, now=self.clock()):
            return credentials.access_token

        try:
            refreshed = await self.refresh(credentials)
        except RefreshFailed as e:
            logger.warning("Could not refresh Spotify access token: %s", e)
            return None
        return refreshed.access_token

    async def refresh(self, credentials: Optional[Credentials] = None) -> Credentials:
        """Exchange the refresh token for a new access token and persist it.

        An upstream rejection wipes the stored Credentials (re-login required)
        unless a concurrent refresh already replaced them; a transport failure
        leaves them as they were.
        """

        credentials = credentials or self.store.load()
        if credentials is None or not credentials.refresh_token:
            raise RefreshFailed("No refresh token available.")

        requested_at = self.clock()
        try:
            payload = await self.token_endpoint.refresh(
                refresh_token=credentials.refresh_token,
                client_id=credentials.client_id,
            )
        except TransportError as e:
            raise RefreshFailed(f"Spotify token refresh failed: {e}") from e
        except UpstreamError as e:
            return self._rejected(credentials, f"Spotify rejected the refresh token: {e}", cause=e)

        try:
            response = Credentials.from_spotify_token_response(
                payload,
                client_id=credentials.client_id,
                now=requested_at,
                previous_refresh_token=credentials.refresh_token,
            )
        except ValueError as e:
            return self._rejected(credentials, f"Spotify token refresh response is malformed: {e}", cause=e)
        if not response.access_token:
            return self._rejected(credentials, "Spotify token refresh response carried no access_token.")

        refreshed = credentials.with_refreshed(response)
        self.store.save(refreshed)
        logger.debug("Spotify access token refreshed")
        return refreshed

    def _rejected(
        self, credentials: Credentials, message: str, *, cause: Optional[BaseException] = None
    ) -> Credentials:
        # Only clear the record this refresh was based on. Spotify rotates
        # refresh tokens, so a concurrent refresh that finished first makes
        # ours fail with invalid_grant while a newer session is already stored.
        current = self.store.load()
        if current is not None and current.refresh_token != credentials.refresh_token:
            logger.debug("Refresh rejected for a superseded token; keeping the newer session")
            return current

        self.store.clear()
        raise RefreshFailed(message) from cause

    def forget_app_token(self) -> None:
        self._app_token = None

    async def fetch_app_token(self, client_id: str, client_secret: str) -> str:
        """Run the client-credentials grant and cache the token in memory only.

        Raises TokenExchangeFailed when Spotify does not hand out a token.
        """

        requested_at = self.clock()
        try:
            payload = await self.token_endpoint.client_credentials(client_id=client_id, client_secret=client_secret)
        except (UpstreamError, TransportError) as e:
            self._app_token = None
            raise TokenExchangeFailed(f"Spotify client credentials grant failed: {e}") from e

        token = str(payload.get("access_token") or "")
        if not token:
            self._app_token = None
            raise TokenExchangeFailed("Spotify client credentials response carried no access_token.")

        try:
            expires_in = expires_in_seconds(payload)
        except ValueError as e:
            self._app_token = None
            raise TokenExchangeFailed(f"Spotify client credentials response is malformed: {e}") from e

        self._app_token = (token, requested_at + expires_in * 1000)
        return token

    async def _get_app_token(self) -> Optional[str]:
        app_credentials = self.store.get_app_credentials()
        if app_credentials is None:
            self._app_token = None
            return None

        if self._app_token is not None:
            token, expires_at = self._app_token
            if expires_at - self.clock() > self.margin_ms:
                return token

        try:
            return await self.fetch_app_token(*app_credentials)
        except TokenExchangeFailed as e:
            logger.warning("Could not obtain Spotify app token: %s", e)
            return None
