import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .errors import RefreshFailed, TransportError, Unauthenticated, UpstreamError
from .token_refresher import TokenRefresher

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"


class SpotifyClient:
    """Thin async Spotify Web API gateway.

    Attaches the bearer token, classifies failures into UpstreamError /
    TransportError and never substitutes data itself.

    Retry behavior:
    - 429: honors Retry-After (Spotify rate limiting)
    - 5xx: exponential backoff retries
    - 401: one forced refresh when a refresh token is stored
    All bounded by max_retries; transport failures are not retried.
    """

    def __init__(
        self,
        refresher: TokenRefresher,
        *,
        base_url: str = SPOTIFY_API_BASE_URL,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        retry_jitter: float = 0.25,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.refresher = refresher
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.backoff_base = float(backoff_base)
        self.retry_jitter = float(retry_jitter)
        self.transport = transport
        self._sleep = sleep

    async def _sleep_with_jitter(self, seconds: float) -> None:
        # Avoid synchronized retries when several catalog calls run together.
        seconds = float(max(0.0, seconds))
        await self._sleep(seconds + (self.retry_jitter * (time.time() % 1.0)))

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the Web API and return parsed JSON ({} for an empty body)."""

        token = await self.refresher.get_valid_access_token()
        if token is None:
            raise Unauthenticated("No Spotify access token available. Log in first.")

        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        url = f"{self.base_url}{path}"
        refreshed_after_401 = False
        attempt = 0

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                attempt += 1
                try:
                    resp = await client.request(
                        method.upper(),
                        url,
                        params=query or None,
                        json=body,
                        headers={
                            "Authorization": f"Bearer {token}",
                            "Accept": "application/json",
                        },
                    )
                except httpx.TransportError as e:
                    raise TransportError(f"Spotify API request failed: {e}") from e

                status = resp.status_code

                # 401: token revoked server-side; refresh once if we hold a refresh token.
                if status == 401 and not refreshed_after_401:
                    refreshed_after_401 = True
                    new_token = await self._force_refresh()
                    if new_token:
                        token = new_token
                        continue

                if status == 429 and attempt <= self.max_retries:
                    retry_after = resp.headers.get("Retry-After")
                    try:
                        delay = float(retry_after) if retry_after is not None else 1.0
                    except ValueError:
                        delay = 1.0
                    logger.debug("Rate limited on %s, retrying in %.1fs", path, delay)
                    await self._sleep_with_jitter(max(1.0, delay))
                    continue

                if status >= 500 and attempt <= self.max_retries:
                    delay = self.backoff_base * (2 ** max(0, attempt - 1))
                    logger.debug("Spotify returned %s on %s, retrying in %.1fs", status, path, delay)
                    await self._sleep_with_jitter(min(60.0, delay))
                    continue

                if status < 200 or status >= 300:
                    raise UpstreamError(status, resp.text)

                if not resp.content:
                    return {}

                try:
                    payload = resp.json()
                except ValueError as e:
                    # Covers undecodable bytes as well as malformed JSON.
                    raise UpstreamError(status, f"response was not JSON: {e}") from e

                if not isinstance(payload, dict):
                    return {"items": payload} if isinstance(payload, list) else {}
                return payload

    async def _force_refresh(self) -> Optional[str]:
        credentials = self.refresher.store.load()
        if credentials is None:
            return None
        try:
            refreshed = await self.refresher.refresh(credentials)
        except RefreshFailed as e:
            logger.warning("Refresh after 401 failed: %s", e)
            return None
        return refreshed.access_token

    # -----------------
    # Convenience endpoints
    # -----------------

    async def me(self) -> Dict[str, Any]:
        return await self.request("/me")
