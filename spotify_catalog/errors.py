from typing import Optional


class SpotifyCatalogError(Exception):
    """Base class for every error raised by spotify_catalog."""


class InvalidConfiguration(SpotifyCatalogError):
    """Client setup is missing or malformed (user-correctable)."""


class StateMismatch(SpotifyCatalogError):
    """The redirect echoed a state value that was never issued by this client."""


class AuthorizationDenied(SpotifyCatalogError):
    """Spotify redirected back with an ``error`` parameter (e.g. access_denied)."""

    def __init__(self, error_code: str):
        super().__init__(f"Spotify authorization failed: {error_code}")
        self.error_code = error_code


class TokenExchangeFailed(SpotifyCatalogError):
    """The authorization code (or client credentials) could not be exchanged for a token."""


class RefreshFailed(SpotifyCatalogError):
    """The refresh token exchange failed."""


class Unauthenticated(SpotifyCatalogError):
    """No usable access token; the user has to log in again."""


class UpstreamError(SpotifyCatalogError):
    """Spotify answered with a non-2xx status (or an unreadable body)."""

    def __init__(self, status: int, body: Optional[str] = None):
        message = f"Spotify API error {status}"
        if body:
            message = f"{message}: {body[:200]}"
        super().__init__(message)
        self.status = status
        self.body = body


class TransportError(SpotifyCatalogError):
    """The request never produced a response (DNS, offline, timeout)."""
