"""Spotify Web API session (OAuth PKCE) with fallback catalog data.

Entry point for the UI layer is SpotifySession; the pieces below are exported
for hosts that want to wire their own storage, transport or clock.
"""

from .auth import AuthorizationFlow, FlowState, TokenEndpoint, extract_query_params
from .catalog import CatalogService
from .client import SpotifyClient
from .errors import (
    AuthorizationDenied,
    InvalidConfiguration,
    RefreshFailed,
    SpotifyCatalogError,
    StateMismatch,
    TokenExchangeFailed,
    TransportError,
    Unauthenticated,
    UpstreamError,
)
from .models import Album, Artist, Category, Image, Playlist, Track
from .session import SpotifySession
from .token_manager import CredentialStore, Credentials, JsonFileStorage, MemoryStorage
from .token_refresher import TokenRefresher

__all__ = [
    "AuthorizationFlow",
    "FlowState",
    "TokenEndpoint",
    "extract_query_params",
    "CatalogService",
    "SpotifyClient",
    "SpotifySession",
    "CredentialStore",
    "Credentials",
    "JsonFileStorage",
    "MemoryStorage",
    "TokenRefresher",
    # Models
    "Album",
    "Artist",
    "Category",
    "Image",
    "Playlist",
    "Track",
    # Errors
    "AuthorizationDenied",
    "InvalidConfiguration",
    "RefreshFailed",
    "SpotifyCatalogError",
    "StateMismatch",
    "TokenExchangeFailed",
    "TransportError",
    "Unauthenticated",
    "UpstreamError",
]
