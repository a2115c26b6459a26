import base64
import enum
import hashlib
import logging
import secrets
import urllib.parse
import webbrowser
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

import httpx

from .errors import (
    AuthorizationDenied,
    InvalidConfiguration,
    SpotifyCatalogError,
    StateMismatch,
    TokenExchangeFailed,
    TransportError,
    UpstreamError,
)
from .token_manager import CredentialStore, Credentials, now_ms

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

DEFAULT_SCOPES = (
    "user-read-private",
    "user-read-email",
    "user-library-read",
    "user-top-read",
    "user-read-recently-played",
    "playlist-read-private",
)

DEFAULT_TIMEOUT = 10.0


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_code_verifier() -> str:
    # RFC 7636: verifier length 43-128 chars, characters from ALPHA / DIGIT / "-" / "." / "_" / "~"
    verifier = secrets.token_urlsafe(64).rstrip("=")[:128]
    if len(verifier) < 43:
        verifier = (verifier + secrets.token_urlsafe(64)).rstrip("=")[:43]
    return verifier


def generate_auth_state() -> str:
    return secrets.token_urlsafe(16).rstrip("=")


def is_valid_callback_address(redirect_uri: str) -> bool:
    parsed = urllib.parse.urlparse(str(redirect_uri or "").strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_query_params(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code", "state", "error"} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


def _first(params: Mapping[str, Any], key: str) -> Optional[str]:
    """Read a query value that may be a plain string or a parse_qs-style list."""

    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value)
    return value or None


def check_spotify_credentials(client_id: str, redirect_uri: str, scopes: Iterable[str]) -> Dict[str, Any]:
    """Validate OAuth settings and return a structured status dict."""

    client_id = str(client_id or "").strip()
    redirect_uri = str(redirect_uri or "").strip()
    scopes = [str(s).strip() for s in (scopes or []) if str(s).strip()]

    status: Dict[str, Any] = {
        "ok": True,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scopes": scopes,
        "message": "Spotify credentials look OK.",
    }

    if not client_id:
        status["ok"] = False
        status["message"] = "Missing Spotify Client ID. Create an app in the Spotify dashboard first."
    elif not is_valid_callback_address(redirect_uri):
        status["ok"] = False
        status["message"] = (
            f"Callback address {redirect_uri!r} is not an absolute http(s) URL.\n"
            "Recommended default: http://127.0.0.1:8888/callback"
        )
    return status


def spotify_app_setup_instructions(*, redirect_uri: str = "http://127.0.0.1:8888/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://127.0.0.1:8888/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID and use it for 'Log in with Spotify'\n"
        "5) Optionally copy the Client Secret for app-only catalog browsing\n\n"
        "Notes:\n"
        "- Login uses Authorization Code + PKCE (no client secret required).\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


class TokenEndpoint:
    """POSTs form-encoded grants to the Spotify accounts token endpoint."""

    def __init__(
        self,
        *,
        url: str = SPOTIFY_TOKEN_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def exchange_code(self, *, code: str, redirect_uri: str, client_id: str, code_verifier: Optional[str]) -> Dict[str, Any]:
        return await self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "code_verifier": code_verifier,
            }
        )

    async def refresh(self, *, refresh_token: str, client_id: str) -> Dict[str, Any]:
        return await self._post_form(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
            }
        )

    async def client_credentials(self, *, client_id: str, client_secret: str) -> Dict[str, Any]:
        basic = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
        return await self._post_form(
            {"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {basic}"},
        )

    async def _post_form(self, form: Dict[str, Any], *, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        request_headers = {"Content-Type": "application/x-www-form-urlencoded"}
        request_headers.update(headers or {})

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=False, transport=self.transport
            ) as client:
                resp = await client.post(self.url, data=data, headers=request_headers)
        except httpx.TransportError as e:
            raise TransportError(f"Spotify token request failed: {e}") from e

        if resp.status_code >= 400:
            raise UpstreamError(resp.status_code, resp.text)

        try:
            payload = resp.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors.
            raise UpstreamError(resp.status_code, f"token response was not JSON: {e}") from e

        if not isinstance(payload, dict):
            raise UpstreamError(resp.status_code, f"token response was not an object: {payload}")

        return payload


class FlowState(enum.Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_CODE = "exchanging_code"
    AUTHORIZED = "authorized"
    FAILED = "failed"


@dataclass(frozen=True)
class LoginRequest:
    auth_url: str
    state: str
    redirect_uri: str


class AuthorizationFlow:
    """Spotify OAuth (Authorization Code + PKCE) driven as a small state machine.

    IDLE -> AWAITING_REDIRECT -> EXCHANGING_CODE -> AUTHORIZED, or FAILED with
    ``failure`` holding the error. The host application calls handle_callback
    itself when it routes to the callback address.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        token_endpoint: Optional[TokenEndpoint] = None,
        redirect_uri: Callable[[], str],
        scopes: Iterable[str] = DEFAULT_SCOPES,
        show_dialog: bool = False,
        navigate: Callable[[str], Any] = webbrowser.open,
        on_query_consumed: Optional[Callable[[], Any]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.token_endpoint = token_endpoint or TokenEndpoint()
        self._redirect_uri = redirect_uri
        self.scopes = [str(s).strip() for s in scopes if str(s).strip()]
        self.show_dialog = show_dialog
        self.navigate = navigate
        self.on_query_consumed = on_query_consumed
        self.clock = clock
        self.state = FlowState.IDLE
        self.failure: Optional[SpotifyCatalogError] = None

    @property
    def redirect_uri(self) -> str:
        return str(self._redirect_uri() or "").strip()

    def get_authorize_url(self, *, client_id: str, state: str, code_challenge: str) -> str:
        params: Dict[str, str] = {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
            "code_challenge_method": "S256",
            "code_challenge": code_challenge,
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        if self.show_dialog:
            params["show_dialog"] = "true"

        return f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize?{urllib.parse.urlencode(params)}"

    def start_login(self, client_id: str) -> LoginRequest:
        """Persist fresh flow state and send the browser to Spotify's consent page."""

        client_id = str(client_id or "").strip()
        if not client_id:
            raise InvalidConfiguration("A Spotify Client ID is required to log in.")

        redirect_uri = self.redirect_uri
        if not is_valid_callback_address(redirect_uri):
            raise InvalidConfiguration(f"Callback address {redirect_uri!r} is not an absolute http(s) URL.")

        state = generate_auth_state()
        verifier = generate_code_verifier()
        auth_url = self.get_authorize_url(
            client_id=client_id,
            state=state,
            code_challenge=code_challenge_from_verifier(verifier),
        )

        self.store.set_auth_state(state, verifier)
        self.store.set_client_id(client_id)
        self.state = FlowState.AWAITING_REDIRECT
        self.failure = None

        logger.info("Redirecting to Spotify authorization page")
        self.navigate(auth_url)
        return LoginRequest(auth_url=auth_url, state=state, redirect_uri=redirect_uri)

    async def handle_callback(self, query_params: Mapping[str, Any]) -> Credentials:
        """Validate the redirect and exchange its code for Credentials.

        The persisted state is consumed before anything else, so a callback can
        only ever be trusted once.
        """

        expected_state, verifier = self.store.pop_auth_state()

        error = _first(query_params, "error")
        if error:
            return self._fail(AuthorizationDenied(error))

        echoed_state = _first(query_params, "state")
        if not expected_state or not echoed_state or not secrets.compare_digest(echoed_state, expected_state):
            return self._fail(StateMismatch("Callback state does not match the login request; refusing the code."))

        code = _first(query_params, "code")
        if not code:
            return self._fail(TokenExchangeFailed("Callback did not include an authorization code."))

        client_id = self.store.get_client_id()
        if not client_id:
            return self._fail(InvalidConfiguration("No Spotify Client ID stored for this login."))

        self.state = FlowState.EXCHANGING_CODE
        requested_at = self.clock()
        try:
            payload = await self.token_endpoint.exchange_code(
                code=code,
                redirect_uri=self.redirect_uri,
                client_id=client_id,
                code_verifier=verifier,
            )
        except (UpstreamError, TransportError) as e:
            return self._fail(TokenExchangeFailed(f"Spotify token exchange failed: {e}"), cause=e)

        try:
            credentials = Credentials.from_spotify_token_response(payload, client_id=client_id, now=requested_at)
        except ValueError as e:
            return self._fail(TokenExchangeFailed(f"Spotify token response is malformed: {e}"), cause=e)
        if not credentials.access_token or not credentials.refresh_token:
            return self._fail(TokenExchangeFailed("Spotify token response is missing access_token or refresh_token."))

        self.store.save(credentials)
        if self.on_query_consumed is not None:
            self.on_query_consumed()

        self.state = FlowState.AUTHORIZED
        self.failure = None
        logger.info("Spotify login completed")
        return credentials

    def _fail(self, error: SpotifyCatalogError, *, cause: Optional[BaseException] = None):
        self.state = FlowState.FAILED
        self.failure = error
        logger.warning("Spotify login failed: %s", error)
        if cause is not None:
            raise error from cause
        raise error
