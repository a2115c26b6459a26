import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = os.path.join("data", "spotify_session.json")

# Stable storage keys. Absence of any of them means "not configured yet".
CLIENT_ID_KEY = "client_id"
AUTH_STATE_KEY = "auth_state"
CODE_VERIFIER_KEY = "code_verifier"
REDIRECT_URI_KEY = "redirect_uri"
CREDENTIALS_KEY = "credentials"
APP_CREDENTIALS_KEY = "app_credentials"


def now_ms() -> int:
    return int(time.time() * 1000)


def expires_in_seconds(payload: Dict[str, Any], default: int = 3600) -> int:
    """Token lifetime from a token response; ValueError when it is not a number."""

    value = payload.get("expires_in")
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"expires_in is not a number: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"expires_in is not a number: {value!r}") from e


@dataclass(frozen=True)
class Credentials:
    """User session persisted by CredentialStore.

    expires_at is an absolute epoch timestamp in milliseconds.
    """

    client_id: str
    access_token: str
    refresh_token: str
    expires_at: int
    token_type: str = "Bearer"
    scope: Optional[str] = None

    @staticmethod
    def from_spotify_token_response(
        payload: Dict[str, Any],
        *,
        client_id: str,
        now: Optional[int] = None,
        previous_refresh_token: Optional[str] = None,
    ) -> "Credentials":
        """Convert Spotify token response JSON into Credentials.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (omitted on most refreshes)
        - scope (space-delimited string)

        Raises ValueError when expires_in is present but not a number.
        """

        now_ts = int(now_ms() if now is None else now)
        expires_in = expires_in_seconds(payload)

        return Credentials(
            client_id=client_id,
            access_token=str(payload.get("access_token") or ""),
            refresh_token=str(payload.get("refresh_token") or previous_refresh_token or ""),
            expires_at=now_ts + expires_in * 1000,
            token_type=str(payload.get("token_type") or "Bearer"),
            scope=payload.get("scope"),
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Credentials":
        """Rebuild Credentials from a stored record; raises ValueError if the record is unusable."""

        if not isinstance(data, dict):
            raise ValueError("credentials record is not an object")

        access_token = str(data.get("access_token") or "")
        refresh_token = str(data.get("refresh_token") or "")
        if not access_token or not refresh_token:
            raise ValueError("credentials record must carry both access and refresh token")

        return Credentials(
            client_id=str(data.get("client_id") or ""),
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(data.get("expires_at", 0)),
            token_type=str(data.get("token_type") or "Bearer"),
            scope=data.get("scope"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
            "scope": self.scope,
        }

    def with_refreshed(self, other: "Credentials") -> "Credentials":
        """Return a copy carrying the tokens and expiry of a refresh response."""

        return replace(
            self,
            access_token=other.access_token,
            refresh_token=other.refresh_token or self.refresh_token,
            expires_at=other.expires_at,
            token_type=other.token_type,
            scope=other.scope or self.scope,
        )

    def expires_within(self, margin_ms: int, *, now: Optional[int] = None) -> bool:
        now_ts = int(now_ms() if now is None else now)
        return self.expires_at - now_ts <= margin_ms


class MemoryStorage:
    """Dict-backed key/value storage (tests, throwaway sessions)."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class JsonFileStorage:
    """Key/value storage kept in a single JSON document on disk.

    Every write re-serializes the whole document into a temp file next to the
    target and swaps it in with os.replace, so a reader sees either the old or
    the new document, never a partial one.
    """

    def __init__(self, path: str = DEFAULT_STORAGE_PATH):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring session file %s: top level is not an object", self.path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)

        payload = json.dumps(data, indent=2)
        fd, tmp_path = tempfile.mkstemp(prefix=".session-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)


class CredentialStore:
    """Persists the authorization-flow state behind a key/value storage backend."""

    def __init__(self, storage=None):
        self.storage = storage if storage is not None else JsonFileStorage()

    # -----------------
    # Credentials
    # -----------------

    def load(self) -> Optional[Credentials]:
        """Return stored Credentials, or None when absent or corrupt.

        A corrupt record is removed so the next load starts clean.
        """

        data = self.storage.get(CREDENTIALS_KEY)
        if data is None:
            return None

        try:
            return Credentials.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding malformed stored credentials: %s", e)
            self.storage.delete(CREDENTIALS_KEY)
            return None

    def save(self, credentials: Credentials) -> None:
        self.storage.set(CREDENTIALS_KEY, credentials.to_dict())

    def clear(self) -> None:
        self.storage.delete(CREDENTIALS_KEY)

    # -----------------
    # Flow state
    # -----------------

    def get_client_id(self) -> Optional[str]:
        value = self.storage.get(CLIENT_ID_KEY)
        return str(value) if value else None

    def set_client_id(self, client_id: str) -> None:
        self.storage.set(CLIENT_ID_KEY, client_id)

    def get_auth_state(self) -> Optional[str]:
        value = self.storage.get(AUTH_STATE_KEY)
        return str(value) if value else None

    def set_auth_state(self, state: str, code_verifier: str) -> None:
        self.storage.set(AUTH_STATE_KEY, state)
        self.storage.set(CODE_VERIFIER_KEY, code_verifier)

    def pop_auth_state(self) -> Tuple[Optional[str], Optional[str]]:
        """Return (state, code_verifier) and forget both."""

        state = self.get_auth_state()
        verifier = self.storage.get(CODE_VERIFIER_KEY)
        self.storage.delete(AUTH_STATE_KEY)
        self.storage.delete(CODE_VERIFIER_KEY)
        return state, (str(verifier) if verifier else None)

    def get_redirect_uri(self) -> Optional[str]:
        value = self.storage.get(REDIRECT_URI_KEY)
        return str(value) if value else None

    def set_redirect_uri(self, redirect_uri: Optional[str]) -> None:
        if redirect_uri:
            self.storage.set(REDIRECT_URI_KEY, redirect_uri)
        else:
            self.storage.delete(REDIRECT_URI_KEY)

    def get_app_credentials(self) -> Optional[Tuple[str, str]]:
        data = self.storage.get(APP_CREDENTIALS_KEY)
        if not isinstance(data, dict):
            return None
        client_id = str(data.get("client_id") or "")
        client_secret = str(data.get("client_secret") or "")
        if not client_id or not client_secret:
            return None
        return client_id, client_secret

    def set_app_credentials(self, client_id: str, client_secret: str) -> None:
        self.storage.set(APP_CREDENTIALS_KEY, {"client_id": client_id, "client_secret": client_secret})

    def clear_app_credentials(self) -> None:
        self.storage.delete(APP_CREDENTIALS_KEY)

    def clear_all(self) -> None:
        """Forget all auth state. The callback address override is a user preference and survives."""

        for key in (CREDENTIALS_KEY, CLIENT_ID_KEY, AUTH_STATE_KEY, CODE_VERIFIER_KEY, APP_CREDENTIALS_KEY):
            self.storage.delete(key)
