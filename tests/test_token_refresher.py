import asyncio
import base64
import sys
import unittest
import urllib.parse
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_catalog.auth import TokenEndpoint
from spotify_catalog.errors import RefreshFailed, TokenExchangeFailed
from spotify_catalog.token_manager import CredentialStore, Credentials, MemoryStorage
from spotify_catalog.token_refresher import TokenRefresher

NOW = 1_700_000_000_000
FIVE_MINUTES = 5 * 60 * 1000


class TokenEndpointStub:
    """Queue of canned responses (or exceptions) served through httpx.MockTransport."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"unexpected request to {request.url}")
        response = self.responses.pop(0)
        if isinstance(response, type) and issubclass(response, Exception):
            raise response("boom", request=request)
        return response

    def form(self, index: int = 0) -> dict:
        return {k: v[0] for k, v in urllib.parse.parse_qs(self.requests[index].content.decode()).items()}


def make_refresher(stub: TokenEndpointStub, store: CredentialStore) -> TokenRefresher:
    return TokenRefresher(store, token_endpoint=TokenEndpoint(transport=stub.transport), clock=lambda: NOW)


def stored(expires_at: int) -> Credentials:
    return Credentials(client_id="cid", access_token="old-token", refresh_token="rt", expires_at=expires_at)


class TestFreshToken(unittest.IsolatedAsyncioTestCase):
    async def test_token_far_from_expiry_is_returned_without_network(self):
        for ahead in (FIVE_MINUTES + 1, 30 * 60 * 1000, 3_600_000):
            stub = TokenEndpointStub()
            store = CredentialStore(MemoryStorage())
            store.save(stored(NOW + ahead))

            token = await make_refresher(stub, store).get_valid_access_token()

            self.assertEqual(token, "old-token")
            self.assertEqual(stub.requests, [])
            self.assertEqual(store.load(), stored(NOW + ahead))

    async def test_nothing_stored_returns_none(self):
        stub = TokenEndpointStub()
        token = await make_refresher(stub, CredentialStore(MemoryStorage())).get_valid_access_token()
        self.assertIsNone(token)
        self.assertEqual(stub.requests, [])


class TestStaleToken(unittest.IsolatedAsyncioTestCase):
    async def test_stale_token_is_refreshed_once_and_persisted(self):
        for expires_at in (NOW + FIVE_MINUTES, NOW + 1000, NOW - 60_000):
            stub = TokenEndpointStub(httpx.Response(200, json={"access_token": "new-token", "expires_in": 3600}))
            store = CredentialStore(MemoryStorage())
            store.save(stored(expires_at))

            token = await make_refresher(stub, store).get_valid_access_token()

            self.assertEqual(token, "new-token")
            self.assertEqual(len(stub.requests), 1)
            self.assertEqual(stub.form()["grant_type"], "refresh_token")
            self.assertEqual(stub.form()["refresh_token"], "rt")
            self.assertEqual(stub.form()["client_id"], "cid")

            saved = store.load()
            self.assertEqual(saved.access_token, "new-token")
            # Spotify omitted refresh_token: the old one is kept.
            self.assertEqual(saved.refresh_token, "rt")
            self.assertEqual(saved.expires_at, NOW + 3_600_000)

    async def test_rotated_refresh_token_is_stored(self):
        stub = TokenEndpointStub(
            httpx.Response(200, json={"access_token": "new-token", "refresh_token": "rt2", "expires_in": 3600})
        )
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        await make_refresher(stub, store).get_valid_access_token()

        self.assertEqual(store.load().refresh_token, "rt2")

    async def test_rejected_refresh_returns_none_and_clears_record(self):
        stub = TokenEndpointStub(httpx.Response(400, json={"error": "invalid_grant"}))
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        token = await make_refresher(stub, store).get_valid_access_token()

        self.assertIsNone(token)
        self.assertEqual(len(stub.requests), 1)
        self.assertIsNone(store.load())

    async def test_refresh_without_access_token_is_a_failure(self):
        stub = TokenEndpointStub(httpx.Response(200, json={"token_type": "Bearer"}))
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        self.assertIsNone(await make_refresher(stub, store).get_valid_access_token())
        self.assertIsNone(store.load())

    async def test_transport_failure_keeps_previous_record(self):
        stub = TokenEndpointStub(httpx.ConnectError)
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        token = await make_refresher(stub, store).get_valid_access_token()

        self.assertIsNone(token)
        self.assertEqual(store.load(), stored(NOW))


class TestAppToken(unittest.IsolatedAsyncioTestCase):
    async def test_client_credentials_token_is_cached_in_memory(self):
        stub = TokenEndpointStub(httpx.Response(200, json={"access_token": "app-token", "expires_in": 3600}))
        storage = MemoryStorage()
        store = CredentialStore(storage)
        store.set_app_credentials("cid", "secret")
        refresher = make_refresher(stub, store)

        self.assertEqual(await refresher.get_valid_access_token(), "app-token")
        self.assertEqual(await refresher.get_valid_access_token(), "app-token")

        self.assertEqual(len(stub.requests), 1)
        self.assertEqual(stub.form()["grant_type"], "client_credentials")
        expected = base64.b64encode(b"cid:secret").decode("ascii")
        self.assertEqual(stub.requests[0].headers["Authorization"], f"Basic {expected}")
        self.assertIsNone(store.load())

    async def test_failed_app_token_returns_none(self):
        stub = TokenEndpointStub(httpx.Response(401, json={"error": "invalid_client"}))
        store = CredentialStore(MemoryStorage())
        store.set_app_credentials("cid", "wrong")

        self.assertIsNone(await make_refresher(stub, store).get_valid_access_token())

class RotatingTokenEndpoint:
    """Serves two overlapping refreshes: the first rotates the refresh token, the second is rejected.

    The first response is held back until the second request has arrived, and
    the rejection is held back until the rotated session has been saved.
    """

    def __init__(self, storage: "SignallingStorage"):
        self.storage = storage
        self.requests = []
        self.second_arrived = asyncio.Event()
        self.transport = httpx.MockTransport(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.requests) == 1:
            await self.second_arrived.wait()
            return httpx.Response(200, json={"access_token": "new-token", "refresh_token": "rt2", "expires_in": 3600})
        self.second_arrived.set()
        await self.storage.credentials_saved.wait()
        return httpx.Response(400, json={"error": "invalid_grant"})


class SignallingStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.credentials_saved = asyncio.Event()

    def set(self, key, value):
        super().set(key, value)
        if key == "credentials":
            self.credentials_saved.set()


class TestConcurrentRefresh(unittest.IsolatedAsyncioTestCase):
    async def test_losing_refresh_keeps_the_newer_session(self):
        storage = SignallingStorage()
        store = CredentialStore(storage)
        store.save(stored(NOW))
        storage.credentials_saved.clear()
        endpoint = RotatingTokenEndpoint(storage)
        refresher = TokenRefresher(store, token_endpoint=TokenEndpoint(transport=endpoint.transport), clock=lambda: NOW)

        results = await asyncio.gather(refresher.get_valid_access_token(), refresher.get_valid_access_token())

        self.assertEqual(len(endpoint.requests), 2)
        self.assertEqual(results, ["new-token", "new-token"])
        saved = store.load()
        self.assertIsNotNone(saved)
        self.assertEqual(saved.access_token, "new-token")
        self.assertEqual(saved.refresh_token, "rt2")

    async def test_rejection_of_the_stored_token_still_clears_it(self):
        stub = TokenEndpointStub(httpx.Response(400, json={"error": "invalid_grant"}))
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        with self.assertRaises(RefreshFailed):
            await make_refresher(stub, store).refresh()
        self.assertIsNone(store.load())


class TestMalformedTokenResponses(unittest.IsolatedAsyncioTestCase):
    async def test_undecodable_refresh_response_is_a_rejection(self):
        stub = TokenEndpointStub(httpx.Response(200, content=b"\xff\xfe\xfa garbage"))
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        self.assertIsNone(await make_refresher(stub, store).get_valid_access_token())
        self.assertIsNone(store.load())

    async def test_non_numeric_expiry_is_a_rejection(self):
        stub = TokenEndpointStub(httpx.Response(200, json={"access_token": "new-token", "expires_in": "soon"}))
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        with self.assertRaises(RefreshFailed):
            await make_refresher(stub, store).refresh()
        self.assertIsNone(store.load())

    async def test_zero_expiry_is_taken_literally(self):
        stub = TokenEndpointStub(httpx.Response(200, json={"access_token": "new-token", "expires_in": 0}))
        store = CredentialStore(MemoryStorage())
        store.save(stored(NOW))

        await make_refresher(stub, store).get_valid_access_token()

        self.assertEqual(store.load().expires_at, NOW)

    async def test_zero_expiry_app_token_is_not_reused(self):
        stub = TokenEndpointStub(
            httpx.Response(200, json={"access_token": "app-1", "expires_in": 0}),
            httpx.Response(200, json={"access_token": "app-2", "expires_in": 0}),
        )
        store = CredentialStore(MemoryStorage())
        store.set_app_credentials("cid", "secret")
        refresher = make_refresher(stub, store)

        self.assertEqual(await refresher.get_valid_access_token(), "app-1")
        self.assertEqual(await refresher.get_valid_access_token(), "app-2")
        self.assertEqual(len(stub.requests), 2)

    async def test_non_numeric_app_token_expiry_fails(self):
        stub = TokenEndpointStub(httpx.Response(200, json={"access_token": "app", "expires_in": "later"}))
        store = CredentialStore(MemoryStorage())

        with self.assertRaises(TokenExchangeFailed):
            await make_refresher(stub, store).fetch_app_token("cid", "secret")



if __name__ == "__main__":
    unittest.main(verbosity=2)
