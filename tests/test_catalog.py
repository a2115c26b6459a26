import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_catalog.catalog import CatalogService
from spotify_catalog.errors import TransportError, Unauthenticated, UpstreamError
from spotify_catalog.fallback import matches_query
from spotify_catalog.models import PLACEHOLDER_IMAGE_URL


class FailingGateway:
    def __init__(self, error):
        self.error = error
        self.calls = []

    async def request(self, path, method="GET", body=None, *, params=None):
        self.calls.append((path, params))
        raise self.error


class CannedGateway:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def request(self, path, method="GET", body=None, *, params=None):
        self.calls.append((path, params))
        return self.responses[path]


def raw_track(n, **extra):
    track = {
        "id": f"t{n}",
        "name": f"Song {n}",
        "artists": [{"id": "a1", "name": "Artist"}],
        "album": {"id": "al1", "name": "Album", "images": [{"url": f"https://i.scdn.co/image/{n}"}]},
        "duration_ms": 200000,
        "preview_url": None,
        "uri": f"spotify:track:t{n}",
    }
    track.update(extra)
    return track


def assert_renderable(test, items):
    for item in items:
        test.assertTrue(item.id)
        test.assertTrue(item.name)
        test.assertGreaterEqual(len(item.images), 1)
        test.assertTrue(item.images[0].url)


class TestBrowsingFallback(unittest.IsolatedAsyncioTestCase):
    async def test_new_releases_fall_back_to_synthetic_tracks(self):
        for error in (TransportError("offline"), UpstreamError(503)):
            catalog = CatalogService(FailingGateway(error))

            tracks = await catalog.new_releases(8)

            self.assertEqual(len(tracks), 8)
            assert_renderable(self, tracks)
            self.assertEqual(len({t.id for t in tracks}), 8)

    async def test_featured_playlists_fall_back(self):
        playlists = await CatalogService(FailingGateway(TransportError("offline"))).featured_playlists(12)
        self.assertEqual(len(playlists), 12)
        assert_renderable(self, playlists)

    async def test_categories_fall_back(self):
        categories = await CatalogService(FailingGateway(UpstreamError(500))).categories(11)
        self.assertEqual([c.name for c in categories][:3], ["Pop", "Hip-Hop", "Rock"])
        self.assertEqual(len(categories), 11)
        assert_renderable(self, categories)

    async def test_playlist_tracks_fall_back(self):
        tracks = await CatalogService(FailingGateway(TransportError("offline"))).playlist_tracks("p1", 5)
        self.assertEqual(len(tracks), 5)

    async def test_search_fallback_matches_query(self):
        tracks = await CatalogService(FailingGateway(TransportError("offline"))).search_tracks("midnight", 6)
        self.assertEqual(len(tracks), 6)
        self.assertTrue(all(matches_query(t.name, "midnight") for t in tracks))
        assert_renderable(self, tracks)

    async def test_blank_search_makes_no_call(self):
        gateway = FailingGateway(TransportError("offline"))
        self.assertEqual(await CatalogService(gateway).search_tracks("   "), [])
        self.assertEqual(gateway.calls, [])

    async def test_unauthenticated_propagates(self):
        catalog = CatalogService(FailingGateway(Unauthenticated("log in")))
        with self.assertRaises(Unauthenticated):
            await catalog.new_releases(8)
        with self.assertRaises(Unauthenticated):
            await catalog.saved_tracks()


class TestUserLibraryNeverFaked(unittest.IsolatedAsyncioTestCase):
    async def test_user_scoped_operations_return_empty(self):
        for error in (TransportError("offline"), UpstreamError(500)):
            catalog = CatalogService(FailingGateway(error))
            self.assertEqual(await catalog.saved_tracks(20), [])
            self.assertEqual(await catalog.top_tracks(20), [])
            self.assertEqual(await catalog.recently_played(20), [])
            self.assertEqual(await catalog.user_playlists(20), [])


class TestUpstreamMapping(unittest.IsolatedAsyncioTestCase):
    async def test_search_maps_tracks(self):
        gateway = CannedGateway({"/search": {"tracks": {"items": [raw_track(1), raw_track(2), {"name": "no id"}]}}})

        tracks = await CatalogService(gateway).search_tracks("song", limit=5)

        self.assertEqual([t.id for t in tracks], ["t1", "t2"])
        self.assertEqual(gateway.calls[0], ("/search", {"q": "song", "type": "track", "limit": 5}))

    async def test_new_releases_use_embedded_tracks_or_album(self):
        with_tracks = {
            "id": "al1",
            "name": "Full Album",
            "images": [{"url": "https://i.scdn.co/image/al1"}],
            "tracks": {"items": [{"id": "t1", "name": "Opener", "artists": [{"name": "X"}], "duration_ms": 1000}]},
        }
        bare = {"id": "al2", "name": "Single", "artists": [{"name": "Y"}], "images": []}
        gateway = CannedGateway({"/browse/new-releases": {"albums": {"items": [with_tracks, bare]}}})

        tracks = await CatalogService(gateway).new_releases(8)

        self.assertEqual([t.name for t in tracks], ["Opener", "Single"])
        self.assertEqual(tracks[0].album.name, "Full Album")
        self.assertEqual(tracks[0].images[0].url, "https://i.scdn.co/image/al1")
        self.assertEqual(tracks[1].artist_names, "Y")
        self.assertEqual(tracks[1].images[0].url, PLACEHOLDER_IMAGE_URL)

    async def test_featured_playlists_mapping(self):
        gateway = CannedGateway(
            {
                "/browse/featured-playlists": {
                    "playlists": {
                        "items": [
                            {"id": "p1", "name": "Hits", "description": "Top", "images": [{"url": "u"}], "tracks": {"total": 50}},
                            None,
                        ]
                    }
                }
            }
        )

        playlists = await CatalogService(gateway).featured_playlists(12)

        self.assertEqual(len(playlists), 1)
        self.assertEqual(playlists[0].tracks_total, 50)
        self.assertEqual(playlists[0].description, "Top")

    async def test_categories_mapping(self):
        gateway = CannedGateway(
            {"/browse/categories": {"categories": {"items": [{"id": "pop", "name": "Pop", "icons": [{"url": "icon"}]}]}}}
        )
        categories = await CatalogService(gateway).categories()
        self.assertEqual(categories[0].name, "Pop")
        self.assertEqual(categories[0].images[0].url, "icon")

    async def test_saved_and_recent_items_are_unwrapped(self):
        gateway = CannedGateway(
            {
                "/me/tracks": {"items": [{"added_at": "2024-01-01T00:00:00Z", "track": raw_track(1)}]},
                "/me/player/recently-played": {"items": [{"played_at": "x", "track": raw_track(2)}]},
                "/me/top/tracks": {"items": [raw_track(3)]},
                "/playlists/p1/tracks": {"items": [{"track": raw_track(4)}, {"track": raw_track(5, is_local=True)}]},
            }
        )
        catalog = CatalogService(gateway)

        self.assertEqual([t.id for t in await catalog.saved_tracks()], ["t1"])
        self.assertEqual([t.id for t in await catalog.recently_played()], ["t2"])
        self.assertEqual([t.id for t in await catalog.top_tracks(time_range="short_term")], ["t3"])
        self.assertEqual([t.id for t in await catalog.playlist_tracks("p1")], ["t4"])
        self.assertIn(("/me/top/tracks", {"limit": 20, "time_range": "short_term"}), gateway.calls)

    async def test_limits_are_clamped(self):
        gateway = CannedGateway({"/browse/categories": {}, "/playlists/p1/tracks": {}})
        catalog = CatalogService(gateway)

        await catalog.categories(500)
        await catalog.playlist_tracks("p1", 500)

        self.assertEqual(gateway.calls[0][1]["limit"], 50)
        self.assertEqual(gateway.calls[1][1]["limit"], 100)

    async def test_non_positive_limit_is_empty_without_a_call(self):
        gateway = FailingGateway(TransportError("offline"))
        catalog = CatalogService(gateway)

        for limit in (0, -5):
            self.assertEqual(await catalog.new_releases(limit), [])
            self.assertEqual(await catalog.featured_playlists(limit), [])
            self.assertEqual(await catalog.categories(limit), [])
            self.assertEqual(await catalog.playlist_tracks("p1", limit), [])
            self.assertEqual(await catalog.search_tracks("pop", limit), [])
            self.assertEqual(await catalog.saved_tracks(limit), [])
            self.assertEqual(await catalog.user_playlists(limit), [])
        self.assertEqual(gateway.calls, [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
