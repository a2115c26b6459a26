import logging
import urllib.parse
from typing import Any, List

from . import fallback
from .errors import TransportError, UpstreamError
from .models import Category, Playlist, Track, parse_category, parse_playlist, parse_track

logger = logging.getLogger(__name__)

_UNAVAILABLE = (UpstreamError, TransportError)


def _clamp(limit: int, upper: int = 50) -> int:
    return max(1, min(int(upper), int(limit)))


def _items(container: Any, key: str) -> List[Any]:
    """Return container[key]["items"] (or container["items"] when key is empty) as a list."""

    if not isinstance(container, dict):
        return []
    page = container.get(key) if key else container
    items = page.get("items") if isinstance(page, dict) else None
    return items if isinstance(items, list) else []


class CatalogService:
    """Typed catalog operations on top of SpotifyClient.

    Browsing operations (search, featured, new releases, categories, playlist
    tracks) answer with synthetic data of the requested size when Spotify is
    unavailable. Operations on the user's own library answer with an empty
    list instead, so nobody is shown a made-up library. Unauthenticated and
    other errors propagate.
    """

    def __init__(self, client):
        self.client = client

    # -----------------
    # Catalog browsing
    # -----------------

    async def search_tracks(self, query: str, limit: int = 20) -> List[Track]:
        query = str(query or "").strip()
        if not query or limit <= 0:
            return []

        limit = _clamp(limit)
        try:
            data = await self.client.request("/search", params={"q": query, "type": "track", "limit": limit})
        except _UNAVAILABLE as e:
            logger.warning("Track search for %r unavailable, using fallback data: %s", query, e)
            return fallback.search_tracks(query, limit)

        return self._tracks(_items(data, "tracks"))[:limit]

    async def featured_playlists(self, limit: int = 20) -> List[Playlist]:
        if limit <= 0:
            return []
        limit = _clamp(limit)
        try:
            data = await self.client.request("/browse/featured-playlists", params={"limit": limit})
        except _UNAVAILABLE as e:
            logger.warning("Featured playlists unavailable, using fallback data: %s", e)
            return fallback.generate_playlists(limit)

        return self._playlists(_items(data, "playlists"))[:limit]

    async def new_releases(self, limit: int = 20) -> List[Track]:
        """Tracks of newly released albums.

        Albums that embed their track list contribute those tracks; otherwise
        the album itself is listed as a single entry.
        """

        if limit <= 0:
            return []
        limit = _clamp(limit)
        try:
            data = await self.client.request("/browse/new-releases", params={"limit": limit})
        except _UNAVAILABLE as e:
            logger.warning("New releases unavailable, using fallback data: %s", e)
            return fallback.generate_tracks(limit)

        tracks: List[Track] = []
        for album in _items(data, "albums"):
            if not isinstance(album, dict):
                continue
            embedded = _items(album, "tracks")
            if embedded:
                tracks.extend(t for t in (parse_track(raw, album=album) for raw in embedded) if t)
                continue
            as_track = parse_track({**album, "duration_ms": 0, "preview_url": None}, album=album)
            if as_track:
                tracks.append(as_track)

        return tracks[:limit]

    async def categories(self, limit: int = 50) -> List[Category]:
        if limit <= 0:
            return []
        limit = _clamp(limit)
        try:
            data = await self.client.request("/browse/categories", params={"limit": limit})
        except _UNAVAILABLE as e:
            logger.warning("Categories unavailable, using fallback data: %s", e)
            return fallback.generate_categories(limit)

        categories = [c for c in (parse_category(raw) for raw in _items(data, "categories")) if c]
        return categories[:limit]

    async def playlist_tracks(self, playlist_id: str, limit: int = 100) -> List[Track]:
        if limit <= 0:
            return []
        limit = _clamp(limit, upper=100)
        try:
            data = await self.client.request(
                f"/playlists/{urllib.parse.quote(str(playlist_id), safe='')}/tracks",
                params={"limit": limit, "additional_types": "track"},
            )
        except _UNAVAILABLE as e:
            logger.warning("Tracks of playlist %s unavailable, using fallback data: %s", playlist_id, e)
            return fallback.generate_tracks(limit)

        # Endpoint shape: {items: [{added_at, track: {...}}], total, ...}
        return self._tracks(self._unwrap(_items(data, "")))[:limit]

    # -----------------
    # User library (never faked)
    # -----------------

    async def saved_tracks(self, limit: int = 20) -> List[Track]:
        return await self._user_tracks("/me/tracks", limit, wrapped=True)

    async def top_tracks(self, limit: int = 20, time_range: str = "medium_term") -> List[Track]:
        return await self._user_tracks("/me/top/tracks", limit, time_range=time_range)

    async def recently_played(self, limit: int = 20) -> List[Track]:
        return await self._user_tracks("/me/player/recently-played", limit, wrapped=True)

    async def user_playlists(self, limit: int = 20) -> List[Playlist]:
        if limit <= 0:
            return []
        try:
            data = await self.client.request("/me/playlists", params={"limit": _clamp(limit)})
        except _UNAVAILABLE as e:
            logger.warning("User playlists unavailable: %s", e)
            return []
        return self._playlists(_items(data, ""))

    # -----------------
    # Helpers
    # -----------------

    async def _user_tracks(self, path: str, limit: int, *, wrapped: bool = False, **params: Any) -> List[Track]:
        if limit <= 0:
            return []
        try:
            data = await self.client.request(path, params={"limit": _clamp(limit), **params})
        except _UNAVAILABLE as e:
            logger.warning("%s unavailable: %s", path, e)
            return []

        items = _items(data, "")
        return self._tracks(self._unwrap(items) if wrapped else items)

    @staticmethod
    def _unwrap(items: List[Any]) -> List[Any]:
        # Saved / recently played / playlist items wrap the track object.
        return [item.get("track") for item in items if isinstance(item, dict)]

    @staticmethod
    def _tracks(items: List[Any]) -> List[Track]:
        return [t for t in (parse_track(raw) for raw in items) if t]

    @staticmethod
    def _playlists(items: List[Any]) -> List[Playlist]:
        return [p for p in (parse_playlist(raw) for raw in items) if p]
