from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Shown whenever Spotify returns an item without artwork.
PLACEHOLDER_IMAGE_URL = "https://placehold.co/300x300?text=%E2%99%AA"


@dataclass(frozen=True)
class Image:
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class Artist:
    name: str
    id: Optional[str] = None


@dataclass(frozen=True)
class Album:
    id: str
    name: str
    images: List[Image] = field(default_factory=list)
    release_date: Optional[str] = None


@dataclass(frozen=True)
class Track:
    id: str
    name: str
    artists: List[Artist]
    album: Album
    duration_ms: int = 0
    preview_url: Optional[str] = None
    uri: Optional[str] = None

    @property
    def artist_names(self) -> str:
        return ", ".join(a.name for a in self.artists)

    @property
    def images(self) -> List[Image]:
        return self.album.images

    @property
    def duration(self) -> str:
        """m:ss, as shown next to track titles."""

        minutes, seconds = divmod(max(0, int(self.duration_ms)) // 1000, 60)
        return f"{minutes}:{seconds:02d}"


@dataclass(frozen=True)
class Playlist:
    id: str
    name: str
    description: str
    images: List[Image]
    tracks_total: int = 0
    owner: Optional[str] = None


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    images: List[Image]


def parse_images(raw: Any) -> List[Image]:
    """Map Spotify image objects; guarantees at least one artwork URL."""

    images: List[Image] = []
    if isinstance(raw, list):
        for img in raw:
            if isinstance(img, dict) and img.get("url"):
                images.append(Image(url=str(img["url"]), width=img.get("width"), height=img.get("height")))
    return images or [Image(url=PLACEHOLDER_IMAGE_URL, width=300, height=300)]


def parse_artists(raw: Any) -> List[Artist]:
    if not isinstance(raw, list):
        return []
    artists = []
    for a in raw:
        if isinstance(a, dict) and a.get("name"):
            artists.append(Artist(name=str(a["name"]).strip(), id=a.get("id")))
    return artists


def parse_album(raw: Any) -> Album:
    album = raw if isinstance(raw, dict) else {}
    return Album(
        id=str(album.get("id") or ""),
        name=str(album.get("name") or ""),
        images=parse_images(album.get("images")),
        release_date=album.get("release_date"),
    )


def parse_track(raw: Any, *, album: Optional[Dict[str, Any]] = None) -> Optional[Track]:
    """Map a Spotify track object; returns None for local files or items without id/name."""

    if not isinstance(raw, dict):
        return None

    # Episodes / local tracks may appear in playlists.
    if raw.get("is_local") or raw.get("type") == "episode":
        return None

    track_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not track_id or not name:
        return None

    return Track(
        id=track_id,
        name=name,
        artists=parse_artists(raw.get("artists")),
        album=parse_album(album if album is not None else raw.get("album")),
        duration_ms=int(raw.get("duration_ms") or 0),
        preview_url=raw.get("preview_url"),
        uri=raw.get("uri"),
    )


def parse_playlist(raw: Any) -> Optional[Playlist]:
    if not isinstance(raw, dict):
        return None

    playlist_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not playlist_id or not name:
        return None

    tracks = raw.get("tracks") or raw.get("items")
    owner = raw.get("owner")
    return Playlist(
        id=playlist_id,
        name=name,
        description=str(raw.get("description") or ""),
        images=parse_images(raw.get("images")),
        tracks_total=int((tracks or {}).get("total") or 0) if isinstance(tracks, dict) else 0,
        owner=(owner.get("display_name") if isinstance(owner, dict) else None),
    )


def parse_category(raw: Any) -> Optional[Category]:
    if not isinstance(raw, dict):
        return None

    category_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not category_id or not name:
        return None

    return Category(id=category_id, name=name, images=parse_images(raw.get("icons")))
