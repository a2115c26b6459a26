"""Synthetic catalog entries served when Spotify cannot be reached.

Everything here is pure: same arguments, same output, no network or storage.
The generated items satisfy the same contract as mapped Spotify data (non-empty
id and name, at least one artwork URL).
"""

from typing import List

from .models import Album, Artist, Category, Image, Playlist, Track

ARTWORK_BASE_URLS = (
    "https://images.unsplash.com/photo-1488590528505-98d2b5aba04b",
    "https://images.unsplash.com/photo-1605810230434-7631ac76ec81",
    "https://images.unsplash.com/photo-1649972904349-6e44c42644a7",
)

TRACK_TITLES = (
    "Synthwave Dreams",
    "Midnight Drive",
    "Summer Memories",
    "Urban Flow",
    "Neon Horizon",
    "Slow Motion",
    "Golden Hour",
    "Static Hearts",
)

ARTIST_NAMES = (
    "Electronic Artist",
    "Night Cruiser",
    "Sunshine Band",
    "City Sounds",
)

ALBUM_NAMES = (
    "Neon Nights",
    "Urban Lights",
    "Golden Days",
    "Metropolitan",
)

PLAYLISTS = (
    ("Today's Top Hits", "The hottest tracks right now"),
    ("Chill Vibes", "Relaxing music to unwind"),
    ("Workout Energy", "Power your fitness routine"),
    ("Indie Mix", "Fresh indie tracks you'll love"),
    ("Focus Flow", "Tune out distractions and get in the zone"),
    ("Throwback Classics", "Hits from the past decades"),
)

GENRES = (
    "Pop",
    "Hip-Hop",
    "Rock",
    "Electronic",
    "Latin",
    "Indie",
    "R&B",
    "K-pop",
    "Metal",
    "Jazz",
    "Classical",
)


def artwork(index: int, size: int = 300) -> List[Image]:
    base = ARTWORK_BASE_URLS[index % len(ARTWORK_BASE_URLS)]
    return [Image(url=f"{base}?auto=format&fit=crop&w={size}&h={size}", width=size, height=size)]


def _cyclic_name(table, index: int) -> str:
    # Second and later passes over a table get a number so names stay distinct.
    name = table[index % len(table)]
    lap = index // len(table)
    return f"{name} {lap + 1}" if lap else name


def generate_tracks(count: int, start: int = 1) -> List[Track]:
    tracks = []
    for n in range(start, start + max(0, int(count))):
        i = n - 1
        tracks.append(
            Track(
                id=f"fallback-track-{n}",
                name=_cyclic_name(TRACK_TITLES, i),
                artists=[Artist(name=ARTIST_NAMES[i % len(ARTIST_NAMES)])],
                album=Album(
                    id=f"fallback-album-{i % len(ALBUM_NAMES) + 1}",
                    name=ALBUM_NAMES[i % len(ALBUM_NAMES)],
                    images=artwork(i),
                ),
                # 2:55 .. 4:55 in 15s steps
                duration_ms=(175 + (i * 15) % 135) * 1000,
            )
        )
    return tracks


def generate_playlists(count: int, start: int = 1) -> List[Playlist]:
    playlists = []
    for n in range(start, start + max(0, int(count))):
        i = n - 1
        name, description = PLAYLISTS[i % len(PLAYLISTS)]
        lap = i // len(PLAYLISTS)
        playlists.append(
            Playlist(
                id=f"fallback-playlist-{n}",
                name=f"{name} {lap + 1}" if lap else name,
                description=description,
                images=artwork(i),
                tracks_total=20 + (i * 7) % 30,
                owner="Spotify",
            )
        )
    return playlists


def generate_categories(count: int, start: int = 1) -> List[Category]:
    return [
        Category(id=f"fallback-category-{n}", name=_cyclic_name(GENRES, n - 1), images=artwork(n - 1, size=274))
        for n in range(start, start + max(0, int(count)))
    ]


def matches_query(name: str, query: str) -> bool:
    """True when every whitespace-separated term of query occurs in name (case-insensitive)."""

    terms = str(query or "").casefold().split()
    if not terms:
        return False
    haystack = str(name or "").casefold()
    return all(term in haystack for term in terms)


def search_tracks(query: str, count: int) -> List[Track]:
    """Return exactly count synthetic tracks whose names match query."""

    count = max(0, int(count))
    query = str(query or "").strip()
    if not count or not query:
        return []

    pool = generate_tracks(max(count, len(TRACK_TITLES)))
    matches = [t for t in pool if matches_query(t.name, query)][:count]

    n = len(pool)
    while len(matches) < count:
        n += 1
        base = generate_tracks(1, start=n)[0]
        matches.append(
            Track(
                id=base.id,
                name=f"{query} ({base.name})",
                artists=base.artists,
                album=base.album,
                duration_ms=base.duration_ms,
            )
        )
    return matches
