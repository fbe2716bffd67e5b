"""
Demo tool catalogue: a small in-memory music library.

These are the tools the server is capable of exposing. Which of them a given
request can actually see and call is decided by the gateway, not here.

Catalogue order is registration order (MUSIC_TOOLS below); tools/list keeps
that order after filtering.
"""

import uuid
from dataclasses import asdict, dataclass

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError


@dataclass
class Artist:
    id: str
    name: str
    bio: str = ""


class ArtistStore:
    """Process-local artist storage. Not shared between server processes."""

    def __init__(self):
        self._artists: dict[str, Artist] = {}

    def all(self) -> list[Artist]:
        return list(self._artists.values())

    def get(self, artist_id: str) -> Artist:
        try:
            return self._artists[artist_id]
        except KeyError:
            raise ToolError(f"Artist not found: {artist_id}")

    def add(self, name: str, bio: str = "") -> Artist:
        artist = Artist(id=str(uuid.uuid4()), name=name, bio=bio)
        self._artists[artist.id] = artist
        return artist

    def remove(self, artist_id: str) -> Artist:
        artist = self.get(artist_id)
        del self._artists[artist_id]
        return artist

    def reset(self) -> None:
        self._artists.clear()


store = ArtistStore()


def list_artists() -> list[dict]:
    """List every artist in the library."""
    return [asdict(artist) for artist in store.all()]


def get_artist(artist_id: str) -> dict:
    """Fetch one artist by ID."""
    return asdict(store.get(artist_id))


def create_artist(name: str, bio: str = "") -> dict:
    """Create a new artist."""
    if not name.strip():
        raise ToolError("Artist name must not be empty")
    return asdict(store.add(name=name, bio=bio))


def update_artist(artist_id: str, name: str | None = None, bio: str | None = None) -> dict:
    """Update an artist's name and/or bio."""
    artist = store.get(artist_id)
    if name is not None:
        if not name.strip():
            raise ToolError("Artist name must not be empty")
        artist.name = name
    if bio is not None:
        artist.bio = bio
    return asdict(artist)


def delete_artist(artist_id: str) -> dict:
    """Delete an artist and return the removed record."""
    return asdict(store.remove(artist_id))


def search_artists(query: str) -> list[dict]:
    """Case-insensitive search over artist names."""
    needle = query.lower()
    return [asdict(artist) for artist in store.all() if needle in artist.name.lower()]


MUSIC_TOOLS = (
    list_artists,
    get_artist,
    create_artist,
    update_artist,
    delete_artist,
    search_artists,
)

TOOL_NAMES: tuple[str, ...] = tuple(fn.__name__ for fn in MUSIC_TOOLS)


def register_tools(mcp: FastMCP) -> None:
    """Register the music tools on a server, in catalogue order."""
    for fn in MUSIC_TOOLS:
        mcp.tool(fn)
