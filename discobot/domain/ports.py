from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol

from .entities import Category, CollectionDetails, RecentItem, Release, Track


class MusicCatalog(Protocol):
    """Port defining the contract for the remote music catalog.

    Implementations map service-specific payloads into domain entities and raise
    RemoteServiceError (or a subclass) on any failure.
    """

    def list_followed_artists(self) -> List[str]:
        """Return the ids of all artists followed by the current user."""

    def list_releases(self, artist_id: str) -> List[Release]:
        """Return every release of the given artist, tagged with its source category."""

    def list_tracks(self, release_id: str) -> List[Track]:
        """Return the tracks of a release in track order."""

    def get_collection(self, collection_id: str) -> CollectionDetails:
        """Return the title and description of a playlist."""

    def set_collection_details(self, collection_id: str, title: Optional[str] = None,
                               description: Optional[str] = None) -> None:
        """Change title and/or description of a playlist."""

    def insert_tracks(self, collection_id: str, track_ids: List[str],
                      position: Optional[int] = None) -> None:
        """Insert up to the catalog's maximum batch size of tracks into a playlist."""

    def get_recent_items(self, collection_id: str, limit: int) -> List[RecentItem]:
        """Return the topmost items of a playlist with their added-at timestamps."""

    def get_currently_playing_item(self) -> Optional[str]:
        """Return the id of the track the user is currently playing, if any."""


class CacheStore(Protocol):
    """Port for the durable, append-only dedup cache."""

    def get_cached_artist_ids(self) -> List[str]:
        ...

    def get_cached_release_ids(self) -> List[str]:
        ...

    def get_cached_release_names(self) -> List[str]:
        ...

    def append_cached_artist_ids(self, artist_ids: Iterable[str]) -> None:
        ...

    def append_cached_release_ids(self, release_ids: Iterable[str]) -> None:
        ...

    def append_cached_release_names(self, names: Iterable[str]) -> None:
        ...


class ResultSink(Protocol):
    """Receives the added track count per category after a crawl."""

    def publish(self, counts: Dict[Category, int], crawl_id: Optional[str] = None) -> None:
        ...
