import threading
from datetime import datetime
from typing import Dict, List, Optional

from discobot.domain.entities import CollectionDetails, RecentItem, Release, Track
from discobot.domain.errors import NotFound


class FakeCatalog:
    """In-memory MusicCatalog used across tests."""

    def __init__(self,
                 followed: Optional[List[str]] = None,
                 releases: Optional[Dict[str, List[Release]]] = None,
                 tracks: Optional[Dict[str, List[Track]]] = None,
                 collections: Optional[Dict[str, CollectionDetails]] = None) -> None:
        self.followed = list(followed or [])
        self.releases = dict(releases or {})
        self.tracks = dict(tracks or {})
        self.collections = dict(collections or {})
        self.inserted: Dict[str, List[str]] = {}
        self.recent: Dict[str, List[RecentItem]] = {}
        self.playing: Optional[str] = None
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def _record(self, call: str) -> None:
        with self._lock:
            self.calls.append(call)

    def list_followed_artists(self) -> List[str]:
        self._record("list_followed_artists")
        return list(self.followed)

    def list_releases(self, artist_id: str) -> List[Release]:
        self._record(f"list_releases:{artist_id}")
        return list(self.releases.get(artist_id, []))

    def list_tracks(self, release_id: str) -> List[Track]:
        self._record(f"list_tracks:{release_id}")
        return list(self.tracks.get(release_id, []))

    def get_collection(self, collection_id: str) -> CollectionDetails:
        self._record(f"get_collection:{collection_id}")
        if collection_id not in self.collections:
            raise NotFound(f"Playlist {collection_id} not found")
        return self.collections[collection_id]

    def set_collection_details(self, collection_id: str, title: Optional[str] = None,
                               description: Optional[str] = None) -> None:
        self._record(f"set_collection_details:{collection_id}")
        current = self.get_collection(collection_id)
        self.collections[collection_id] = CollectionDetails(
            id=collection_id,
            title=title if title is not None else current.title,
            description=description if description is not None else current.description,
        )

    def insert_tracks(self, collection_id: str, track_ids: List[str],
                      position: Optional[int] = None) -> None:
        self._record(f"insert_tracks:{collection_id}")
        with self._lock:
            existing = self.inserted.setdefault(collection_id, [])
            if position is None:
                existing.extend(track_ids)
            else:
                existing[position:position] = list(track_ids)

    def get_recent_items(self, collection_id: str, limit: int) -> List[RecentItem]:
        self._record(f"get_recent_items:{collection_id}")
        return list(self.recent.get(collection_id, []))[:limit]

    def get_currently_playing_item(self) -> Optional[str]:
        self._record("get_currently_playing_item")
        return self.playing

    def add_recent(self, collection_id: str, item_id: Optional[str], added_at: datetime) -> None:
        self.recent.setdefault(collection_id, []).append(RecentItem(item_id=item_id, added_at=added_at))
