from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional


class Category(str, Enum):
    """Release category. EP, REMIX and LIVE are only ever assigned by remapping."""

    ALBUM = "album"
    SINGLE = "single"
    EP = "ep"
    REMIX = "remix"
    LIVE = "live"
    COMPILATION = "compilation"
    APPEARS_ON = "appears_on"

    @property
    def is_extended(self) -> bool:
        return self in EXTENDED_CATEGORIES

    @property
    def display_name(self) -> str:
        if self is Category.EP:
            return "EP"
        return self.value.replace("_", " ").title()

    @property
    def sort_index(self) -> int:
        return CATEGORY_ORDER.index(self)

    @classmethod
    def from_source(cls, album_group: str) -> "Category":
        """Map a source-reported album group ("album", "appears_on", ...) to a category."""
        category = cls((album_group or "").strip().lower())
        if category.is_extended:
            raise ValueError(f"'{album_group}' is not a source category")
        return category


CATEGORY_ORDER: List[Category] = [
    Category.ALBUM,
    Category.SINGLE,
    Category.EP,
    Category.REMIX,
    Category.LIVE,
    Category.COMPILATION,
    Category.APPEARS_ON,
]

EXTENDED_CATEGORIES = frozenset({Category.EP, Category.REMIX, Category.LIVE})

SOURCE_CATEGORIES: List[Category] = [c for c in CATEGORY_ORDER if c not in EXTENDED_CATEGORIES]


@dataclass(frozen=True)
class Release:
    """A release (album, single, ...) of one or more artists as listed by the catalog."""

    id: str
    title: str
    category: Category
    artist_ids: List[str] = None
    release_date: Optional[date] = None
    track_count: int = 0

    def __post_init__(self):
        if self.artist_ids is None:
            object.__setattr__(self, 'artist_ids', [])

    @property
    def primary_artist_id(self) -> Optional[str]:
        return self.artist_ids[0] if self.artist_ids else None


@dataclass(frozen=True)
class Track:
    """Track of a release."""

    id: str
    name: str = ""
    release_id: str = ""
    duration_ms: int = 0


@dataclass(frozen=True)
class AlbumTrackPair:
    """A release together with its tracks, the unit passed through classification and dispatch."""

    release: Release
    tracks: List[Track] = field(default_factory=list)

    def __post_init__(self):
        for track in self.tracks:
            if track.release_id != self.release.id:
                raise ValueError(
                    f"Track {track.id} belongs to release {track.release_id}, not {self.release.id}"
                )

    @property
    def sort_key(self):
        return (self.release.release_date or date.min, self.release.title, self.release.id)

    @property
    def track_ids(self) -> List[str]:
        return [t.id for t in self.tracks]


@dataclass(frozen=True)
class ArtistCacheSnapshot:
    """Followed artists of one cache refresh and the ones that were not cached before."""

    all_artists: List[str] = field(default_factory=list)
    new_artists: List[str] = field(default_factory=list)


@dataclass(eq=False)
class TargetStore:
    """Target playlist of one category. Equal and ordered by category."""

    category: Category
    collection_id: Optional[str] = None
    last_marked_new_at: Optional[datetime] = None

    @property
    def enabled(self) -> bool:
        return bool(self.collection_id)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TargetStore):
            return NotImplemented
        return self.category == other.category

    def __hash__(self) -> int:
        return hash(self.category)

    def __lt__(self, other: "TargetStore") -> bool:
        return self.category.sort_index < other.category.sort_index

    def __repr__(self) -> str:
        return f"TargetStore<{self.category.value}>"


@dataclass(frozen=True)
class CollectionDetails:
    """Title and description of a target playlist."""

    id: str
    title: str = ""
    description: str = ""


@dataclass(frozen=True)
class RecentItem:
    """An item of a playlist together with the time it was added."""

    item_id: Optional[str]
    added_at: Optional[datetime] = None


class CrawlStatus(str, Enum):
    COMPLETED = "completed"
    NOTHING_NEW = "nothing_new"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CrawlResult:
    """Outcome of one crawl attempt: added track counts per category."""

    status: CrawlStatus
    counts: Dict[Category, int] = field(default_factory=dict)

    @property
    def total_added(self) -> int:
        return sum(self.counts.values())

    @classmethod
    def unavailable(cls) -> "CrawlResult":
        return cls(status=CrawlStatus.UNAVAILABLE)

    @classmethod
    def nothing_new(cls) -> "CrawlResult":
        return cls(status=CrawlStatus.NOTHING_NEW)
