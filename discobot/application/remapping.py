from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Protocol

from discobot.domain.entities import AlbumTrackPair, Category, SOURCE_CATEGORIES, Track
from discobot.domain.policy import DiscoveryPolicy


logger = logging.getLogger(__name__)

_REMIX_MATCHER = re.compile(r"\b(RMX|REMIX|REMIXES)\b", re.IGNORECASE)
_LIVE_MATCHER = re.compile(r"\bLIVE\b", re.IGNORECASE)
_EP_MATCHER = re.compile(r"\bE\.?P\b\.?", re.IGNORECASE)


def _matching_ratio(pattern: re.Pattern, tracks: List[Track]) -> float:
    if not tracks:
        return 0.0
    matching = sum(1 for t in tracks if pattern.search(t.name or ""))
    return matching / len(tracks)


class Remapper(Protocol):
    """Strategy that may reassign a release to a finer-grained category."""

    category: Category

    def applies_to_category(self, category: Category) -> bool:
        """Whether releases currently in the given category are eligible."""

    def qualifies(self, title: str, tracks: List[Track]) -> bool:
        """Deterministic heuristic on the release title and its track names."""


class RemixRemapper:
    """Remix releases: by title plus some tracks, or by a large share of tracks alone."""

    category = Category.REMIX

    def __init__(self, track_ratio: float = 0.65, track_ratio_title_match: float = 0.2):
        self.track_ratio = track_ratio
        self.track_ratio_title_match = track_ratio_title_match

    def applies_to_category(self, category: Category) -> bool:
        return category in SOURCE_CATEGORIES

    def qualifies(self, title: str, tracks: List[Track]) -> bool:
        ratio = _matching_ratio(_REMIX_MATCHER, tracks)
        if _REMIX_MATCHER.search(title or ""):
            return ratio > self.track_ratio_title_match
        return ratio > self.track_ratio


class LiveRemapper:
    """Live recordings, detected the same way as remixes with the word LIVE."""

    category = Category.LIVE

    _ALLOWED = frozenset({Category.ALBUM, Category.SINGLE, Category.COMPILATION})

    def __init__(self, track_ratio: float = 0.65, track_ratio_title_match: float = 0.5):
        self.track_ratio = track_ratio
        self.track_ratio_title_match = track_ratio_title_match

    def applies_to_category(self, category: Category) -> bool:
        return category in self._ALLOWED

    def qualifies(self, title: str, tracks: List[Track]) -> bool:
        ratio = _matching_ratio(_LIVE_MATCHER, tracks)
        if _LIVE_MATCHER.search(title or ""):
            return ratio > self.track_ratio_title_match
        return ratio > self.track_ratio


class EpRemapper:
    """EPs, which the source reports as singles."""

    category = Category.EP

    def __init__(self, min_tracks: int = 5, min_tracks_long: int = 3, min_duration_ms: int = 20 * 60 * 1000):
        self.min_tracks = min_tracks
        self.min_tracks_long = min_tracks_long
        self.min_duration_ms = min_duration_ms

    def applies_to_category(self, category: Category) -> bool:
        return category is Category.SINGLE

    def qualifies(self, title: str, tracks: List[Track]) -> bool:
        if _EP_MATCHER.search(title or ""):
            return True
        if len(tracks) >= self.min_tracks:
            return True
        total_duration_ms = sum(t.duration_ms or 0 for t in tracks)
        return len(tracks) >= self.min_tracks_long and total_duration_ms >= self.min_duration_ms


def default_remappers(policy: Optional[DiscoveryPolicy] = None) -> List[Remapper]:
    """Remappers in priority order (EP, Remix, Live)."""
    policy = policy or DiscoveryPolicy()
    return [
        EpRemapper(
            min_tracks=policy.ep_min_tracks,
            min_tracks_long=policy.ep_min_tracks_long,
            min_duration_ms=int(policy.ep_min_duration.total_seconds() * 1000),
        ),
        RemixRemapper(policy.remix_track_ratio, policy.remix_track_ratio_title_match),
        LiveRemapper(policy.live_track_ratio, policy.live_track_ratio_title_match),
    ]


def find_remapped_category(pair: AlbumTrackPair,
                           current: Category,
                           remappers: Iterable[Remapper]) -> Optional[Category]:
    """Return the category of the first qualifying remapper, or None. Extended categories are final."""
    if current.is_extended:
        return None
    for remapper in remappers:
        if remapper.applies_to_category(current) and remapper.qualifies(pair.release.title, pair.tracks):
            return remapper.category
    return None


def categorize(pairs: Iterable[AlbumTrackPair]) -> Dict[Category, List[AlbumTrackPair]]:
    """Group pairs by their source-reported category. Every source category is present."""
    categorized: Dict[Category, List[AlbumTrackPair]] = {c: [] for c in SOURCE_CATEGORIES}
    for pair in pairs:
        categorized.setdefault(pair.release.category, []).append(pair)
    return categorized


def intelligent_appears_on(categorized: Dict[Category, List[AlbumTrackPair]],
                           followed_artist_ids: Iterable[str]) -> Dict[Category, List[AlbumTrackPair]]:
    """Drop appears-on releases whose primary artist is followed as well.

    Those releases already reach the user through that artist's own catalog.
    """
    followed = set(followed_artist_ids)
    result = dict(categorized)
    appears_on = result.get(Category.APPEARS_ON)
    if appears_on:
        result[Category.APPEARS_ON] = [
            p for p in appears_on if p.release.primary_artist_id not in followed
        ]
    return result
