from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


@dataclass(frozen=True)
class DiscoveryPolicy:
    """Tunable thresholds and windows of the discovery pipeline."""

    artist_cache_ttl: timedelta = timedelta(hours=24)
    notifier_timeout: timedelta = timedelta(days=31)
    recent_items_limit: int = 50
    max_workers: int = 8
    insert_batch_size: int = 100
    lookback_days: Optional[int] = None

    # Remix: ratio of matching track names, with and without a match in the release title
    remix_track_ratio: float = 0.65
    remix_track_ratio_title_match: float = 0.2

    live_track_ratio: float = 0.65
    live_track_ratio_title_match: float = 0.5

    ep_min_tracks: int = 5
    ep_min_tracks_long: int = 3
    ep_min_duration: timedelta = timedelta(minutes=20)
