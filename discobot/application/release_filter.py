import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from discobot.domain.entities import Category, Release
from discobot.domain.errors import CacheCommitError
from discobot.domain.normalization import build_release_signature
from discobot.domain.outcome import Outcome
from discobot.domain.ports import CacheStore


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReleaseFilter:
    """Set-difference filters of candidate releases against the durable dedup cache."""

    def __init__(self,
                 cache_store: CacheStore,
                 clock: Callable[[], datetime] = _utcnow,
                 lookback_days: Optional[int] = None):
        """Initialize release filter.

        Args:
            cache_store: Durable cache of already handled release ids and name signatures
            clock: Returns the current time
            lookback_days: Drop releases older than this many days (None disables the filter)
        """
        self.cache_store = cache_store
        self.clock = clock
        self.lookback_days = lookback_days

    def _today(self) -> date:
        return self.clock().date()

    def non_cached(self, releases: List[Release]) -> List[Release]:
        """Drop releases whose id is already cached.

        A release listed by several followed artists shows up once per artist;
        those duplicates are collapsed, preferring a category other than
        appears-on.
        """
        cached_ids = set(self.cache_store.get_cached_release_ids())
        unique: Dict[str, Release] = {}
        for release in releases:
            if release.id in cached_ids:
                continue
            existing = unique.get(release.id)
            if existing is None:
                unique[release.id] = release
            elif existing.category is Category.APPEARS_ON and release.category is not Category.APPEARS_ON:
                unique[release.id] = release
        return list(unique.values())

    def non_future(self, releases: List[Release]) -> List[Release]:
        """Drop releases dated strictly after today. Releases dated today are kept."""
        today = self._today()
        return [r for r in releases if r.release_date is None or r.release_date <= today]

    def drop_simultaneous_duplicates(self, releases: List[Release]) -> List[Release]:
        """Keep only the earliest release per name signature.

        Catches identical releases issued more than once (e.g. regional
        editions) and releases whose signature was cached by an earlier crawl.
        """
        cached_names = set(self.cache_store.get_cached_release_names())
        earliest: Dict[str, Release] = {}
        for release in releases:
            signature = build_release_signature(release)
            if signature in cached_names:
                continue
            current = earliest.get(signature)
            if current is None or _release_day(release) < _release_day(current):
                earliest[signature] = release

        kept_ids = {r.id for r in earliest.values()}
        dropped = len(releases) - len(kept_ids)
        if dropped:
            logger.debug(f"Dropped {dropped} duplicated release(s) by name signature")
        return [r for r in releases if r.id in kept_ids]

    def within_lookback(self, releases: List[Release]) -> List[Release]:
        """Drop releases older than the configured lookback window."""
        if self.lookback_days is None:
            return list(releases)
        oldest = self._today() - timedelta(days=self.lookback_days)
        return [r for r in releases if r.release_date is None or r.release_date >= oldest]

    def cache_releases(self, releases: List[Release]) -> Outcome:
        """Append release ids and name signatures to the durable cache.

        Failures are logged and reported as a recoverable outcome; already
        dispatched insertions are never rolled back.
        """
        if not releases:
            return Outcome.success()
        try:
            self.cache_store.append_cached_release_ids([r.id for r in releases])
            self.cache_store.append_cached_release_names(
                sorted({build_release_signature(r) for r in releases})
            )
        except Exception as e:
            error = CacheCommitError(f"Failed to cache {len(releases)} release(s): {e}")
            logger.error(str(error), exc_info=True)
            return Outcome.recoverable(str(error))

        logger.debug(f"Cached {len(releases)} release(s)")
        return Outcome.success()


def _release_day(release: Release) -> date:
    return release.release_date or date.max
