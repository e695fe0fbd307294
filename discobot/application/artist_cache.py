import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from discobot.application.discovery import DiscoveryService
from discobot.application.release_filter import ReleaseFilter
from discobot.domain.entities import ArtistCacheSnapshot
from discobot.domain.errors import EmptyResultError
from discobot.domain.ports import CacheStore, MusicCatalog


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _remove_null_ids(ids: List[Optional[str]]) -> List[str]:
    return [i for i in ids if i and i.lower() != "null"]


class ArtistCache:
    """Caches the followed artists and refreshes them at most once per TTL.

    The followed-artist list rarely changes and a full refetch is expensive,
    so a non-empty cache is returned as-is. An empty cache is refilled from
    the catalog only once the TTL since the last refresh has elapsed.
    """

    def __init__(self,
                 catalog: MusicCatalog,
                 cache_store: CacheStore,
                 ttl: timedelta = timedelta(hours=24),
                 clock: Callable[[], datetime] = _utcnow):
        self.catalog = catalog
        self.cache_store = cache_store
        self.ttl = ttl
        self.clock = clock
        self.last_refreshed_at: Optional[datetime] = None

    def _is_expired(self) -> bool:
        if self.last_refreshed_at is None:
            return True
        return self.clock() - self.last_refreshed_at > self.ttl

    def get_followed_artists(self) -> ArtistCacheSnapshot:
        """Return the followed artists and those that are newly followed.

        Raises:
            EmptyResultError: The catalog reports zero followed artists
            RemoteServiceError: The followed artists could not be listed
        """
        cached = _remove_null_ids(self.cache_store.get_cached_artist_ids())
        if cached:
            return ArtistCacheSnapshot(all_artists=cached, new_artists=[])

        if not self._is_expired():
            logger.debug("Artist cache empty but refreshed recently, deferring refresh")
            return ArtistCacheSnapshot()

        followed = _remove_null_ids(self.catalog.list_followed_artists())
        if not followed:
            raise EmptyResultError("No followed artists found")

        self.cache_store.append_cached_artist_ids(followed)
        self.last_refreshed_at = self.clock()

        previously_cached = set(cached)
        new_artists = [a for a in followed if a not in previously_cached]
        logger.info(f"Refreshed artist cache: {len(followed)} followed artist(s)")
        return ArtistCacheSnapshot(all_artists=followed, new_artists=new_artists)

    def initialize_release_cache(self,
                                 snapshot: ArtistCacheSnapshot,
                                 discovery: DiscoveryService,
                                 release_filter: ReleaseFilter) -> int:
        """Cache the existing catalog of newly followed artists without dispatching it.

        Returns:
            Number of releases written to the cache
        """
        if not snapshot.new_artists:
            return 0

        logger.info(f"Initializing release cache for {len(snapshot.new_artists)} newly followed artist(s)")
        releases = discovery.get_all_releases_of_artists(snapshot.new_artists)
        to_initialize = release_filter.non_cached(releases)
        release_filter.cache_releases(to_initialize)
        return len(to_initialize)
