import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from discobot.application.artist_cache import ArtistCache
from discobot.application.discovery import DiscoveryService, PlaylistInserter
from discobot.application.dispatch import Dispatcher, TracksByStore, collect_addition_results
from discobot.application.notifier import NotifierService
from discobot.application.release_filter import ReleaseFilter
from discobot.application.remapping import categorize, intelligent_appears_on
from discobot.crosscutting.logging import CorrelationContext, log_crawl_complete, log_crawl_start, log_error
from discobot.domain.entities import Category, CrawlResult, CrawlStatus, Release
from discobot.domain.errors import ConfigurationError, RemoteServiceError
from discobot.domain.outcome import Outcome
from discobot.domain.ports import MusicCatalog, ResultSink


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class CrawlContext:
    """Per-crawl state. Created when a crawl starts and discarded afterwards."""

    crawl_id: str
    started_at: datetime
    followed_artists: List[str] = field(default_factory=list)
    releases_to_cache: List[Release] = field(default_factory=list)


class DiscoveryCrawler:
    """Runs the fail-fast discovery pipeline, at most one crawl at a time.

    Phases:
        0. followed artists (cached, refreshed at most once per TTL)
        1. new releases of those artists, deduplicated against the cache
        2. tracks of the new releases, categorized, remapped, mapped to stores
        3. insertion into the playlists, notifiers, result reporting
        Post: every release seen in phase 1 is cached, whatever the outcome
    """

    def __init__(self,
                 catalog: MusicCatalog,
                 artist_cache: ArtistCache,
                 discovery: DiscoveryService,
                 release_filter: ReleaseFilter,
                 dispatcher: Dispatcher,
                 inserter: PlaylistInserter,
                 notifier: NotifierService,
                 result_sink: Optional[ResultSink] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.catalog = catalog
        self.artist_cache = artist_cache
        self.discovery = discovery
        self.release_filter = release_filter
        self.dispatcher = dispatcher
        self.inserter = inserter
        self.notifier = notifier
        self.result_sink = result_sink
        self.clock = clock

        self._state = CrawlState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> CrawlState:
        return self._state

    def is_ready(self) -> bool:
        """True if no crawl is currently running."""
        return self._state is CrawlState.IDLE

    def _try_acquire(self) -> bool:
        with self._state_lock:
            if self._state is CrawlState.RUNNING:
                return False
            self._state = CrawlState.RUNNING
            return True

    def _release(self) -> None:
        with self._state_lock:
            self._state = CrawlState.IDLE

    def initialize(self) -> None:
        """Verify the configured target playlists and restore notifier timestamps.

        Raises:
            ConfigurationError: A configured playlist id does not resolve
        """
        for store in self.notifier.enabled_stores():
            try:
                self.catalog.get_collection(store.collection_id)
            except RemoteServiceError as e:
                raise ConfigurationError(
                    f"Playlist ID for '{store.category.value}' is invalid: {store.collection_id}"
                ) from e
        disabled = [s.category.value for s in sorted(self.dispatcher.stores.values()) if not s.enabled]
        if disabled:
            logger.warning(f"Disabled categories (no playlist configured): {disabled}")
        self.notifier.init_last_updated_from_descriptions()

    def try_crawl(self) -> CrawlResult:
        """Run a crawl unless one is already running.

        Returns:
            CrawlResult; status UNAVAILABLE if another crawl holds the lock

        Raises:
            RemoteServiceError: The catalog failed outside of a concurrent batch
            ConfigurationError: Configuration is invalid (e.g. no followed artists)
        """
        if not self._try_acquire():
            logger.info("Crawl requested while another crawl is running")
            return CrawlResult.unavailable()
        try:
            return self.crawl()
        finally:
            self._release()

    def clear_obsolete_notifiers(self) -> bool:
        """Clear stale markers. Does not need the crawl lock."""
        return self.notifier.clear_obsolete_notifiers()

    def crawl(self) -> CrawlResult:
        """Run one crawl. Callers must hold the crawl lock (see try_crawl)."""
        context = CrawlContext(crawl_id=f"crawl_{uuid.uuid4().hex[:12]}", started_at=self.clock())
        with CorrelationContext(crawl_id=context.crawl_id):
            log_crawl_start(logger, context.crawl_id)
            try:
                result = self._crawl_script(context)
            except (RemoteServiceError, ConfigurationError) as e:
                log_error(logger, "Crawl failed", e, crawl_id=context.crawl_id)
                raise
            finally:
                self._update_release_cache(context)
            log_crawl_complete(logger, context.crawl_id, result.status.value, result.total_added,
                               duration_ms=int((self.clock() - context.started_at).total_seconds() * 1000))
            return result

    def _crawl_script(self, context: CrawlContext) -> CrawlResult:
        context.followed_artists = self._get_followed_artists()
        if not context.followed_artists:
            return CrawlResult.nothing_new()

        new_releases = self._get_new_releases(context)
        if not new_releases:
            return CrawlResult.nothing_new()

        tracks_by_store = self._get_new_tracks_by_store(context, new_releases)
        if not tracks_by_store:
            return CrawlResult.nothing_new()

        counts = self._add_releases_and_collect_results(context, tracks_by_store)
        return CrawlResult(status=CrawlStatus.COMPLETED, counts=counts)

    def _get_followed_artists(self) -> List[str]:
        """Phase 0: followed artists; the back catalog of newly followed ones is cached, not dispatched."""
        with CorrelationContext(stage="artists"):
            snapshot = self.artist_cache.get_followed_artists()
            self.artist_cache.initialize_release_cache(snapshot, self.discovery, self.release_filter)
            return snapshot.all_artists

    def _get_new_releases(self, context: CrawlContext) -> List[Release]:
        """Phase 1: releases of the followed artists that were never handled before."""
        with CorrelationContext(stage="releases"):
            all_releases = self.discovery.get_all_releases_of_artists(context.followed_artists)
            non_cached = self.release_filter.non_cached(all_releases)
            released = self.release_filter.non_future(non_cached)
            context.releases_to_cache = list(released)
            unique = self.release_filter.drop_simultaneous_duplicates(released)
            new_releases = self.release_filter.within_lookback(unique)
            logger.info(f"{len(new_releases)} new release(s) out of {len(all_releases)}")
            return new_releases

    def _get_new_tracks_by_store(self, context: CrawlContext, releases: List[Release]) -> TracksByStore:
        """Phase 2: tracks of the new releases mapped to their target stores."""
        with CorrelationContext(stage="tracks"):
            pairs = self.discovery.get_tracks_of_releases(releases)
            categorized = categorize(pairs)
            categorized = intelligent_appears_on(categorized, context.followed_artists)
            if not any(categorized.values()):
                return {}
            return self.dispatcher.dispatch(categorized)

    def _add_releases_and_collect_results(self, context: CrawlContext,
                                          tracks_by_store: TracksByStore) -> Dict[Category, int]:
        """Phase 3: insert, mark, report."""
        with CorrelationContext(stage="insert"):
            self.inserter.add_all_releases(tracks_by_store)
            self.notifier.show_notifiers(tracks_by_store)
            counts = collect_addition_results(tracks_by_store)
            self._publish_results(counts, context.crawl_id)
            return counts

    def _publish_results(self, counts: Dict[Category, int], crawl_id: str) -> Outcome:
        if self.result_sink is None:
            return Outcome.success()
        try:
            self.result_sink.publish(counts, crawl_id=crawl_id)
        except Exception as e:
            logger.warning(f"Result sink failed: {e}")
            return Outcome.recoverable(str(e))
        return Outcome.success()

    def _update_release_cache(self, context: CrawlContext) -> Outcome:
        """Post: cache every release seen in phase 1."""
        with CorrelationContext(stage="cache"):
            outcome = self.release_filter.cache_releases(context.releases_to_cache)
            context.releases_to_cache = []
            return outcome
