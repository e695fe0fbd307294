import logging
import time
from typing import Dict, List

from discobot.application.executor import BoundedExecutor
from discobot.domain.entities import AlbumTrackPair, Release, TargetStore
from discobot.domain.errors import RateLimited, TemporaryFailure
from discobot.domain.ports import MusicCatalog


logger = logging.getLogger(__name__)


class DiscoveryService:
    """Fetches releases and tracks from the catalog, one executor task per item."""

    def __init__(self, catalog: MusicCatalog, executor: BoundedExecutor):
        self.catalog = catalog
        self.executor = executor

    def get_all_releases_of_artists(self, artist_ids: List[str]) -> List[Release]:
        """Return every release of the given artists. Artists that fail to load contribute nothing."""
        tasks = [lambda artist_id=artist_id: self.catalog.list_releases(artist_id) for artist_id in artist_ids]
        releases = self.executor.execute_and_wait(tasks)
        logger.info(f"Fetched {len(releases)} release(s) of {len(artist_ids)} artist(s)")
        return releases

    def get_tracks_of_releases(self, releases: List[Release]) -> List[AlbumTrackPair]:
        """Pair each release with its tracks. Releases whose tracks fail to load are skipped."""

        def load(release: Release) -> List[AlbumTrackPair]:
            tracks = self.catalog.list_tracks(release.id)
            return [AlbumTrackPair(release=release, tracks=list(tracks))]

        tasks = [lambda release=release: load(release) for release in releases]
        pairs = self.executor.execute_and_wait(tasks)
        logger.info(f"Fetched tracks of {len(pairs)}/{len(releases)} release(s)")
        return pairs


class PlaylistInserter:
    """Inserts dispatched tracks into their target playlists in batches."""

    def __init__(self, catalog: MusicCatalog, batch_size: int = 100, max_retries: int = 3):
        """Initialize playlist inserter.

        Args:
            catalog: Remote music catalog
            batch_size: Maximum number of tracks per insert call
            max_retries: Maximum number of rate-limit waits per batch
        """
        self.catalog = catalog
        self.batch_size = batch_size
        self.max_retries = max_retries

    def split_into_batches(self, track_ids: List[str]) -> List[List[str]]:
        """Split track ids into batches of at most batch_size."""
        return [track_ids[i:i + self.batch_size] for i in range(0, len(track_ids), self.batch_size)]

    def insert_batch(self, collection_id: str, track_ids: List[str], batch_index: int) -> None:
        """Insert one batch on top of the playlist, waiting out rate limits.

        Raises:
            TemporaryFailure: If the batch is still rate limited after max_retries waits
            RemoteServiceError: Any other catalog failure
        """
        attempt = 0
        while True:
            try:
                self.catalog.insert_tracks(collection_id, track_ids, position=0)
                return
            except RateLimited as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise TemporaryFailure(
                        f"Batch {batch_index} still rate limited after {self.max_retries} retries"
                    ) from e
                logger.warning(f"Rate limited on batch {batch_index}, waiting {e.retry_after_ms}ms")
                time.sleep(e.retry_after_ms / 1000.0)

    def add_all_releases(self, tracks_by_store: Dict[TargetStore, List[AlbumTrackPair]]) -> Dict[TargetStore, int]:
        """Insert all releases into their stores, newest release on top.

        Returns:
            Number of inserted tracks per store
        """
        inserted: Dict[TargetStore, int] = {}
        for store in sorted(tracks_by_store):
            pairs = tracks_by_store[store]
            newest_first = sorted(pairs, key=lambda p: p.sort_key, reverse=True)
            track_ids = [track_id for pair in newest_first for track_id in pair.track_ids]
            if not track_ids:
                continue

            batches = self.split_into_batches(track_ids)
            # Each batch goes to position 0, so the last batch is inserted first
            for batch_index in reversed(range(len(batches))):
                self.insert_batch(store.collection_id, batches[batch_index], batch_index)

            inserted[store] = len(track_ids)
            logger.info(f"Added {len(track_ids)} track(s) of {len(pairs)} release(s) to {store.category.value}")
        return inserted
