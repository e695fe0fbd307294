import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from discobot.application.artist_cache import ArtistCache
from discobot.application.crawler import CrawlState, DiscoveryCrawler
from discobot.application.discovery import DiscoveryService, PlaylistInserter
from discobot.application.dispatch import Dispatcher
from discobot.application.executor import BoundedExecutor
from discobot.application.notifier import INDICATOR_NEW, INDICATOR_OFF, NotifierService
from discobot.application.release_filter import ReleaseFilter
from discobot.domain.entities import (
    Category, CATEGORY_ORDER, CollectionDetails, CrawlStatus, Release, TargetStore, Track,
)
from discobot.domain.errors import ConfigurationError, NotFound
from discobot.infrastructure.storage import InMemoryCacheStore
from discobot.tests.contracts.fakes import FakeCatalog


NOW = datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)


def _release(release_id, title, category=Category.ALBUM, artists=("a1",), day=date(2024, 6, 9)):
    return Release(id=release_id, title=title, category=category, artist_ids=list(artists), release_date=day)


def _tracks(release_id, names):
    return [Track(id=f"{release_id}-{i}", name=n, release_id=release_id, duration_ms=200000)
            for i, n in enumerate(names)]


def _build(catalog, store, enabled, result_sink=None):
    stores = {c: TargetStore(c, f"pl-{c.value}" if c in enabled else None) for c in CATEGORY_ORDER}
    for category in enabled:
        catalog.collections[f"pl-{category.value}"] = CollectionDetails(
            id=f"pl-{category.value}", title=f"{category.display_name} {INDICATOR_OFF}"
        )
    executor = BoundedExecutor(max_workers=4)
    clock = lambda: NOW
    crawler = DiscoveryCrawler(
        catalog=catalog,
        artist_cache=ArtistCache(catalog, store, clock=clock),
        discovery=DiscoveryService(catalog, executor),
        release_filter=ReleaseFilter(store, clock=clock),
        dispatcher=Dispatcher(stores),
        inserter=PlaylistInserter(catalog),
        notifier=NotifierService(catalog, stores, executor, clock=clock),
        result_sink=result_sink,
        clock=clock,
    )
    return crawler, stores


class TestDiscoveryCrawler:
    """End-to-end tests of the crawl orchestrator against an in-memory catalog."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryCacheStore(artists=["a1"])
        self.catalog = FakeCatalog(followed=["a1"])

    def test_new_album_is_added_and_marked(self):
        """Two followed artists, only one with a new album of ten tracks: {Album: 10}, store MARKED, one release cached."""
        self.store = InMemoryCacheStore(artists=["a1", "a2"])
        self.catalog.followed = ["a1", "a2"]
        self.catalog.releases = {"a1": [_release("r1", "Fresh Album")], "a2": []}
        self.catalog.tracks = {"r1": _tracks("r1", [f"Song {i}" for i in range(10)])}
        crawler, stores = _build(self.catalog, self.store, {Category.ALBUM})

        result = crawler.try_crawl()

        assert result.status is CrawlStatus.COMPLETED
        assert result.counts == {Category.ALBUM: 10}
        assert stores[Category.ALBUM].last_marked_new_at == NOW
        assert self.catalog.get_collection("pl-album").title == f"Album {INDICATOR_NEW}"
        assert self.catalog.inserted["pl-album"] == [f"r1-{i}" for i in range(10)]
        assert self.store.get_cached_release_ids() == ["r1"]
        assert "list_releases:a2" in self.catalog.calls
        assert crawler.state is CrawlState.IDLE

    def test_live_album_is_remapped(self):
        """Eight of ten tracks contain "Live": the album goes to the live store."""
        names = [f"Song {i} - Live at Wembley" for i in range(8)] + ["Interview", "Outro"]
        self.catalog.releases = {"a1": [_release("r1", "Concert Live at Wembley")]}
        self.catalog.tracks = {"r1": _tracks("r1", names)}
        crawler, stores = _build(self.catalog, self.store, {Category.ALBUM, Category.LIVE})

        result = crawler.try_crawl()

        assert result.counts == {Category.LIVE: 10}
        assert "pl-album" not in self.catalog.inserted
        assert stores[Category.ALBUM].last_marked_new_at is None
        assert stores[Category.LIVE].last_marked_new_at == NOW
        assert self.store.get_cached_release_ids() == ["r1"]

    def test_release_without_tracks_is_nothing_new(self):
        self.catalog.releases = {"a1": [_release("r1", "Empty Album")]}
        self.catalog.tracks = {"r1": []}
        sink = Mock()
        crawler, stores = _build(self.catalog, self.store, {Category.ALBUM}, result_sink=sink)

        result = crawler.try_crawl()

        assert result.status is CrawlStatus.NOTHING_NEW
        assert stores[Category.ALBUM].last_marked_new_at is None
        assert self.catalog.get_collection("pl-album").title == f"Album {INDICATOR_OFF}"
        assert "pl-album" not in self.catalog.inserted
        sink.publish.assert_not_called()
        assert self.store.get_cached_release_ids() == ["r1"]

    def test_second_crawl_finds_nothing_new(self):
        self.catalog.releases = {"a1": [_release("r1", "Fresh Album")]}
        self.catalog.tracks = {"r1": _tracks("r1", ["One"])}
        crawler, _ = _build(self.catalog, self.store, {Category.ALBUM})

        crawler.try_crawl()
        result = crawler.try_crawl()

        assert result.status is CrawlStatus.NOTHING_NEW
        assert self.catalog.inserted["pl-album"] == ["r1-0"]

    def test_future_release_is_neither_added_nor_cached(self):
        self.catalog.releases = {"a1": [_release("r1", "Soon", day=date(2024, 6, 11))]}
        crawler, _ = _build(self.catalog, self.store, {Category.ALBUM})

        result = crawler.try_crawl()

        assert result.status is CrawlStatus.NOTHING_NEW
        assert self.store.get_cached_release_ids() == []

    def test_first_crawl_caches_back_catalog_without_dispatch(self):
        """Newly followed artists do not flood the playlists with their back catalog."""
        store = InMemoryCacheStore()
        self.catalog.releases = {"a1": [_release("r1", "Old Album", day=date(2019, 1, 1))]}
        self.catalog.tracks = {"r1": _tracks("r1", ["One"])}
        crawler, _ = _build(self.catalog, store, {Category.ALBUM})

        result = crawler.try_crawl()

        assert result.status is CrawlStatus.NOTHING_NEW
        assert store.get_cached_artist_ids() == ["a1"]
        assert store.get_cached_release_ids() == ["r1"]
        assert self.catalog.inserted == {}

    def test_release_cache_is_committed_when_insertion_fails(self):
        self.catalog.releases = {"a1": [_release("r1", "Fresh Album")]}
        self.catalog.tracks = {"r1": _tracks("r1", ["One"])}
        crawler, _ = _build(self.catalog, self.store, {Category.ALBUM})
        self.catalog.insert_tracks = Mock(side_effect=NotFound("playlist deleted"))

        with pytest.raises(NotFound):
            crawler.try_crawl()

        assert self.store.get_cached_release_ids() == ["r1"]
        assert crawler.is_ready()

    def test_crawl_while_running_is_unavailable(self):
        started = threading.Event()
        proceed = threading.Event()
        original = self.catalog.list_releases

        def blocking_list_releases(artist_id):
            started.set()
            proceed.wait(timeout=5)
            return original(artist_id)

        self.catalog.list_releases = blocking_list_releases
        crawler, _ = _build(self.catalog, self.store, {Category.ALBUM})
        results = []
        worker = threading.Thread(target=lambda: results.append(crawler.try_crawl()))
        worker.start()
        try:
            assert started.wait(timeout=5)
            assert crawler.state is CrawlState.RUNNING

            assert crawler.try_crawl().status is CrawlStatus.UNAVAILABLE
        finally:
            proceed.set()
            worker.join(timeout=5)

        assert results[0].status is CrawlStatus.NOTHING_NEW
        assert crawler.is_ready()

    def test_result_sink_receives_counts(self):
        self.catalog.releases = {"a1": [_release("r1", "Fresh Album")]}
        self.catalog.tracks = {"r1": _tracks("r1", ["One", "Two"])}
        sink = Mock()
        crawler, _ = _build(self.catalog, self.store, {Category.ALBUM}, result_sink=sink)

        crawler.try_crawl()

        counts = sink.publish.call_args[0][0]
        assert counts == {Category.ALBUM: 2}
        assert sink.publish.call_args[1]["crawl_id"].startswith("crawl_")

    def test_failing_result_sink_does_not_fail_crawl(self):
        self.catalog.releases = {"a1": [_release("r1", "Fresh Album")]}
        self.catalog.tracks = {"r1": _tracks("r1", ["One"])}
        sink = Mock()
        sink.publish.side_effect = RuntimeError("sink down")
        crawler, _ = _build(self.catalog, self.store, {Category.ALBUM}, result_sink=sink)

        result = crawler.try_crawl()

        assert result.status is CrawlStatus.COMPLETED

    def test_initialize_rejects_unknown_playlist(self):
        crawler, stores = _build(self.catalog, self.store, {Category.ALBUM})
        stores[Category.SINGLE].collection_id = "pl-missing"

        with pytest.raises(ConfigurationError):
            crawler.initialize()

    def test_initialize_restores_notifier_timestamps(self):
        from discobot.application.notifier import format_description

        crawler, stores = _build(self.catalog, self.store, {Category.ALBUM})
        self.catalog.collections["pl-album"] = CollectionDetails(
            id="pl-album", title="Album", description=format_description(NOW - timedelta(days=3))
        )

        crawler.initialize()

        assert stores[Category.ALBUM].last_marked_new_at == NOW - timedelta(days=3)

    def test_clear_obsolete_notifiers_delegates(self):
        crawler, stores = _build(self.catalog, self.store, {Category.ALBUM})
        self.catalog.collections["pl-album"] = CollectionDetails(id="pl-album", title=f"Album {INDICATOR_NEW}")

        assert crawler.clear_obsolete_notifiers() is True
        assert self.catalog.get_collection("pl-album").title == f"Album {INDICATOR_OFF}"
