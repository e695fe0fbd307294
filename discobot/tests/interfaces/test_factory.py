import json
import os
import shutil
import tempfile
from datetime import timedelta
from unittest.mock import patch

import pytest

from discobot.application.crawler import DiscoveryCrawler
from discobot.crosscutting.config import ConfigManager
from discobot.domain.entities import Category, CollectionDetails
from discobot.domain.errors import ConfigurationError
from discobot.infrastructure.providers.spotify import SpotifyCatalog
from discobot.infrastructure.storage import InMemoryCacheStore, JsonCacheStore
from discobot.interfaces.factory import build_crawler, create_spotify_catalog
from discobot.tests.contracts.fakes import FakeCatalog


class TestFactory:
    """Tests for crawler wiring."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = ConfigManager(self.temp_dir)
        with open(os.path.join(self.temp_dir, 'playlists.json'), 'w') as f:
            json.dump({'album': 'pl-album'}, f)
        with open(os.path.join(self.temp_dir, 'blacklist.json'), 'w') as f:
            json.dump({'a9': ['appears_on']}, f)

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_build_crawler_uses_configuration(self):
        catalog = FakeCatalog(collections={'pl-album': CollectionDetails(id='pl-album', title='Albums')})
        with patch.dict(os.environ, {'DISCOBOT_MAX_WORKERS': '3', 'DISCOBOT_ARTIST_CACHE_HOURS': '6'}):
            crawler = build_crawler(self.config, catalog=catalog, cache_store=InMemoryCacheStore())

        assert isinstance(crawler, DiscoveryCrawler)
        assert crawler.discovery.executor.max_workers == 3
        assert crawler.artist_cache.ttl == timedelta(hours=6)
        assert crawler.dispatcher.stores[Category.ALBUM].collection_id == 'pl-album'
        assert crawler.dispatcher.blacklist == {'a9': {Category.APPEARS_ON}}
        assert crawler.notifier.stores is crawler.dispatcher.stores
        crawler.initialize()

    def test_build_crawler_defaults_to_json_cache(self):
        crawler = build_crawler(self.config, catalog=FakeCatalog())

        assert isinstance(crawler.release_filter.cache_store, JsonCacheStore)
        assert crawler.release_filter.cache_store.path == str(self.config.cache_file)

    def test_spotify_catalog_requires_tokens(self):
        with patch.dict(os.environ, {'SPOTIFY_CLIENT_ID': 'client', 'SPOTIFY_CLIENT_SECRET': 'secret'}):
            with pytest.raises(ConfigurationError, match='tokens'):
                create_spotify_catalog(self.config)

    @patch('discobot.infrastructure.providers.spotify.spotipy.Spotify')
    def test_spotify_catalog_from_configuration(self, mock_spotify_cls):
        self.config.save_spotify_tokens('access', 'refresh')
        env = {'SPOTIFY_CLIENT_ID': 'client', 'SPOTIFY_CLIENT_SECRET': 'secret', 'DISCOBOT_MARKET': 'SE'}
        with patch.dict(os.environ, env):
            catalog = create_spotify_catalog(self.config)

        assert isinstance(catalog, SpotifyCatalog)
        assert catalog.market == 'SE'
        assert catalog.refresh_token == 'refresh'
        catalog.on_tokens_refreshed('new_access', 'new_refresh')
        assert self.config.get_spotify_tokens()['access_token'] == 'new_access'
