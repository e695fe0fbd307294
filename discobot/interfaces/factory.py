import logging
from typing import Optional

from discobot.application.artist_cache import ArtistCache
from discobot.application.crawler import DiscoveryCrawler
from discobot.application.discovery import DiscoveryService, PlaylistInserter
from discobot.application.dispatch import Dispatcher
from discobot.application.executor import BoundedExecutor
from discobot.application.notifier import NotifierService
from discobot.application.release_filter import ReleaseFilter
from discobot.application.remapping import default_remappers
from discobot.crosscutting.config import ConfigManager
from discobot.crosscutting.reporting import CompositeResultSink, JsonReportSink, LoggingResultSink
from discobot.domain.errors import ConfigurationError
from discobot.domain.ports import CacheStore, MusicCatalog
from discobot.infrastructure.providers.spotify import SpotifyCatalog
from discobot.infrastructure.storage import JsonCacheStore


logger = logging.getLogger(__name__)


def create_spotify_catalog(config: ConfigManager) -> SpotifyCatalog:
    """Create the Spotify catalog from configured client credentials and tokens.

    Raises:
        ConfigurationError: Credentials or tokens are missing
    """
    client_config = config.get_spotify_client_config()
    tokens = config.get_spotify_tokens()
    if not tokens or not tokens.get('access_token'):
        raise ConfigurationError(
            "Spotify tokens not found: set SPOTIFY_ACCESS_TOKEN and SPOTIFY_REFRESH_TOKEN "
            f"or add them to {config.tokens_file}"
        )
    return SpotifyCatalog(
        access_token=tokens['access_token'],
        refresh_token=tokens.get('refresh_token'),
        client_id=client_config['client_id'],
        client_secret=client_config['client_secret'],
        redirect_uri=client_config['redirect_uri'],
        market=config.get_market(),
        on_tokens_refreshed=config.save_spotify_tokens,
    )


def build_crawler(config: ConfigManager,
                  catalog: Optional[MusicCatalog] = None,
                  cache_store: Optional[CacheStore] = None) -> DiscoveryCrawler:
    """Wire a crawler from configuration. Catalog and cache store may be injected."""
    policy = config.load_policy()
    stores = config.load_target_stores()
    catalog = catalog or create_spotify_catalog(config)
    cache_store = cache_store or JsonCacheStore(str(config.cache_file))
    executor = BoundedExecutor(max_workers=policy.max_workers)

    crawler = DiscoveryCrawler(
        catalog=catalog,
        artist_cache=ArtistCache(catalog, cache_store, ttl=policy.artist_cache_ttl),
        discovery=DiscoveryService(catalog, executor),
        release_filter=ReleaseFilter(cache_store, lookback_days=policy.lookback_days),
        dispatcher=Dispatcher(stores, remappers=default_remappers(policy), blacklist=config.load_blacklist()),
        inserter=PlaylistInserter(catalog, batch_size=policy.insert_batch_size),
        notifier=NotifierService(catalog, stores, executor,
                                 timeout=policy.notifier_timeout,
                                 recent_items_limit=policy.recent_items_limit),
        result_sink=CompositeResultSink(LoggingResultSink(), JsonReportSink(str(config.reports_dir))),
    )
    logger.debug(f"Crawler built with {policy.max_workers} workers, cache at {config.cache_file}")
    return crawler
