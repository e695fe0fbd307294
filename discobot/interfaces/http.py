import os
import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify

from discobot.application.crawler import DiscoveryCrawler
from discobot.crosscutting.config import ConfigManager
from discobot.crosscutting.reporting import compile_result_string
from discobot.domain.entities import CrawlStatus
from discobot.domain.errors import ConfigurationError, RemoteServiceError
from discobot.interfaces.factory import build_crawler


class HTTPServer:
    """HTTP trigger for crawls and notifier clearing, plus health checks."""

    def __init__(self, crawler: Optional[DiscoveryCrawler] = None,
                 host: str = 'localhost', port: int = 3000, debug: bool = False):
        """Initialize HTTP server.

        Args:
            crawler: Crawler to trigger; built from the default configuration on first use when omitted
            host: Bind address
            port: Bind port
            debug: Run Flask in debug mode
        """
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)
        self._crawler = crawler
        self._crawler_lock = threading.Lock()

        # Version info
        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    @property
    def crawler(self) -> DiscoveryCrawler:
        if self._crawler is None:
            with self._crawler_lock:
                if self._crawler is None:
                    crawler = build_crawler(ConfigManager())
                    crawler.initialize()
                    self._crawler = crawler
        return self._crawler

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            ready = self._crawler.is_ready() if self._crawler is not None else True
            return jsonify({
                'status': 'healthy',
                'crawling': not ready,
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now(timezone.utc).isoformat()
            }), 200

        @self.app.route('/crawl', methods=['POST'])
        def crawl():
            """Run one crawl. 423 while another crawl is running."""
            try:
                result = self.crawler.try_crawl()
            except RemoteServiceError as e:
                self.logger.error(f"Crawl failed: {e}")
                return jsonify({'error': 'Remote service failure', 'details': str(e)}), 502
            except ConfigurationError as e:
                self.logger.error(f"Crawl failed: {e}")
                return jsonify({'error': 'Configuration error', 'details': str(e)}), 500

            if result.status is CrawlStatus.UNAVAILABLE:
                return jsonify({'error': 'Crawl already in progress'}), 423
            if result.status is CrawlStatus.NOTHING_NEW:
                return '', 204

            return jsonify({
                'status': result.status.value,
                'counts': {c.value: n for c, n in result.counts.items()},
                'totalAdded': result.total_added,
                'summary': compile_result_string(result.counts),
            }), 200

        @self.app.route('/clearnotifiers', methods=['POST'])
        def clear_notifiers():
            """Clear stale notifiers."""
            try:
                changed = self.crawler.clear_obsolete_notifiers()
            except ConfigurationError as e:
                self.logger.error(f"Clearing notifiers failed: {e}")
                return jsonify({'error': 'Configuration error', 'details': str(e)}), 500
            return jsonify({'changed': changed}), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'discobot HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'crawl': '/crawl',
                    'clear_notifiers': '/clearnotifiers'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting discobot HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug,
            use_reloader=False,
            threaded=True
        )


def create_app(crawler: Optional[DiscoveryCrawler] = None) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(crawler=crawler)
    return server.app


if __name__ == '__main__':
    server = HTTPServer()
    server.run()
