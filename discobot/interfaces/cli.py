import argparse
import json
import logging
import signal
import sys
import time
from typing import Optional

from discobot.application.crawler import DiscoveryCrawler
from discobot.crosscutting.config import ConfigManager
from discobot.crosscutting.logging import setup_logging
from discobot.crosscutting.reporting import compile_result_string
from discobot.domain.entities import CrawlStatus
from discobot.domain.errors import ConfigurationError, RemoteServiceError
from discobot.interfaces.factory import build_crawler


class CLI:
    """Command Line Interface for discobot."""

    def __init__(self, config: Optional[ConfigManager] = None,
                 crawler: Optional[DiscoveryCrawler] = None):
        """Initialize CLI.

        Args:
            config: Configuration; created from --config-dir when omitted
            crawler: Pre-built crawler; built from configuration when omitted
        """
        self.config = config
        self.crawler = crawler
        self.parser = self._create_parser()
        self._setup_signal_handlers()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='discobot',
            description='Discover new releases of followed artists and add them to playlists'
        )
        parser.add_argument(
            '--config-dir',
            help='Configuration directory (default: $DISCOBOT_CONFIG_DIR or ~/.discobot)'
        )
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='INFO',
            help='Set logging level'
        )
        parser.add_argument(
            '--log-file',
            help='Also write logs to this file'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        subparsers.add_parser('crawl', help='Run one crawl')
        subparsers.add_parser('clear-notifiers', help='Clear stale "new" markers')

        watch_parser = subparsers.add_parser('watch', help='Crawl and clear notifiers periodically')
        watch_parser.add_argument(
            '--interval-minutes',
            type=int,
            default=60,
            help='Minutes between crawls (default: 60)'
        )
        watch_parser.add_argument(
            '--max-runs',
            type=int,
            default=None,
            help='Stop after this many crawls'
        )

        subparsers.add_parser('config', help='Show configuration summary')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down gracefully...")
            self._cleanup_resources()
            sys.exit(130)  # Standard exit code for signal termination

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Clean up resources on exit."""
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _validate_arguments(self, args: argparse.Namespace) -> None:
        """Validate CLI arguments."""
        if getattr(args, 'interval_minutes', 1) < 1:
            raise ValueError("--interval-minutes must be at least 1")
        if getattr(args, 'max_runs', None) is not None and args.max_runs < 1:
            raise ValueError("--max-runs must be at least 1")

    def _get_config(self, args: argparse.Namespace) -> ConfigManager:
        if self.config is None:
            self.config = ConfigManager(args.config_dir)
        return self.config

    def _get_crawler(self, args: argparse.Namespace) -> DiscoveryCrawler:
        if self.crawler is None:
            self.crawler = build_crawler(self._get_config(args))
            self.crawler.initialize()
        return self.crawler

    def _crawl(self, args: argparse.Namespace) -> int:
        """Run one crawl and print its summary."""
        logger = logging.getLogger(__name__)
        crawler = self._get_crawler(args)

        result = crawler.try_crawl()
        if result.status is CrawlStatus.UNAVAILABLE:
            logger.warning("A crawl is already running")
            return 1
        if result.status is CrawlStatus.NOTHING_NEW:
            print("No new songs found")
            return 0

        print(compile_result_string(result.counts))
        return 0

    def _clear_notifiers(self, args: argparse.Namespace) -> int:
        """Clear stale notifiers once."""
        changed = self._get_crawler(args).clear_obsolete_notifiers()
        print("Notifiers cleared" if changed else "No notifiers to clear")
        return 0

    def _watch(self, args: argparse.Namespace) -> int:
        """Crawl, then clear notifiers, every interval until stopped."""
        logger = logging.getLogger(__name__)
        crawler = self._get_crawler(args)
        interval = args.interval_minutes * 60
        runs = 0

        while True:
            try:
                result = crawler.try_crawl()
                summary = compile_result_string(result.counts)
                logger.info(summary or f"Crawl finished: {result.status.value}")
            except (RemoteServiceError, ConfigurationError) as e:
                # Next interval retries
                logger.error(f"Crawl failed: {e}")
            crawler.clear_obsolete_notifiers()

            runs += 1
            if args.max_runs is not None and runs >= args.max_runs:
                break
            time.sleep(interval)
        return 0

    def _show_config(self, args: argparse.Namespace) -> int:
        """Print the configuration summary without secrets."""
        print(json.dumps(self._get_config(args).get_config_summary(), indent=2))
        return 0

    def run(self, argv=None) -> int:
        """Run the CLI and return the exit code."""
        self._start_time = time.time()

        try:
            args = self.parser.parse_args(argv)

            if not args.command:
                self.parser.print_help()
                return 1

            setup_logging(args.log_level, args.log_file, structured=True)
            self._validate_arguments(args)

            if args.command == 'crawl':
                return self._crawl(args)
            elif args.command == 'clear-notifiers':
                return self._clear_notifiers(args)
            elif args.command == 'watch':
                return self._watch(args)
            elif args.command == 'config':
                return self._show_config(args)
            else:
                self.parser.print_help()
                return 1

        except KeyboardInterrupt:
            logger = logging.getLogger(__name__)
            logger.warning("Operation cancelled by user")
            return 130
        except (ConfigurationError, RemoteServiceError, ValueError) as e:
            logger = logging.getLogger(__name__)
            logger.error(f"CLI error: {e}")
            return 1
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
