import os
import json
from datetime import timedelta
from typing import Dict, Any, List, Optional
from pathlib import Path

from dotenv import dotenv_values

from discobot.domain.entities import Category, CATEGORY_ORDER, TargetStore
from discobot.domain.errors import ConfigurationError
from discobot.domain.policy import DiscoveryPolicy


DEFAULT_REDIRECT_URI = 'http://localhost:8080/callback'


class ConfigManager:
    """Loads secrets, target playlists, blacklists and policy overrides from the config directory."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize config manager."""
        config_dir = config_dir or os.getenv('DISCOBOT_CONFIG_DIR')
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.discobot'
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.tokens_file = self.config_dir / 'tokens.json'
        self.env_file = self.config_dir / '.env'
        self.playlists_file = self.config_dir / 'playlists.json'
        self.blacklist_file = self.config_dir / 'blacklist.json'
        self.cache_file = self.config_dir / 'cache.json'
        self.reports_dir = self.config_dir / 'reports'

    def get_spotify_scopes(self) -> list:
        """Get minimal required Spotify scopes."""
        return [
            'user-follow-read',             # List followed artists
            'playlist-read-private',        # Read target playlists
            'playlist-modify-public',       # Add tracks, rename public playlists
            'playlist-modify-private',      # Add tracks, rename private playlists
            'user-read-currently-playing',  # Clear notifiers while listening
        ]

    def _load_json(self, path: Path) -> Any:
        if not path.exists():
            return {}
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigurationError(f"Failed to load {path}: {e}")

    def load_tokens(self) -> Dict[str, Any]:
        """Load tokens from tokens.json file."""
        return self._load_json(self.tokens_file)

    def save_tokens(self, tokens: Dict[str, Any]) -> None:
        """Merge tokens into tokens.json file."""
        try:
            existing_tokens = self.load_tokens()
            existing_tokens.update(tokens)
            with open(self.tokens_file, 'w') as f:
                json.dump(existing_tokens, f, indent=2, ensure_ascii=False)
        except (IOError, TypeError) as e:
            raise ConfigurationError(f"Failed to save tokens to {self.tokens_file}: {e}")

    def get_spotify_tokens(self) -> Optional[Dict[str, str]]:
        """Get Spotify tokens from the environment, falling back to tokens.json."""
        env_vars = self.load_env_vars()
        access_token = env_vars.get('SPOTIFY_ACCESS_TOKEN')
        refresh_token = env_vars.get('SPOTIFY_REFRESH_TOKEN')
        if access_token and refresh_token:
            return {'access_token': access_token, 'refresh_token': refresh_token}
        return self.load_tokens().get('spotify')

    def save_spotify_tokens(self, access_token: str, refresh_token: str) -> None:
        """Save Spotify tokens."""
        self.save_tokens({
            'spotify': {
                'access_token': access_token,
                'refresh_token': refresh_token
            }
        })

    def load_env_vars(self) -> Dict[str, str]:
        """Load variables from the .env file; process environment variables take precedence."""
        env_vars = {}
        if self.env_file.exists():
            env_vars.update({k: v for k, v in dotenv_values(self.env_file).items() if v is not None})
        for key, value in os.environ.items():
            if key.startswith(('SPOTIFY_', 'DISCOBOT_')):
                env_vars[key] = value
        return env_vars

    def get_spotify_client_config(self) -> Dict[str, str]:
        """Get Spotify client configuration from environment."""
        env_vars = self.load_env_vars()

        client_id = env_vars.get('SPOTIFY_CLIENT_ID')
        client_secret = env_vars.get('SPOTIFY_CLIENT_SECRET')

        if not client_id:
            raise ConfigurationError("SPOTIFY_CLIENT_ID not found in environment")
        if not client_secret:
            raise ConfigurationError("SPOTIFY_CLIENT_SECRET not found in environment")

        return {
            'client_id': client_id,
            'client_secret': client_secret,
            'redirect_uri': env_vars.get('SPOTIFY_REDIRECT_URI') or DEFAULT_REDIRECT_URI
        }

    def get_market(self) -> Optional[str]:
        """Catalog market used for release listings (e.g. US, DE)."""
        return self.load_env_vars().get('DISCOBOT_MARKET') or None

    def load_target_stores(self) -> Dict[Category, TargetStore]:
        """Create one target store per category from playlists.json.

        A missing or empty playlist id disables the category.
        """
        raw = self._load_json(self.playlists_file)
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{self.playlists_file} must contain an object")

        unknown = [key for key in raw if key not in {c.value for c in CATEGORY_ORDER}]
        if unknown:
            raise ConfigurationError(f"Unknown categories in {self.playlists_file}: {unknown}")

        stores = {}
        for category in CATEGORY_ORDER:
            playlist_id = (raw.get(category.value) or '').strip() or None
            stores[category] = TargetStore(category=category, collection_id=playlist_id)
        return stores

    def load_blacklist(self) -> Dict[str, List[Category]]:
        """Load per-artist blacklisted categories from blacklist.json."""
        raw = self._load_json(self.blacklist_file)
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{self.blacklist_file} must contain an object")

        blacklist = {}
        for artist_id, categories in raw.items():
            try:
                blacklist[artist_id] = [Category(c) for c in categories]
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid blacklist entry for artist {artist_id}: {e}")
        return blacklist

    def load_policy(self) -> DiscoveryPolicy:
        """Build the discovery policy, applying DISCOBOT_* overrides."""
        env_vars = self.load_env_vars()
        defaults = DiscoveryPolicy()

        def _int(key: str, default: Optional[int]) -> Optional[int]:
            value = env_vars.get(key)
            if value is None or not str(value).strip():
                return default
            try:
                parsed = int(value)
            except ValueError:
                raise ConfigurationError(f"{key} must be an integer, got '{value}'")
            if parsed < 1:
                raise ConfigurationError(f"{key} must be positive, got {parsed}")
            return parsed

        return DiscoveryPolicy(
            artist_cache_ttl=timedelta(hours=_int('DISCOBOT_ARTIST_CACHE_HOURS', 24)),
            notifier_timeout=timedelta(days=_int('DISCOBOT_NOTIFIER_TIMEOUT_DAYS', 31)),
            max_workers=_int('DISCOBOT_MAX_WORKERS', defaults.max_workers),
            lookback_days=_int('DISCOBOT_LOOKBACK_DAYS', defaults.lookback_days),
        )

    def validate_configuration(self) -> Dict[str, bool]:
        """Validate that all required configuration is present."""
        env_vars = self.load_env_vars()
        tokens = self.get_spotify_tokens()

        try:
            enabled = [s for s in self.load_target_stores().values() if s.enabled]
        except ConfigurationError:
            enabled = []

        return {
            'spotify_client_id': bool(env_vars.get('SPOTIFY_CLIENT_ID')),
            'spotify_client_secret': bool(env_vars.get('SPOTIFY_CLIENT_SECRET')),
            'spotify_tokens': bool(tokens and tokens.get('access_token')),
            'target_playlists': bool(enabled),
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        validation = self.validate_configuration()
        try:
            stores = self.load_target_stores()
            enabled = [c.value for c, s in stores.items() if s.enabled]
        except ConfigurationError:
            enabled = []

        return {
            'config_dir': str(self.config_dir),
            'tokens_file': str(self.tokens_file),
            'env_file': str(self.env_file),
            'playlists_file': str(self.playlists_file),
            'cache_file': str(self.cache_file),
            'validation': validation,
            'spotify_scopes': self.get_spotify_scopes(),
            'enabled_categories': enabled,
        }
