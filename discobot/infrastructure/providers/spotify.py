import html
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError
from urllib3.exceptions import ReadTimeoutError

from discobot.domain.entities import Category, CollectionDetails, RecentItem, Release, Track
from discobot.domain.errors import (
    NotFound, PermanentFailure, RateLimited, RemoteServiceError, TemporaryFailure,
)

logger = logging.getLogger(__name__)

INCLUDE_GROUPS = 'album,single,compilation,appears_on'
PAGE_LIMIT = 50


def parse_release_date(value: Optional[str], precision: Optional[str] = None) -> Optional[date]:
    """Parse a Spotify release date. Year and month precision map to the first day of the period."""
    if not value:
        return None
    parts = value.split('-')
    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 and precision != 'year' else 1
        day = int(parts[2]) if len(parts) > 2 and precision not in ('year', 'month') else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        logger.debug(f"Unparsable release date: {value!r}")
        return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp such as 2024-01-01T10:00:00Z into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SpotifyCatalog:
    """Spotify Web API implementation of the MusicCatalog port."""

    def __init__(self,
                 access_token: str,
                 refresh_token: Optional[str] = None,
                 client_id: Optional[str] = None,
                 client_secret: Optional[str] = None,
                 redirect_uri: Optional[str] = None,
                 market: Optional[str] = None,
                 on_tokens_refreshed: Optional[Callable[[str, str], None]] = None):
        """Initialize Spotify catalog.

        Args:
            access_token: Spotify access token
            refresh_token: Spotify refresh token
            client_id: Spotify client ID for token refresh
            client_secret: Spotify client secret for token refresh
            redirect_uri: Redirect URI registered for the client
            market: Market used when listing releases
            on_tokens_refreshed: Called with (access_token, refresh_token) after a refresh
        """
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri or 'http://localhost:8080/callback'
        self.market = market
        self.on_tokens_refreshed = on_tokens_refreshed

        self._client = spotipy.Spotify(auth=self.access_token, requests_timeout=15)

        # Token refresh tracking
        self._last_refresh_attempt = 0.0
        self._refresh_cooldown = 5  # seconds between refresh attempts

    def _refresh_access_token(self) -> bool:
        """Refresh Spotify access token.

        Returns:
            True if token was refreshed successfully, False otherwise
        """
        current_time = time.time()

        # Prevent too frequent refresh attempts
        if current_time - self._last_refresh_attempt < self._refresh_cooldown:
            return False

        self._last_refresh_attempt = current_time

        if not self.refresh_token or not self.client_id or not self.client_secret:
            logger.warning("Cannot refresh token: missing refresh token or client credentials")
            return False

        try:
            logger.info("Refreshing Spotify access token...")
            oauth_manager = SpotifyOAuth(
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=self.redirect_uri,
            )
            token_info = oauth_manager.refresh_access_token(self.refresh_token)
        except (SpotifyOauthError, requests.exceptions.RequestException) as e:
            logger.error(f"Failed to refresh Spotify token: {e}")
            return False

        if not token_info or 'access_token' not in token_info:
            logger.error("Failed to refresh token: invalid response")
            return False

        self.access_token = token_info['access_token']
        self.refresh_token = token_info.get('refresh_token') or self.refresh_token
        self._client = spotipy.Spotify(auth=self.access_token, requests_timeout=15)

        if self.on_tokens_refreshed:
            try:
                self.on_tokens_refreshed(self.access_token, self.refresh_token)
            except Exception as e:
                logger.warning(f"Failed to persist refreshed tokens: {e}")

        logger.info("Spotify access token refreshed successfully")
        return True

    def _map_error(self, error: spotipy.SpotifyException, operation: str) -> RemoteServiceError:
        status = getattr(error, 'http_status', None)
        message = f"Spotify {operation} failed ({status}): {getattr(error, 'msg', error)}"
        if status == 429:
            headers = getattr(error, 'headers', None) or {}
            try:
                retry_after = int(headers.get('Retry-After', 1))
            except (TypeError, ValueError):
                retry_after = 1
            return RateLimited(retry_after_ms=retry_after * 1000, message=message)
        if status == 404:
            return NotFound(message)
        if status in (400, 401, 403):
            return PermanentFailure(message)
        return TemporaryFailure(message)

    def _execute(self, operation: str, *args, **kwargs) -> Any:
        """Call a spotipy client method, refreshing the token once on 401.

        Raises:
            RemoteServiceError: Any failure, mapped to the matching subclass
        """
        for attempt in range(2):
            try:
                return getattr(self._client, operation)(*args, **kwargs)
            except spotipy.SpotifyException as e:
                if e.http_status == 401 and attempt == 0:
                    logger.warning(f"Spotify token expired during {operation}, attempting refresh...")
                    if self._refresh_access_token():
                        continue
                raise self._map_error(e, operation) from e
            except (requests.exceptions.RequestException, ReadTimeoutError) as e:
                raise TemporaryFailure(f"Spotify {operation} failed: {e}") from e
        raise TemporaryFailure(f"Spotify {operation} failed after token refresh")

    def _collect_pages(self, first_page: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = list(first_page.get('items') or [])
        page = first_page
        while page.get('next'):
            page = self._execute('next', page)
            if not page:
                break
            items.extend(page.get('items') or [])
        return items

    def list_followed_artists(self) -> List[str]:
        artist_ids: List[str] = []
        after = None
        while True:
            response = self._execute('current_user_followed_artists', limit=PAGE_LIMIT, after=after)
            page = (response or {}).get('artists') or {}
            artist_ids.extend(a.get('id') for a in page.get('items') or [] if a and a.get('id'))
            after = (page.get('cursors') or {}).get('after')
            if not page.get('next') or not after:
                break
        return artist_ids

    def list_releases(self, artist_id: str) -> List[Release]:
        first_page = self._execute('artist_albums', artist_id, include_groups=INCLUDE_GROUPS,
                                   country=self.market, limit=PAGE_LIMIT)
        releases = []
        for item in self._collect_pages(first_page or {}):
            release = self._spotify_album_to_domain(item)
            if release is not None:
                releases.append(release)
        return releases

    def _spotify_album_to_domain(self, album: Dict[str, Any]) -> Optional[Release]:
        if not album or not album.get('id'):
            return None
        group = album.get('album_group') or album.get('album_type')
        try:
            category = Category.from_source(group)
        except ValueError:
            logger.debug(f"Skipping release {album.get('id')} with unknown group {group!r}")
            return None
        return Release(
            id=album['id'],
            title=album.get('name', ''),
            category=category,
            artist_ids=[a['id'] for a in album.get('artists') or [] if a and a.get('id')],
            release_date=parse_release_date(album.get('release_date'), album.get('release_date_precision')),
            track_count=album.get('total_tracks') or 0,
        )

    def list_tracks(self, release_id: str) -> List[Track]:
        first_page = self._execute('album_tracks', release_id, limit=PAGE_LIMIT)
        return [
            Track(
                id=item['id'],
                name=item.get('name', ''),
                release_id=release_id,
                duration_ms=item.get('duration_ms') or 0,
            )
            for item in self._collect_pages(first_page or {})
            if item and item.get('id')
        ]

    def get_collection(self, collection_id: str) -> CollectionDetails:
        playlist = self._execute('playlist', collection_id, fields='id,name,description')
        if not playlist:
            raise NotFound(f"Playlist {collection_id} not found")
        return CollectionDetails(
            id=playlist.get('id') or collection_id,
            title=playlist.get('name') or '',
            # Spotify returns descriptions HTML-escaped
            description=html.unescape(playlist.get('description') or ''),
        )

    def set_collection_details(self, collection_id: str, title: Optional[str] = None,
                               description: Optional[str] = None) -> None:
        self._execute('playlist_change_details', collection_id, name=title, description=description)

    def insert_tracks(self, collection_id: str, track_ids: List[str],
                      position: Optional[int] = None) -> None:
        if not track_ids:
            return
        self._execute('playlist_add_items', collection_id, list(track_ids), position=position)

    def get_recent_items(self, collection_id: str, limit: int) -> List[RecentItem]:
        response = self._execute('playlist_items', collection_id, fields='items(added_at,track(id))',
                                 limit=limit, additional_types=('track',))
        items = []
        for item in (response or {}).get('items') or []:
            track = item.get('track') or {}
            items.append(RecentItem(item_id=track.get('id'), added_at=parse_timestamp(item.get('added_at'))))
        return items

    def get_currently_playing_item(self) -> Optional[str]:
        playing = self._execute('current_user_playing_track')
        if not playing or playing.get('currently_playing_type', 'track') != 'track':
            return None
        item = playing.get('item') or {}
        return item.get('id')
