import json
import logging
import os
import tempfile
import threading
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

ARTISTS_KEY = "artists"
RELEASES_KEY = "releases"
NAMES_KEY = "names"
_KEYS = (ARTISTS_KEY, RELEASES_KEY, NAMES_KEY)


def _append_unique(existing: List[str], values: Iterable[str]) -> int:
    seen = set(existing)
    added = 0
    for value in values:
        if value is None or value in seen:
            continue
        existing.append(value)
        seen.add(value)
        added += 1
    return added


class InMemoryCacheStore:
    """In-memory dedup cache. Contents are lost when the process exits."""

    def __init__(self, artists: Optional[Iterable[str]] = None,
                 releases: Optional[Iterable[str]] = None,
                 names: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._data: Dict[str, List[str]] = {key: [] for key in _KEYS}
        _append_unique(self._data[ARTISTS_KEY], artists or [])
        _append_unique(self._data[RELEASES_KEY], releases or [])
        _append_unique(self._data[NAMES_KEY], names or [])

    def _get(self, key: str) -> List[str]:
        with self._lock:
            return list(self._data[key])

    def _append(self, key: str, values: Iterable[str]) -> None:
        with self._lock:
            _append_unique(self._data[key], values)

    def get_cached_artist_ids(self) -> List[str]:
        return self._get(ARTISTS_KEY)

    def get_cached_release_ids(self) -> List[str]:
        return self._get(RELEASES_KEY)

    def get_cached_release_names(self) -> List[str]:
        return self._get(NAMES_KEY)

    def append_cached_artist_ids(self, artist_ids: Iterable[str]) -> None:
        self._append(ARTISTS_KEY, artist_ids)

    def append_cached_release_ids(self, release_ids: Iterable[str]) -> None:
        self._append(RELEASES_KEY, release_ids)

    def append_cached_release_names(self, names: Iterable[str]) -> None:
        self._append(NAMES_KEY, names)


class JsonCacheStore:
    """Dedup cache persisted as one JSON file: {"artists": [...], "releases": [...], "names": [...]}.

    Every append rewrites the file through a temporary file and os.replace, so a
    crash never leaves a half-written cache behind.
    """

    def __init__(self, path: str):
        """Initialize JSON cache store.

        Args:
            path: Path of the cache file; parent directories are created on first write
        """
        self.path = path
        self._lock = threading.Lock()
        self._data: Optional[Dict[str, List[str]]] = None

    def _load(self) -> Dict[str, List[str]]:
        if self._data is not None:
            return self._data

        data = {key: [] for key in _KEYS}
        if os.path.exists(self.path):
            try:
                with open(self.path, 'r') as f:
                    raw = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Failed to load cache file {self.path}: {e}")
                raise
            for key in _KEYS:
                _append_unique(data[key], raw.get(key) or [])
            logger.debug(f"Loaded cache from {self.path}: "
                         f"{len(data[ARTISTS_KEY])} artists, {len(data[RELEASES_KEY])} releases")
        self._data = data
        return data

    def _save(self, data: Dict[str, List[str]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.cache-', suffix='.json')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except Exception as e:
            logger.error(f"Failed to save cache file {self.path}: {e}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _get(self, key: str) -> List[str]:
        with self._lock:
            return list(self._load()[key])

    def _append(self, key: str, values: Iterable[str]) -> None:
        with self._lock:
            data = self._load()
            if _append_unique(data[key], values):
                self._save(data)

    def get_cached_artist_ids(self) -> List[str]:
        return self._get(ARTISTS_KEY)

    def get_cached_release_ids(self) -> List[str]:
        return self._get(RELEASES_KEY)

    def get_cached_release_names(self) -> List[str]:
        return self._get(NAMES_KEY)

    def append_cached_artist_ids(self, artist_ids: Iterable[str]) -> None:
        self._append(ARTISTS_KEY, artist_ids)

    def append_cached_release_ids(self, release_ids: Iterable[str]) -> None:
        self._append(RELEASES_KEY, release_ids)

    def append_cached_release_names(self, names: Iterable[str]) -> None:
        self._append(NAMES_KEY, names)
