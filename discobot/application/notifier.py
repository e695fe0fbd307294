import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from discobot.application.executor import BoundedExecutor
from discobot.domain.entities import AlbumTrackPair, Category, RecentItem, TargetStore
from discobot.domain.ports import MusicCatalog


logger = logging.getLogger(__name__)

# White circle: new songs were added recently
INDICATOR_NEW = "⚪"
# Black circle: nothing new
INDICATOR_OFF = "⚫"

DESCRIPTION_PREFIX = "Last Discovery: "
_DESCRIPTION_PARSE_FORMAT = "%B %d, %Y — %H:%M"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_description(moment: datetime) -> str:
    """Render the "last updated" description, e.g. "Last Discovery: January 1, 2000 — 00:00"."""
    local = moment.astimezone()
    return f"{DESCRIPTION_PREFIX}{local:%B} {local.day}, {local:%Y} — {local:%H:%M}"


def parse_description(description: Optional[str]) -> Optional[datetime]:
    """Inverse of format_description. Returns None for foreign or malformed descriptions."""
    if not description or not description.startswith(DESCRIPTION_PREFIX):
        return None
    raw = description[len(DESCRIPTION_PREFIX):].strip()
    try:
        # Naive timestamps are local time
        return datetime.strptime(raw, _DESCRIPTION_PARSE_FORMAT).astimezone(timezone.utc)
    except ValueError:
        logger.debug(f"Unparsable playlist description: {description!r}")
        return None


class NotifierService:
    """Shows and clears the "new content" marker in target playlist titles.

    A store is MARKED while last_marked_new_at is set and CLEAR otherwise.
    Clearing is best-effort and never takes the crawl lock.
    """

    def __init__(self,
                 catalog: MusicCatalog,
                 stores: Dict[Category, TargetStore],
                 executor: BoundedExecutor,
                 timeout: timedelta = timedelta(days=31),
                 recent_items_limit: int = 50,
                 clock: Callable[[], datetime] = _utcnow):
        self.catalog = catalog
        self.stores = stores
        self.executor = executor
        self.timeout = timeout
        self.recent_items_limit = recent_items_limit
        self.clock = clock

    def enabled_stores(self) -> List[TargetStore]:
        return sorted(s for s in self.stores.values() if s.enabled)

    def init_last_updated_from_descriptions(self) -> None:
        """Restore last_marked_new_at of every enabled store from its playlist description."""

        def restore(store: TargetStore) -> None:
            details = self.catalog.get_collection(store.collection_id)
            marked_at = parse_description(details.description)
            if marked_at is not None:
                store.last_marked_new_at = marked_at

        self.executor.execute_and_wait_void(
            [lambda store=store: restore(store) for store in self.enabled_stores()]
        )

    def show_notifiers(self, tracks_by_store: Dict[TargetStore, List[AlbumTrackPair]]) -> None:
        """Mark every store that just received tracks (CLEAR -> MARKED)."""

        def mark(store: TargetStore) -> None:
            self._update_title_and_description(store, INDICATOR_OFF, INDICATOR_NEW, timestamp=True)
            store.last_marked_new_at = self.clock()

        stores = [s for s in sorted(tracks_by_store) if tracks_by_store[s] and s.enabled]
        self.executor.execute_and_wait_void([lambda store=store: mark(store) for store in stores])

    def should_clear(self, store: TargetStore) -> bool:
        """Decide whether the marker of a store is obsolete. First matching rule wins."""
        marked_at = store.last_marked_new_at
        if marked_at is None:
            return True

        now = self.clock()
        if now - marked_at > self.timeout:
            return True

        try:
            recent_items = self._recently_added_items(store, now)
            if not recent_items:
                return True

            playing = self.catalog.get_currently_playing_item()
            return playing is not None and playing in {item.item_id for item in recent_items if item.item_id}
        except Exception as e:
            # Marker clearing has no priority, never fail the caller
            logger.warning(f"Could not evaluate notifier of {store.category.value}: {e}")
            return False

    def _recently_added_items(self, store: TargetStore, now: datetime) -> List[RecentItem]:
        """Items added within the timeout window, local files included."""
        items = self.catalog.get_recent_items(store.collection_id, self.recent_items_limit)
        return [item for item in items if item.added_at is not None and now - item.added_at <= self.timeout]

    def clear_obsolete_notifiers(self) -> bool:
        """Clear every obsolete marker (MARKED -> CLEAR).

        Returns:
            True if at least one playlist title was changed
        """

        def clear(store: TargetStore) -> List[bool]:
            try:
                if not self.should_clear(store):
                    return [False]
                changed = self._update_title_and_description(store, INDICATOR_NEW, INDICATOR_OFF, timestamp=False)
                store.last_marked_new_at = None
                return [changed]
            except Exception as e:
                logger.warning(f"Failed to clear notifier of {store.category.value}: {e}")
                return [False]

        results = self.executor.execute_and_wait(
            [lambda store=store: clear(store) for store in self.enabled_stores()]
        )
        return any(results)

    def _update_title_and_description(self,
                                      store: TargetStore,
                                      notifier_target: str,
                                      notifier_replacement: str,
                                      timestamp: bool) -> bool:
        """Swap the marker glyph in the playlist title and optionally timestamp the description.

        Returns:
            True if the playlist title was changed
        """
        if not store.collection_id:
            return False

        new_title = None
        new_description = format_description(self.clock()) if timestamp else None

        details = self.catalog.get_collection(store.collection_id)
        if details.title and notifier_target in details.title:
            new_title = details.title.replace(notifier_target, notifier_replacement).strip()

        if new_title is not None or new_description is not None:
            self.catalog.set_collection_details(store.collection_id, title=new_title, description=new_description)
        return new_title is not None
