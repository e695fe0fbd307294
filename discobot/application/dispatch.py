import logging
from typing import Dict, Iterable, List, Optional

from discobot.application.remapping import Remapper, default_remappers, find_remapped_category
from discobot.domain.entities import AlbumTrackPair, Category, CATEGORY_ORDER, TargetStore


logger = logging.getLogger(__name__)

TracksByStore = Dict[TargetStore, List[AlbumTrackPair]]


class Dispatcher:
    """Maps categorized releases to their target stores."""

    def __init__(self,
                 stores: Dict[Category, TargetStore],
                 remappers: Optional[Iterable[Remapper]] = None,
                 blacklist: Optional[Dict[str, Iterable[Category]]] = None):
        """Initialize dispatcher.

        Args:
            stores: One target store per category
            remappers: Remapper chain in priority order
            blacklist: Categories each artist id must never be dispatched to
        """
        missing = [c for c in CATEGORY_ORDER if c not in stores]
        if missing:
            raise ValueError(f"No target store for categories: {[c.value for c in missing]}")
        self.stores = stores
        self.remappers = list(remappers) if remappers is not None else default_remappers()
        self.blacklist = {artist_id: set(categories) for artist_id, categories in (blacklist or {}).items()}

    def map_to_target_stores(self, categorized: Dict[Category, List[AlbumTrackPair]]) -> TracksByStore:
        """Map each category to its canonical store."""
        return {self.stores[category]: list(pairs) for category, pairs in categorized.items()}

    def remap_into_extended_stores(self, tracks_by_store: TracksByStore) -> TracksByStore:
        """Move qualifying releases into the store of their remapped category.

        A release only moves when the extended store is enabled; otherwise it
        stays in its base store.
        """
        result: TracksByStore = {store: [] for store in tracks_by_store}
        for store, pairs in tracks_by_store.items():
            for pair in pairs:
                target = find_remapped_category(pair, store.category, self.remappers)
                target_store = self.stores[target] if target is not None else None
                if target_store is not None and target_store.enabled:
                    logger.debug(f"Remapped '{pair.release.title}' from {store.category.value} to {target.value}")
                    result.setdefault(target_store, []).append(pair)
                else:
                    result[store].append(pair)
        return result

    def remove_disabled_stores(self, tracks_by_store: TracksByStore) -> TracksByStore:
        """Drop stores that have no configured target playlist."""
        return {store: pairs for store, pairs in tracks_by_store.items() if store.enabled}

    def filter_blacklisted(self, tracks_by_store: TracksByStore) -> TracksByStore:
        """Drop releases of artists that blacklisted the store's category."""
        if not self.blacklist:
            return tracks_by_store
        result: TracksByStore = {}
        for store, pairs in tracks_by_store.items():
            result[store] = [p for p in pairs if not self._is_blacklisted(p, store.category)]
        return result

    def _is_blacklisted(self, pair: AlbumTrackPair, category: Category) -> bool:
        return any(category in self.blacklist.get(artist_id, ()) for artist_id in pair.release.artist_ids)

    def dispatch(self, categorized: Dict[Category, List[AlbumTrackPair]]) -> TracksByStore:
        """Run the full mapping chain. Releases without tracks and empty stores are dropped; keys and pairs are sorted."""
        with_tracks = {category: [p for p in pairs if p.tracks] for category, pairs in categorized.items()}
        mapped = self.map_to_target_stores(with_tracks)
        mapped = self.remap_into_extended_stores(mapped)
        mapped = self.remove_disabled_stores(mapped)
        mapped = self.filter_blacklisted(mapped)
        return {
            store: sorted(mapped[store], key=lambda p: p.sort_key)
            for store in sorted(mapped)
            if mapped[store]
        }


def collect_addition_results(tracks_by_store: TracksByStore) -> Dict[Category, int]:
    """Count dispatched tracks per category, in category order."""
    counts = {
        store.category: sum(len(p.tracks) for p in pairs)
        for store, pairs in tracks_by_store.items()
    }
    return {c: counts[c] for c in CATEGORY_ORDER if c in counts}
