"""
Visited-Region Store
====================

Bounded Context: Durable set of regions the user has been confirmed in.

Design:
- Set semantics, exposed as an insertion-ordered tuple
- Every mutation persists the whole set synchronously under one lock and
  only becomes visible once the write succeeds, so readers never observe
  a partial or failed write
- Persisted as a JSON array string under the fixed key ``visitedStates``
"""

import json
import logging
import threading
from typing import Dict, Iterable, Optional, Tuple

from statetrack_store.storage import KeyValueStorage

logger = logging.getLogger(__name__)

VISITED_KEY = "visitedStates"


class VisitedRegionStore:
    """
    Durable, duplicate-free set of visited regions.

    Usage:
        store = VisitedRegionStore(JsonFileStorage("state.json"))
        store.add("Colorado")
        store.snapshot()   # ('Colorado',)
    """

    def __init__(self, storage: KeyValueStorage, key: str = VISITED_KEY):
        self.storage = storage
        self.key = key
        self._lock = threading.Lock()
        self._regions: Dict[str, None] = dict.fromkeys(self._load())

    def _load(self) -> Tuple[str, ...]:
        raw = self.storage.get(self.key)
        if raw is None:
            return ()
        try:
            decoded = json.loads(raw) if isinstance(raw, str) else raw
            if not isinstance(decoded, list) or not all(
                isinstance(region, str) and region for region in decoded
            ):
                raise ValueError("expected a JSON array of region names")
        except ValueError as e:
            logger.error(f"Ignoring malformed visited set under '{self.key}': {e}")
            return ()

        # dict.fromkeys drops duplicates, keeping first occurrence
        return tuple(dict.fromkeys(decoded))

    def _commit(self, regions: Dict[str, None]) -> None:
        """Persist ``regions``, then make it the visible set. Caller holds the lock."""
        self.storage.set(self.key, json.dumps(list(regions)))
        self._regions = regions

    def add(self, region: str) -> bool:
        """Add a region. Returns False (and writes nothing) if already present."""
        if not region:
            raise ValueError("region cannot be empty")
        with self._lock:
            if region in self._regions:
                return False
            regions = dict(self._regions)
            regions[region] = None
            self._commit(regions)
        logger.info(f"Visited region added: {region}")
        return True

    def add_all(self, regions: Iterable[str]) -> Tuple[str, ...]:
        """Add several regions with a single write. Returns the newly added ones."""
        added = []
        with self._lock:
            updated = dict(self._regions)
            for region in regions:
                if region and region not in updated:
                    updated[region] = None
                    added.append(region)
            if added:
                self._commit(updated)
        if added:
            logger.info(f"Visited regions added: {', '.join(added)}")
        return tuple(added)

    def remove(self, region: str) -> bool:
        with self._lock:
            if region not in self._regions:
                return False
            regions = dict(self._regions)
            del regions[region]
            self._commit(regions)
        logger.info(f"Visited region removed: {region}")
        return True

    def replace(self, regions: Iterable[str]) -> None:
        """Replace the whole set (explicit user edit)."""
        new_regions = dict.fromkeys(region for region in regions if region)
        with self._lock:
            self._commit(new_regions)
        logger.info(f"Visited set replaced ({len(new_regions)} regions)")

    def contains(self, region: str) -> bool:
        with self._lock:
            return region in self._regions

    def snapshot(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._regions)

    def last_added(self) -> Optional[str]:
        with self._lock:
            return next(reversed(self._regions), None)

    def __contains__(self, region: object) -> bool:
        return self.contains(region)

    def __len__(self) -> int:
        with self._lock:
            return len(self._regions)
