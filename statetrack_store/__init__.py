"""
statetrack Store - local persistence of the visited-region set.
"""

from statetrack_store.storage import (
    JsonFileStorage,
    KeyValueStorage,
    MemoryStorage,
)
from statetrack_store.visited import VISITED_KEY, VisitedRegionStore

__all__ = [
    'KeyValueStorage',
    'MemoryStorage',
    'JsonFileStorage',
    'VisitedRegionStore',
    'VISITED_KEY',
]
