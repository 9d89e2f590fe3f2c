"""
Keep-running lease
==================

Work that may outlive a foreground session must hold a lease from the host
platform while it runs. ``keep_running`` acquires on entry and releases on
every exit path (success, failure and timeout).

Example:
    >>> with keep_running(provider, "visited-sync"):
    ...     remote.save(states, expected_version=3)
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger(__name__)


class LeaseProvider(ABC):
    """Host-platform hook for background execution leases."""

    @abstractmethod
    def acquire(self, name: str) -> Any:
        """Begin a lease; returns an opaque token."""
        pass

    @abstractmethod
    def release(self, token: Any) -> None:
        pass


class NullLeaseProvider(LeaseProvider):
    """Provider for hosts without background restrictions. Counts active leases."""

    def __init__(self):
        self._lock = threading.Lock()
        self._next_token = 0
        self._active = set()

    def acquire(self, name: str) -> int:
        with self._lock:
            self._next_token += 1
            self._active.add(self._next_token)
            return self._next_token

    def release(self, token: int) -> None:
        with self._lock:
            self._active.discard(token)

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def total_acquired(self) -> int:
        with self._lock:
            return self._next_token


@contextmanager
def keep_running(provider: LeaseProvider, name: str) -> Iterator[Any]:
    token = provider.acquire(name)
    logger.debug(f"Lease acquired: {name}")
    try:
        yield token
    finally:
        provider.release(token)
        logger.debug(f"Lease released: {name}")
