"""
Notification Gate
=================

Bounded Context: Outbound event policy

Decides whether a detected region change should surface to the user.

Rules, evaluated in order (first refusal wins):

    1. notifications disabled by policy          -> refuse
    2. region is the last notified region        -> refuse
    3. region notified less than cooldown ago    -> refuse
    4. only-new-regions policy and region visited -> refuse
    5. otherwise                                  -> allow

The decision path has no side effects. Callers own the dispatch and must
call record_notified() exactly once per allowed notification.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Container, Optional

from statetrack_store.storage import KeyValueStorage

logger = logging.getLogger(__name__)

LAST_NOTIFIED_PREFIX = "lastNotified_"
LAST_NOTIFIED_REGION_KEY = "lastNotifiedState"

DEFAULT_COOLDOWN_S = 300.0


@dataclass(frozen=True)
class NotificationPolicy:
    """
    User-facing notification settings.

    Attributes:
        notify_only_new_regions: Suppress regions already in the visited set
        notifications_enabled: Master switch
    """

    notify_only_new_regions: bool = False
    notifications_enabled: bool = True


class CooldownLedger:
    """
    Persisted record of past notifications.

    Per-region timestamps live under ``lastNotified_<region>`` (epoch
    seconds) and the last notified region under ``lastNotifiedState``.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._lock = threading.Lock()

    @property
    def last_notified_region(self) -> Optional[str]:
        return self.storage.get(LAST_NOTIFIED_REGION_KEY)

    def last_notified_at(self, region: str) -> Optional[float]:
        value = self.storage.get(f"{LAST_NOTIFIED_PREFIX}{region}")
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed cooldown timestamp for {region}: {value!r}")
            return None

    def record(self, region: str, when: float) -> None:
        with self._lock:
            self.storage.set(f"{LAST_NOTIFIED_PREFIX}{region}", when)
            self.storage.set(LAST_NOTIFIED_REGION_KEY, region)

    def clear(self) -> None:
        with self._lock:
            for key in self.storage.keys(LAST_NOTIFIED_PREFIX):
                self.storage.delete(key)
            self.storage.delete(LAST_NOTIFIED_REGION_KEY)


class NotificationGate:
    """
    Cooldown and novelty policy for region-entered notifications.

    Example:
        >>> gate = NotificationGate(CooldownLedger(MemoryStorage()))
        >>> policy = NotificationPolicy(notify_only_new_regions=True)
        >>> gate.should_notify("Nevada", policy, visited={"California"})
        True
    """

    def __init__(
        self,
        ledger: CooldownLedger,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.time
    ):
        if cooldown_s < 0:
            raise ValueError(f"cooldown_s must be >= 0, got {cooldown_s}")
        self.ledger = ledger
        self.cooldown_s = cooldown_s
        self.clock = clock

    def should_notify(
        self,
        region: str,
        policy: NotificationPolicy,
        visited: Container[str]
    ) -> bool:
        if not policy.notifications_enabled:
            logger.debug(f"Notification for {region} refused: notifications disabled")
            return False

        if region == self.ledger.last_notified_region:
            logger.debug(f"Notification for {region} refused: last notified region")
            return False

        last_at = self.ledger.last_notified_at(region)
        if last_at is not None and self.clock() - last_at < self.cooldown_s:
            logger.debug(f"Notification for {region} refused: cooldown active")
            return False

        if policy.notify_only_new_regions and region in visited:
            logger.debug(f"Notification for {region} refused: already visited")
            return False

        return True

    def record_notified(self, region: str) -> None:
        self.ledger.record(region, self.clock())
        logger.info(f"Notification recorded for {region}")
