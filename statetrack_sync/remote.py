"""
Remote Store
============

Bounded Context: Remote copy of the visited-region set

A single logical record keyed by a fixed identifier, with optimistic
concurrency: every save names the version it was based on, and a save
against a stale version fails with RemoteConflictError carrying the
current record.

Implementations:
    InMemoryRemoteStore: thread-safe reference store with failure injection
    MqttRemoteStore:     retained message on an MQTT broker (mqtt_remote.py)
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Iterable, Optional

from statetrack_mqtt.logging import LogEvent, StructuredLogger, create_logger
from statetrack_mqtt.schemas import VisitedRecord

from statetrack_sync.errors import RemoteConflictError, RemoteStoreError

DEFAULT_RECORD_ID = "VisitedStates"


class RemoteStore(ABC):
    """Remote synchronization store contract."""

    record_id: str = DEFAULT_RECORD_ID

    @abstractmethod
    def fetch(self) -> Optional[VisitedRecord]:
        """
        Read the current record.

        Returns:
            The record, or None if it was never written

        Raises:
            RemoteStoreError subclasses
        """
        pass

    @abstractmethod
    def save(
        self,
        states: Iterable[str],
        expected_version: Optional[int]
    ) -> VisitedRecord:
        """
        Write the record if the remote version still equals expected_version.
        The check and the write are atomic with respect to other saves on
        the same instance, which may arrive from different threads.

        Args:
            states: Full region set to store
            expected_version: Version the caller last read (None = no record)

        Returns:
            The stored record with its new version

        Raises:
            RemoteConflictError: Remote version differs from expected_version
            RemoteStoreError: Other failures
        """
        pass


class InMemoryRemoteStore(RemoteStore):
    """
    Process-local remote store.

    Used for offline operation and tests. Failures can be queued with
    fail_next(); each queued error is raised by the next fetch or save.
    """

    def __init__(
        self,
        record_id: str = DEFAULT_RECORD_ID,
        logger: Optional[StructuredLogger] = None,
        delay_s: float = 0.0
    ):
        self.record_id = record_id
        self.logger = logger or create_logger("remote", context={'record_id': record_id})
        self.delay_s = delay_s

        self._record: Optional[VisitedRecord] = None
        self._failures: Deque[RemoteStoreError] = deque()
        self._lock = threading.Lock()
        self.fetch_count = 0
        self.save_count = 0

    def fail_next(self, error: RemoteStoreError, count: int = 1) -> None:
        with self._lock:
            for _ in range(count):
                self._failures.append(error)

    def _simulate(self) -> None:
        if self.delay_s > 0:
            time.sleep(self.delay_s)
        with self._lock:
            error = self._failures.popleft() if self._failures else None
        if error is not None:
            raise error

    @property
    def record(self) -> Optional[VisitedRecord]:
        with self._lock:
            return self._record

    def fetch(self) -> Optional[VisitedRecord]:
        with self._lock:
            self.fetch_count += 1
        self._simulate()

        record = self.record
        self.logger.debug(
            event=LogEvent.REMOTE_FETCHED,
            message="Fetched remote record",
            metadata={
                'record_id': self.record_id,
                'version': record.version if record else None
            }
        )
        return record

    def save(
        self,
        states: Iterable[str],
        expected_version: Optional[int]
    ) -> VisitedRecord:
        states = tuple(states)
        with self._lock:
            self.save_count += 1
        self._simulate()

        with self._lock:
            current = self._record
            current_version = current.version if current else None
            if expected_version != current_version:
                self.logger.info(
                    event=LogEvent.REMOTE_CONFLICT,
                    message="Version conflict on save",
                    metadata={
                        'expected_version': expected_version,
                        'current_version': current_version
                    }
                )
                raise RemoteConflictError(
                    f"Expected version {expected_version}, remote has {current_version}",
                    current=current
                )

            record = VisitedRecord.create(
                record_id=self.record_id,
                states=states,
                version=(current_version or 0) + 1
            )
            self._record = record

        self.logger.info(
            event=LogEvent.REMOTE_SAVED,
            message=f"Saved {record.state_count} regions",
            metadata={'record_id': self.record_id, 'version': record.version}
        )
        return record
