"""
Sync error taxonomy.

    SyncError
    ├── SyncInProgressError      another operation is in flight (retry later)
    └── SyncClosedError          engine closed

    RemoteStoreError
    ├── NetworkTransientError    unreachable / unavailable (retried)
    │   └── SyncTimeoutError     remote call exceeded its time bound
    ├── RemoteConflictError      version changed since last read (merged)
    ├── RemoteAuthError          credentials rejected (surfaced)
    └── MalformedPayloadError    undecodable record (surfaced)
"""

from typing import Optional

from statetrack_mqtt.schemas import VisitedRecord


class SyncError(Exception):
    pass


class SyncInProgressError(SyncError):
    pass


class SyncClosedError(SyncError):
    pass


class RemoteStoreError(Exception):
    pass


class NetworkTransientError(RemoteStoreError):
    pass


class SyncTimeoutError(NetworkTransientError):
    pass


class RemoteConflictError(RemoteStoreError):
    """Optimistic-concurrency check failed; carries the current remote record."""

    def __init__(self, message: str, current: Optional[VisitedRecord] = None):
        super().__init__(message)
        self.current = current


class RemoteAuthError(RemoteStoreError):
    pass


class MalformedPayloadError(RemoteStoreError):
    pass
