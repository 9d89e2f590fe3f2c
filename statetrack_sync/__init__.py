"""
statetrack Sync
===============

Bounded Context: Remote reconciliation of the visited-region set

Public API
----------
Engine:
    MergeSyncEngine, SyncOutcome, SyncStatus

Remote stores:
    RemoteStore (abstract), InMemoryRemoteStore, MqttRemoteStore

Lease:
    keep_running, LeaseProvider, NullLeaseProvider

Errors:
    SyncError, SyncInProgressError, SyncClosedError,
    RemoteStoreError, NetworkTransientError, SyncTimeoutError,
    RemoteConflictError, RemoteAuthError, MalformedPayloadError
"""

from statetrack_sync.errors import (
    MalformedPayloadError,
    NetworkTransientError,
    RemoteAuthError,
    RemoteConflictError,
    RemoteStoreError,
    SyncClosedError,
    SyncError,
    SyncInProgressError,
    SyncTimeoutError,
)
from statetrack_sync.outcome import SyncOutcome, SyncStatus
from statetrack_sync.lease import LeaseProvider, NullLeaseProvider, keep_running
from statetrack_sync.remote import DEFAULT_RECORD_ID, InMemoryRemoteStore, RemoteStore
from statetrack_sync.mqtt_remote import MqttRemoteStore, sync_topic
from statetrack_sync.engine import MergeSyncEngine

__all__ = [
    'MergeSyncEngine',
    'SyncOutcome',
    'SyncStatus',
    'RemoteStore',
    'InMemoryRemoteStore',
    'MqttRemoteStore',
    'sync_topic',
    'DEFAULT_RECORD_ID',
    'keep_running',
    'LeaseProvider',
    'NullLeaseProvider',
    'SyncError',
    'SyncInProgressError',
    'SyncClosedError',
    'RemoteStoreError',
    'NetworkTransientError',
    'SyncTimeoutError',
    'RemoteConflictError',
    'RemoteAuthError',
    'MalformedPayloadError',
]
