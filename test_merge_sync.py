"""
Test Merge-Sync Engine
======================

Push/pull outcomes, union merge on conflict, single-flight rejection,
bounded retries, timeouts, lease release and shutdown.

Usage:
    pytest test_merge_sync.py
"""

import threading

import pytest

from statetrack_sync import (
    InMemoryRemoteStore,
    MergeSyncEngine,
    NetworkTransientError,
    NullLeaseProvider,
    RemoteAuthError,
    RemoteConflictError,
    RemoteStore,
    SyncClosedError,
    SyncInProgressError,
    SyncStatus,
    SyncTimeoutError,
)

WAIT = 5.0


class BlockingRemote(InMemoryRemoteStore):
    """Remote whose save blocks until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def save(self, states, expected_version):
        self.entered.set()
        self.release.wait(WAIT)
        return super().save(states, expected_version)


class AlwaysConflictingRemote(RemoteStore):
    """Remote that changes under every save."""

    def __init__(self):
        self.inner = InMemoryRemoteStore()
        self.inner.save(["Hawaii"], None)
        self.save_count = 0

    def fetch(self):
        return self.inner.fetch()

    def save(self, states, expected_version):
        self.save_count += 1
        current = self.inner.record
        self.inner.save(current.states, current.version)
        raise RemoteConflictError("changed again", current=self.inner.record)


@pytest.fixture
def remote():
    return InMemoryRemoteStore()


@pytest.fixture
def engine(remote):
    engine = MergeSyncEngine(remote, retry_delay_s=0.01, operation_timeout_s=2.0)
    yield engine
    engine.close()


def test_push_succeeds(engine, remote):
    outcome = engine.push(["Colorado", "Utah"]).result(WAIT)

    assert outcome.status == SyncStatus.SUCCEEDED
    assert outcome.version == 1
    assert remote.record.states == ("Colorado", "Utah")
    assert engine.known_version == 1
    assert not engine.in_flight


def test_push_merges_on_conflict(engine, remote):
    engine.push(["A", "B"]).result(WAIT)
    # Another device writes in between
    remote.save(["B", "C"], expected_version=1)

    outcome = engine.push(["A", "B"]).result(WAIT)

    assert outcome.status == SyncStatus.MERGED
    assert set(outcome.states) == {"A", "B", "C"}
    assert set(remote.record.states) == {"A", "B", "C"}
    assert outcome.version == 3
    assert engine.known_version == 3


def test_first_push_merges_existing_remote(engine, remote):
    remote.save(["Hawaii"], expected_version=None)

    outcome = engine.push(["Utah"]).result(WAIT)

    assert outcome.is_merged
    assert set(outcome.states) == {"Hawaii", "Utah"}


def test_merge_is_idempotent(engine, remote):
    remote.save(["Hawaii", "Utah"], expected_version=None)
    first = engine.push(["Utah", "Nevada"]).result(WAIT)
    second = engine.push(first.states).result(WAIT)

    assert second.status == SyncStatus.SUCCEEDED
    assert set(second.states) == set(first.states)


def test_pull_returns_union_without_writing(engine, remote):
    remote.save(["Hawaii"], expected_version=None)

    outcome = engine.pull(["Utah"]).result(WAIT)

    assert outcome.status == SyncStatus.MERGED
    assert outcome.states == ("Hawaii", "Utah")
    assert outcome.version == 1
    assert remote.save_count == 1
    assert engine.known_version == 1


def test_pull_of_missing_record(engine):
    outcome = engine.pull(["Utah"]).result(WAIT)
    assert outcome.is_merged
    assert outcome.states == ("Utah",)
    assert outcome.version is None


def test_single_flight():
    remote = BlockingRemote()
    engine = MergeSyncEngine(remote)
    try:
        first = engine.push(["Colorado"])
        assert remote.entered.wait(WAIT)
        assert engine.in_flight

        second = engine.push(["Utah"]).result(WAIT)
        assert second.status == SyncStatus.FAILED
        assert isinstance(second.error, SyncInProgressError)

        pulled = engine.pull().result(WAIT)
        assert isinstance(pulled.error, SyncInProgressError)

        remote.release.set()
        assert first.result(WAIT).status == SyncStatus.SUCCEEDED
        assert remote.record.states == ("Colorado",)

        # Flag is cleared before the future resolves
        assert engine.push(["Colorado", "Utah"]).result(WAIT).ok
    finally:
        remote.release.set()
        engine.close()


def test_transient_failures_are_retried(engine, remote):
    remote.fail_next(NetworkTransientError("offline"), count=2)

    outcome = engine.push(["Utah"]).result(WAIT)

    assert outcome.status == SyncStatus.SUCCEEDED
    assert remote.save_count == 3


def test_retries_are_bounded(remote):
    engine = MergeSyncEngine(remote, retry_delay_s=0.01, max_retries=3)
    try:
        remote.fail_next(NetworkTransientError("offline"), count=10)
        outcome = engine.push(["Utah"]).result(WAIT)
    finally:
        engine.close()

    assert outcome.status == SyncStatus.FAILED
    assert isinstance(outcome.error, NetworkTransientError)
    assert remote.save_count == 4


def test_auth_failure_is_not_retried(engine, remote):
    remote.fail_next(RemoteAuthError("bad credentials"))

    outcome = engine.push(["Utah"]).result(WAIT)

    assert outcome.status == SyncStatus.FAILED
    assert isinstance(outcome.error, RemoteAuthError)
    assert remote.save_count == 1
    assert engine.known_version is None


def test_remote_call_timeout():
    remote = InMemoryRemoteStore(delay_s=0.5)
    engine = MergeSyncEngine(remote, operation_timeout_s=0.1, max_retries=0)
    try:
        outcome = engine.push(["Utah"]).result(WAIT)
    finally:
        engine.close()

    assert outcome.status == SyncStatus.FAILED
    assert isinstance(outcome.error, SyncTimeoutError)


def test_conflict_rounds_are_bounded():
    remote = AlwaysConflictingRemote()
    engine = MergeSyncEngine(remote, max_conflict_rounds=3)
    try:
        outcome = engine.push(["Utah"]).result(WAIT)
    finally:
        engine.close()

    assert outcome.status == SyncStatus.FAILED
    assert isinstance(outcome.error, RemoteConflictError)
    assert remote.save_count == 4


def test_lease_released_on_every_path(remote):
    leases = NullLeaseProvider()
    engine = MergeSyncEngine(remote, lease_provider=leases, max_retries=0)
    try:
        assert engine.push(["Utah"]).result(WAIT).ok
        remote.fail_next(RemoteAuthError("denied"))
        assert not engine.push(["Utah"]).result(WAIT).ok
        assert engine.pull().result(WAIT).ok
    finally:
        engine.close()

    assert leases.total_acquired == 3
    assert leases.active == 0


def test_closed_engine_rejects_operations(remote):
    engine = MergeSyncEngine(remote)
    engine.close()
    engine.close()

    outcome = engine.push(["Utah"]).result(WAIT)
    assert outcome.status == SyncStatus.FAILED
    assert isinstance(outcome.error, SyncClosedError)
    assert remote.save_count == 0


def test_close_interrupts_retry_delay(remote):
    engine = MergeSyncEngine(remote, retry_delay_s=60.0, max_retries=3)
    remote.fail_next(NetworkTransientError("offline"), count=10)
    pending = engine.push(["Utah"])

    engine.close()

    outcome = pending.result(WAIT)
    assert outcome.status == SyncStatus.FAILED
    assert isinstance(outcome.error, NetworkTransientError)


@pytest.mark.parametrize("states", [[""], [None], ["Utah", 3]])
def test_invalid_region_names_rejected(engine, states):
    with pytest.raises(ValueError):
        engine.push(states)
