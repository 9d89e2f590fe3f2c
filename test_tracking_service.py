"""
Test Region Tracking Service
============================

End-to-end flow: fixes in, notifications out, visited set persisted and
pushed to the remote store. Uses the in-memory remote and a list as the
notifier.

Usage:
    pytest test_tracking_service.py
"""

from pathlib import Path

import pytest

from statetrack_notify import LAST_NOTIFIED_REGION_KEY
from statetrack_processor import (
    NotificationConfig,
    RegionTrackingService,
    SyncConfig,
    TrackerConfig,
)
from statetrack_store import JsonFileStorage, MemoryStorage
from statetrack_sync import InMemoryRemoteStore, NetworkTransientError, NullLeaseProvider
from statetrack_zone import BoundaryIndex, GeoFix

DATASET = Path(__file__).parent / "data" / "regions_sample.geojson"
T0 = 1_700_000_000.0
WAIT = 5.0


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture(scope="module")
def index():
    return BoundaryIndex.from_file(DATASET)


def make_config(only_new=True, **overrides):
    return TrackerConfig(
        device_id="test-device",
        dataset_path=DATASET,
        notification_config=NotificationConfig(notify_only_new_regions=only_new),
        sync_config=SyncConfig(retry_delay_s=0.01, initial_pull_retry_delay_s=0.01),
        **overrides
    )


class Harness:
    def __init__(self, index, storage=None, remote=None, config=None):
        self.storage = storage if storage is not None else MemoryStorage()
        self.remote = remote or InMemoryRemoteStore()
        self.notified = []
        self.clock = FakeClock()
        self.leases = NullLeaseProvider()
        self.service = RegionTrackingService(
            config=config or make_config(),
            boundary_index=index,
            storage=self.storage,
            remote_store=self.remote,
            notifier=self.notified.append,
            lease_provider=self.leases,
            clock=self.clock,
        )

    def observe(self, lat, lon, t, **kwargs):
        return self.service.observe(GeoFix(latitude=lat, longitude=lon, timestamp=t, **kwargs))

    def settle(self):
        self.service.event_queue.join()
        assert self.service.wait_for_sync(WAIT)


@pytest.fixture
def harness(index):
    h = Harness(index)
    h.service.start()
    yield h
    if h.service.running:
        h.service.stop()


def test_region_changes_are_notified_stored_and_synced(harness):
    assert harness.observe(39.0, -109.0, T0).region == "Colorado"
    assert harness.observe(39.0, -109.1, T0 + 60).region == "Utah"
    harness.settle()

    assert [m.region for m in harness.notified] == ["Colorado", "Utah"]
    assert all(m.first_visit for m in harness.notified)
    assert harness.notified[0].device_id == "test-device"
    assert harness.notified[1].method == "primary"

    assert harness.service.store.snapshot() == ("Colorado", "Utah")
    assert set(harness.remote.record.states) == {"Colorado", "Utah"}
    assert harness.service.last_sync_outcome.ok


def test_revisit_is_not_renotified_with_only_new_policy(harness):
    harness.observe(39.0, -109.0, T0)
    harness.observe(39.0, -109.1, T0 + 60)
    harness.clock.now += 3600
    assert harness.observe(39.0, -109.0, T0 + 3600).region == "Colorado"
    harness.settle()

    assert [m.region for m in harness.notified] == ["Colorado", "Utah"]
    assert harness.storage.get(LAST_NOTIFIED_REGION_KEY) == "Utah"


def test_repeat_fixes_do_not_resync(harness):
    harness.observe(39.0, -105.5, T0)
    harness.settle()
    saves = harness.remote.save_count

    for i in range(1, 5):
        assert harness.observe(39.0, -105.5 + i * 0.01, T0 + i * 30) is None
    harness.settle()

    assert harness.remote.save_count == saves
    assert len(harness.notified) == 1


def test_filtered_fix_is_ignored(harness):
    assert harness.observe(39.0, -105.5, T0, altitude_m=11000.0) is None
    assert harness.observe(39.0, -105.5, T0, speed_mps=250.0) is None
    harness.settle()

    assert harness.notified == []
    assert harness.service.store.snapshot() == ()


def test_initial_pull_merges_remote_set(index):
    remote = InMemoryRemoteStore()
    remote.save(["Hawaii", "Nevada"], expected_version=None)
    storage = MemoryStorage()
    h = Harness(index, storage=storage, remote=remote)

    h.service.start()
    try:
        h.settle()
        assert h.service.store.snapshot() == ("Hawaii", "Nevada")
        assert set(remote.record.states) == {"Hawaii", "Nevada"}
        assert h.service.engine.known_version == remote.record.version
    finally:
        h.service.stop()


def test_initial_pull_retries_once(index):
    remote = InMemoryRemoteStore()
    remote.save(["Hawaii"], expected_version=None)
    remote.fail_next(NetworkTransientError("offline"))
    h = Harness(index, remote=remote)

    h.service.start()
    try:
        assert remote.fetch_count == 2
        assert h.service.store.snapshot() == ("Hawaii",)
    finally:
        h.service.stop()


def test_local_regions_uploaded_at_launch(index):
    storage = MemoryStorage()
    remote = InMemoryRemoteStore()
    remote.save(["Hawaii"], expected_version=None)

    first = Harness(index, storage=storage, remote=InMemoryRemoteStore())
    first.service.start()
    first.observe(39.0, -105.5, T0)
    first.settle()
    first.service.stop()

    # Same device storage, different remote holding another device's visits
    second = Harness(index, storage=storage, remote=remote)
    second.service.start()
    try:
        second.settle()
        assert set(second.service.store.snapshot()) == {"Colorado", "Hawaii"}
        assert set(remote.record.states) == {"Colorado", "Hawaii"}
        assert second.service.detector.last_confirmed_region == "Colorado"
    finally:
        second.service.stop()


def test_restart_does_not_renotify_last_region(index, tmp_path):
    path = tmp_path / "tracker.json"
    remote = InMemoryRemoteStore()

    first = Harness(index, storage=JsonFileStorage(path), remote=remote,
                    config=make_config(only_new=False))
    first.service.start()
    first.observe(39.0, -105.5, T0)
    first.settle()
    first.service.stop()
    assert len(first.notified) == 1

    second = Harness(index, storage=JsonFileStorage(path), remote=remote,
                     config=make_config(only_new=False))
    second.service.start()
    try:
        assert second.service.detector.last_confirmed_region == "Colorado"
        assert second.observe(39.0, -105.5, T0 + 10) is None
        second.settle()
        assert second.notified == []
    finally:
        second.service.stop()


def test_failing_notifier_does_not_block_persistence(index):
    def broken_notifier(message):
        raise RuntimeError("dispatcher down")

    h = Harness(index)
    h.service.notifier = broken_notifier
    h.service.start()
    try:
        h.observe(39.0, -105.5, T0)
        h.settle()
        assert h.service.store.snapshot() == ("Colorado",)
        assert h.storage.get(LAST_NOTIFIED_REGION_KEY) == "Colorado"
    finally:
        h.service.stop()


def test_sync_now(harness):
    harness.observe(39.0, -105.5, T0)
    harness.settle()

    future = harness.service.sync_now()
    assert future is not None
    assert future.result(WAIT).ok
    assert harness.service.wait_for_sync(WAIT)


def test_stop_releases_leases_and_closes_engine(harness):
    harness.observe(39.0, -109.0, T0)
    harness.settle()
    # Queued right before stop: the dispatch thread drains it before exiting
    assert harness.observe(39.0, -109.1, T0 + 60).region == "Utah"
    harness.service.stop()

    assert not harness.service.running
    assert harness.leases.active == 0
    assert harness.service.store.snapshot() == ("Colorado", "Utah")

    outcome = harness.service.engine.push(["Utah"]).result(WAIT)
    assert not outcome.ok


def test_from_config_builds_memory_backend():
    service = RegionTrackingService.from_config(make_config())
    assert len(service.boundary_index) == 6
    assert isinstance(service.engine.remote, InMemoryRemoteStore)
    assert service.notifier is None
    service.engine.close()


def test_full_event_queue_rolls_detector_back(index):
    h = Harness(index, config=make_config(event_queue_size=1))
    h.service.enqueue_timeout_s = 0.01
    try:
        # Not started: nothing drains the queue
        assert h.observe(39.0, -109.0, T0).region == "Colorado"
        assert h.observe(39.0, -109.1, T0 + 60) is None
        assert h.service.detector.last_confirmed_region == "Colorado"

        assert h.service.event_queue.get_nowait().region == "Colorado"
        assert h.observe(39.0, -109.1, T0 + 120).region == "Utah"
        assert h.service.detector.last_confirmed_region == "Utah"
    finally:
        h.service.engine.close()
