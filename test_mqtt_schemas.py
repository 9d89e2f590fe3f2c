"""
Test MQTT Schemas and Publishers
================================

Wire schemas, the region event publisher and the MQTT remote store,
exercised without a broker: the paho client is swapped for a recording
fake and callbacks are invoked directly.

Usage:
    pytest test_mqtt_schemas.py
"""

import json
import logging
import threading

import pytest

from statetrack_mqtt import (
    LogEvent,
    RegionEnteredMessage,
    RegionEventPublisher,
    Timestamp,
    VisitedRecord,
    create_logger,
    event_topic,
    union_regions,
    unique_regions,
)
from statetrack_sync import (
    MalformedPayloadError,
    MqttRemoteStore,
    NetworkTransientError,
    RemoteAuthError,
    RemoteConflictError,
    sync_topic,
)


class FakeResult:
    def __init__(self, rc=0, published=True):
        self.rc = rc
        self._published = published

    def wait_for_publish(self, timeout=None):
        pass

    def is_published(self):
        return self._published


class FakeClient:
    """Records publish/subscribe calls instead of talking to a broker."""

    def __init__(self, result=None):
        self.published = []
        self.subscribed = []
        self.result = result or FakeResult()

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append({'topic': topic, 'payload': payload, 'qos': qos, 'retain': retain})
        return self.result

    def subscribe(self, topic, qos=0):
        self.subscribed.append((topic, qos))

    def loop_stop(self):
        pass

    def disconnect(self):
        pass


class FakeReasonCode:
    def __init__(self, value=0):
        self.value = value
        self.is_failure = value >= 128

    def __str__(self):
        return str(self.value)


def connected(publisher, client=None):
    publisher.client = client or FakeClient()
    publisher._connected.set()
    return publisher.client


def region_message(**overrides):
    fields = dict(
        schema_version="1.0",
        timestamp=Timestamp.from_epoch(1_700_000_000.0),
        device_id="phone-01",
        region="Nevada",
        latitude=39.5,
        longitude=-117.0,
        first_visit=True,
        method="primary",
    )
    fields.update(overrides)
    return RegionEnteredMessage(**fields)


@pytest.fixture
def logger():
    return create_logger("test", level=logging.DEBUG)


@pytest.fixture
def remote(logger):
    return MqttRemoteStore(broker_host="localhost", logger=logger, fetch_wait_s=0.05)


# ─────────────────────────────────────────────────────────────────────────
# Schemas
# ─────────────────────────────────────────────────────────────────────────

def test_region_helpers():
    assert unique_regions(["Utah", "Nevada", "Utah"]) == ("Utah", "Nevada")
    assert union_regions(["B", "C"], ["A", "B"]) == ("B", "C", "A")
    with pytest.raises(ValueError):
        unique_regions(["Utah", ""])


def test_visited_record_wire_format():
    record = VisitedRecord.create("VisitedStates", ["Utah", "Nevada", "Utah"], version=3)
    data = record.to_dict()

    assert data['record_id'] == "VisitedStates"
    assert data['states'] == ["Utah", "Nevada"]
    assert data['version'] == 3
    assert 'lastUpdated' in data
    assert VisitedRecord.from_dict(json.loads(json.dumps(data))) == record


@pytest.mark.parametrize("data", [
    {'states': ["Utah"], 'lastUpdated': "2025-01-01T00:00:00+00:00"},
    {'record_id': "V", 'states': "Utah", 'lastUpdated': "2025-01-01T00:00:00+00:00"},
    {'record_id': "V", 'states': ["Utah"], 'lastUpdated': "yesterday"},
    {'record_id': "V", 'states': ["Utah"], 'lastUpdated': "2025-01-01T00:00:00+00:00", 'version': 0},
    {'record_id': "V", 'states': [1], 'lastUpdated': "2025-01-01T00:00:00+00:00"},
])
def test_visited_record_rejects_bad_data(data):
    with pytest.raises(ValueError):
        VisitedRecord.from_dict(data)


def test_region_message_round_trip():
    msg = region_message()
    assert RegionEnteredMessage.from_dict(msg.to_dict()) == msg
    assert msg.to_dict()['timestamp'].startswith("2023-11-14T22:13:20")


@pytest.mark.parametrize("overrides", [{'region': ""}, {'latitude': 95.0}, {'longitude': 200.0}])
def test_region_message_validation(overrides):
    with pytest.raises(ValueError):
        region_message(**overrides)


# ─────────────────────────────────────────────────────────────────────────
# Region event publisher
# ─────────────────────────────────────────────────────────────────────────

def test_event_topic():
    assert event_topic("phone-01") == "statetrack/events/phone-01"
    assert sync_topic("VisitedStates") == "statetrack/sync/VisitedStates"


def test_publish_requires_connection(logger):
    publisher = RegionEventPublisher(broker_host="localhost", device_id="phone-01", logger=logger)
    assert not publisher.publish_region_entered(region_message())


def test_publish_region_entered(logger):
    publisher = RegionEventPublisher(broker_host="localhost", device_id="phone-01", logger=logger)
    client = connected(publisher)

    assert publisher(region_message())

    assert len(client.published) == 1
    sent = client.published[0]
    assert sent['topic'] == "statetrack/events/phone-01"
    assert sent['qos'] == 1
    assert not sent['retain']
    assert json.loads(sent['payload']) == region_message().to_dict()
    assert publisher.get_stats()['message_count'] == 1


def test_publish_rejected_by_client(logger):
    publisher = RegionEventPublisher(broker_host="localhost", device_id="phone-01", logger=logger)
    connected(publisher, FakeClient(FakeResult(rc=4)))
    assert not publisher.publish_region_entered(region_message())


def test_connect_callback_flags_auth_failure(logger):
    publisher = RegionEventPublisher(broker_host="localhost", device_id="phone-01", logger=logger)

    publisher._on_connect(publisher.client, None, None, FakeReasonCode(135))
    assert publisher.auth_failed
    assert not publisher.is_connected()

    publisher._on_connect(publisher.client, None, None, FakeReasonCode(0))
    assert not publisher.auth_failed
    assert publisher.is_connected()

    publisher._on_disconnect(publisher.client, None, None, FakeReasonCode(0))
    assert not publisher.is_connected()


# ─────────────────────────────────────────────────────────────────────────
# MQTT remote store
# ─────────────────────────────────────────────────────────────────────────

def test_remote_subscribes_on_connect(remote):
    client = FakeClient()
    remote._on_connect(client, None, None, FakeReasonCode(0))
    assert client.subscribed == [("statetrack/sync/VisitedStates", 1)]


def test_remote_fetch_of_retained_record(remote):
    connected(remote)
    record = VisitedRecord.create("VisitedStates", ["Utah"], version=2)
    remote.handle_payload(json.dumps(record.to_dict()).encode("utf-8"))

    assert remote.fetch() == record


def test_remote_fetch_without_record(remote):
    connected(remote)
    assert remote.fetch() is None

    remote.handle_payload(json.dumps(VisitedRecord.create("VisitedStates", ["Utah"]).to_dict()))
    remote.handle_payload(b"")
    assert remote.fetch() is None


@pytest.mark.parametrize("payload", [b"{broken", b"[1, 2]", b'{"record_id": "VisitedStates"}'])
def test_remote_malformed_payload(remote, payload):
    connected(remote)
    remote.handle_payload(payload)

    with pytest.raises(MalformedPayloadError):
        remote.fetch()


def test_remote_save_publishes_next_version_retained(remote):
    client = connected(remote)
    remote.handle_payload(json.dumps(
        VisitedRecord.create("VisitedStates", ["Utah"], version=2).to_dict()
    ))

    saved = remote.save(["Utah", "Nevada"], expected_version=2)

    assert saved.version == 3
    assert saved.states == ("Utah", "Nevada")
    sent = client.published[-1]
    assert sent['retain']
    assert sent['topic'] == "statetrack/sync/VisitedStates"
    assert json.loads(sent['payload'])['version'] == 3
    assert remote.fetch() == saved


def test_remote_save_conflict_carries_current(remote):
    client = connected(remote)
    current = VisitedRecord.create("VisitedStates", ["Hawaii"], version=4)
    remote.handle_payload(json.dumps(current.to_dict()))

    with pytest.raises(RemoteConflictError) as excinfo:
        remote.save(["Utah"], expected_version=3)

    assert excinfo.value.current == current
    assert client.published == []


class BlockingClient(FakeClient):
    """Holds every publish until `release` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def publish(self, topic, payload, qos=0, retain=False):
        self.entered.set()
        self.release.wait(5.0)
        return super().publish(topic, payload, qos=qos, retain=retain)


def test_remote_concurrent_saves_do_not_collide(remote):
    client = connected(remote, BlockingClient())
    results = []

    def save(states):
        try:
            results.append(remote.save(states, expected_version=None))
        except RemoteConflictError as e:
            results.append(e)

    first = threading.Thread(target=save, args=(["Utah"],))
    first.start()
    assert client.entered.wait(5.0)

    second = threading.Thread(target=save, args=(["Nevada"],))
    second.start()
    second.join(0.2)
    assert len(client.published) == 0

    client.release.set()
    first.join(5.0)
    second.join(5.0)

    assert len(client.published) == 1
    saved = [r for r in results if isinstance(r, VisitedRecord)]
    conflicts = [r for r in results if isinstance(r, RemoteConflictError)]
    assert len(saved) == 1 and len(conflicts) == 1
    assert saved[0].states == ("Utah",)
    assert conflicts[0].current == saved[0]


def test_remote_unacknowledged_save_is_transient(remote):
    connected(remote, FakeClient(FakeResult(published=False)))
    with pytest.raises(NetworkTransientError):
        remote.save(["Utah"], expected_version=None)


def test_remote_auth_failure(remote, monkeypatch):
    remote._on_connect(remote.client, None, None, FakeReasonCode(134))
    monkeypatch.setattr(remote, "connect", lambda timeout=10.0: False)

    with pytest.raises(RemoteAuthError):
        remote.fetch()


def test_remote_unreachable_broker(logger):
    remote = MqttRemoteStore(
        broker_host="127.0.0.1", broker_port=1, logger=logger, connect_timeout_s=0.5
    )
    with pytest.raises(NetworkTransientError):
        remote.fetch()


# ─────────────────────────────────────────────────────────────────────────
# Structured logging
# ─────────────────────────────────────────────────────────────────────────

def test_bound_context_is_attached(logger):
    child = logger.bind(record_id="VisitedStates")
    entry = child.entry('INFO', LogEvent.REMOTE_SAVED, "Saved", metadata={'version': 2})

    assert entry['component'] == "test"
    assert entry['event'] == "remote.saved"
    assert entry['context'] == {'record_id': "VisitedStates"}
    assert entry['metadata'] == {'version': 2}
    assert 'context' not in logger.entry('INFO', LogEvent.REMOTE_SAVED, "Saved")
