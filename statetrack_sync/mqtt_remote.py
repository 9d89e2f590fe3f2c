"""
MQTT Remote Store
=================

Bounded Context: Remote synchronization over MQTT

Keeps the single logical record as a retained JSON message on
``statetrack/sync/<record_id>`` (QoS 1). Every client subscribed to the
topic receives the latest record on connect and on every update.

Design:
- Reuses BasePublisher for connection management and publishing
- Subscribes on connect and caches the last retained record
- save() enforces the version check against the cached record and
  publishes the next version retained

Limitations:
- The broker offers no compare-and-swap, so two writers publishing in the
  same instant can both pass the version check; the later retained message
  wins. The next push from the losing side sees a version conflict and
  merges by union, so no region is lost for good.
- Saves from this process are serialised: a save abandoned by a caller's
  timeout still runs to completion before the next one checks the version.

Error mapping:
    connection refused / timeout   -> NetworkTransientError
    bad username or password       -> RemoteAuthError
    undecodable retained payload   -> MalformedPayloadError
"""

import json
import threading
from typing import Any, Dict, Iterable, Optional, Tuple

import paho.mqtt.client as mqtt

from statetrack_mqtt.logging import LogEvent, StructuredLogger, create_logger
from statetrack_mqtt.publishers import BasePublisher
from statetrack_mqtt.schemas import VisitedRecord

from statetrack_sync.errors import (
    MalformedPayloadError,
    NetworkTransientError,
    RemoteAuthError,
    RemoteConflictError,
)
from statetrack_sync.remote import DEFAULT_RECORD_ID, RemoteStore

SYNC_TOPIC_PREFIX = "statetrack/sync"


def sync_topic(record_id: str, prefix: str = SYNC_TOPIC_PREFIX) -> str:
    return f"{prefix}/{record_id}"


class MqttRemoteStore(BasePublisher, RemoteStore):
    """
    Remote store backed by a retained MQTT message.

    Example:
        >>> remote = MqttRemoteStore(broker_host="localhost")
        >>> record = remote.fetch()
        >>> remote.save(["Colorado"], expected_version=record.version if record else None)
    """

    def __init__(
        self,
        broker_host: str,
        logger: Optional[StructuredLogger] = None,
        broker_port: int = 1883,
        record_id: str = DEFAULT_RECORD_ID,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic_prefix: str = SYNC_TOPIC_PREFIX,
        connect_timeout_s: float = 5.0,
        fetch_wait_s: float = 2.0,
        ack_timeout_s: float = 5.0
    ):
        """
        Args:
            broker_host: MQTT broker hostname
            logger: Structured logger (default: "remote" component)
            broker_port: MQTT broker port
            record_id: Fixed identifier of the logical record
            client_id: MQTT client ID (default derived from record_id)
            username: MQTT auth username (optional)
            password: MQTT auth password (optional)
            topic_prefix: Prefix of the retained record topic
            connect_timeout_s: Bound on connection establishment
            fetch_wait_s: How long fetch waits for the retained message
            ack_timeout_s: How long save waits for the broker's PUBACK
        """
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=sync_topic(record_id, topic_prefix),
            client_id=client_id or f"statetrack_sync_{record_id}",
            logger=logger or create_logger("remote", context={'record_id': record_id}),
            username=username,
            password=password,
            qos=1
        )
        self.record_id = record_id
        self.connect_timeout_s = connect_timeout_s
        self.fetch_wait_s = fetch_wait_s
        self.ack_timeout_s = ack_timeout_s

        self.client.on_message = self._on_message

        self._record: Optional[VisitedRecord] = None
        self._payload_error: Optional[MalformedPayloadError] = None
        self._received = threading.Event()
        self._record_lock = threading.Lock()
        self._save_lock = threading.Lock()

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None
    ) -> None:
        super()._on_connect(client, userdata, flags, reason_code, properties)
        if self.is_connected():
            client.subscribe(self.topic, qos=self.qos)

    def _on_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        msg: mqtt.MQTTMessage
    ) -> None:
        self.handle_payload(msg.payload)

    def handle_payload(self, payload: bytes) -> None:
        """
        Cache the record carried by a retained message.

        An empty payload means the retained record was cleared.
        """
        if not payload:
            with self._record_lock:
                self._record = None
                self._payload_error = None
            self._received.set()
            return

        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("record payload must be a JSON object")
            record = VisitedRecord.from_dict(data)
        except ValueError as e:
            self.logger.error(
                event=LogEvent.DESERIALIZATION_ERROR,
                message="Undecodable remote record",
                exc_info=e,
                metadata={'topic': self.topic}
            )
            with self._record_lock:
                self._payload_error = MalformedPayloadError(f"Undecodable remote record: {e}")
            self._received.set()
            return

        with self._record_lock:
            self._record = record
            self._payload_error = None
        self._received.set()

        self.logger.debug(
            event=LogEvent.REMOTE_FETCHED,
            message="Received remote record",
            metadata={'version': record.version, 'state_count': record.state_count}
        )

    def _ensure_connected(self) -> None:
        if self.is_connected():
            return
        if self.connect(timeout=self.connect_timeout_s):
            return
        if self.auth_failed:
            raise RemoteAuthError(f"Broker {self.broker} rejected credentials")
        raise NetworkTransientError(f"Broker {self.broker} unreachable")

    def fetch(self) -> Optional[VisitedRecord]:
        self._ensure_connected()

        # No retained message within the window means the record was never written
        self._received.wait(timeout=self.fetch_wait_s)

        with self._record_lock:
            if self._payload_error is not None:
                raise self._payload_error
            return self._record

    def format_message(self, record: VisitedRecord) -> Dict[str, Any]:
        return record.to_dict()

    def save(
        self,
        states: Iterable[str],
        expected_version: Optional[int]
    ) -> VisitedRecord:
        with self._save_lock:
            return self._save(tuple(states), expected_version)

    def _save(
        self,
        states: Tuple[str, ...],
        expected_version: Optional[int]
    ) -> VisitedRecord:
        current = self.fetch()
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

        if not self.publish(
            self.format_message(record),
            retain=True,
            wait_timeout=self.ack_timeout_s
        ):
            if self.auth_failed:
                raise RemoteAuthError(f"Broker {self.broker} rejected credentials")
            raise NetworkTransientError(f"Publishing record to {self.topic} failed")

        with self._record_lock:
            self._record = record
            self._payload_error = None
        self._received.set()

        self.logger.info(
            event=LogEvent.REMOTE_SAVED,
            message=f"Saved {record.state_count} regions",
            metadata={'record_id': self.record_id, 'version': record.version}
        )
        return record
