"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for structured logging.

Design:
- Enum-based (prevents typos, enables autocomplete)
- Hierarchical naming (namespace.category.action)
- Searchable in log aggregators (Elasticsearch, CloudWatch Insights)

Event Naming Convention:
    <component>.<category>.<action>

    component: mqtt, sync, remote, region, error
    category: connected, push, pull, conflict, entered
    action: success, failed, retry

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.record_id
    | filter event = "sync.push.merged"
    | stats count() by bin(1h)
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - mqtt.*: MQTT broker interactions
    - sync.*: Merge-sync engine lifecycle
    - remote.*: Remote record reads and writes
    - region.*: Region-entered notifications
    - error.*: Error conditions
    """

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    """Message successfully published to broker."""

    MQTT_PUBLISH_FAILED = "mqtt.publish.failed"
    """Message publication failed."""

    # ========== Sync Events ==========
    SYNC_STARTED = "sync.started"
    """Push or pull accepted by the serial queue."""

    SYNC_REJECTED = "sync.rejected"
    """Push or pull refused because another operation is in flight."""

    SYNC_PUSH_SUCCESS = "sync.push.success"
    """Local set written to the remote record."""

    SYNC_PUSH_MERGED = "sync.push.merged"
    """Push hit a version conflict and wrote the union instead."""

    SYNC_PULL_SUCCESS = "sync.pull.success"
    """Remote record fetched and merged with the local set."""

    SYNC_RETRY = "sync.retry"
    """Transient failure, operation scheduled for retry."""

    SYNC_FAILED = "sync.failed"
    """Operation failed and was surfaced to the caller."""

    SYNC_CLOSED = "sync.closed"
    """Sync engine closed; later calls fail fast."""

    # ========== Remote Record Events ==========
    REMOTE_FETCHED = "remote.fetched"
    """Remote record read."""

    REMOTE_SAVED = "remote.saved"
    """Remote record written with a new version."""

    REMOTE_CONFLICT = "remote.conflict"
    """Remote record changed since it was last read."""

    # ========== Region Events ==========
    REGION_ENTERED_SERIALIZED = "region.entered.serialized"
    """Region-entered message serialized to JSON."""

    REGION_ENTERED_PUBLISHED = "region.entered.published"
    """Region-entered message delivered to the broker."""

    # ========== Error Events ==========
    SERIALIZATION_ERROR = "error.serialization"
    """Failed to serialize message to JSON."""

    DESERIALIZATION_ERROR = "error.deserialization"
    """Failed to deserialize message from JSON."""

    SCHEMA_VALIDATION_ERROR = "error.schema_validation"
    """Message failed schema validation."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
    """Error during message publication."""


# Event categories for filtering
MQTT_EVENTS = {
    LogEvent.MQTT_CONNECTED,
    LogEvent.MQTT_DISCONNECTED,
    LogEvent.MQTT_PUBLISH_SUCCESS,
    LogEvent.MQTT_PUBLISH_FAILED,
}

SYNC_EVENTS = {
    LogEvent.SYNC_STARTED,
    LogEvent.SYNC_REJECTED,
    LogEvent.SYNC_PUSH_SUCCESS,
    LogEvent.SYNC_PUSH_MERGED,
    LogEvent.SYNC_PULL_SUCCESS,
    LogEvent.SYNC_RETRY,
    LogEvent.SYNC_FAILED,
    LogEvent.SYNC_CLOSED,
}

REMOTE_EVENTS = {
    LogEvent.REMOTE_FETCHED,
    LogEvent.REMOTE_SAVED,
    LogEvent.REMOTE_CONFLICT,
}

ERROR_EVENTS = {
    LogEvent.SERIALIZATION_ERROR,
    LogEvent.DESERIALIZATION_ERROR,
    LogEvent.SCHEMA_VALIDATION_ERROR,
    LogEvent.MQTT_CONNECTION_ERROR,
    LogEvent.MQTT_PUBLISH_ERROR,
}
