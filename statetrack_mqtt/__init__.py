"""
statetrack MQTT Communication Package
=====================================

Bounded Context: Wire Protocol and Observability

This package provides the wire schemas, the structured logging layer and
the MQTT publisher used by the region tracking system.

Architecture:
- schemas/: Immutable data structures with type safety
- publishers/: Message producers (RegionEventPublisher)
- logging/: Structured JSON logging for observability

Public API
----------
Schemas:
    Timestamp, VisitedRecord, RegionEnteredMessage

Publishers:
    RegionEventPublisher
    BasePublisher (for custom publishers)

Logging:
    LogEvent, StructuredLogger, create_logger

Example:
    >>> from statetrack_mqtt import RegionEventPublisher, create_logger
    >>> publisher = RegionEventPublisher(
    ...     broker_host="localhost",
    ...     device_id="phone-01",
    ...     logger=create_logger("notifier")
    ... )
    >>> publisher.connect()
"""

__version__ = "1.0.0"

from .schemas import (
    Timestamp,
    VisitedRecord,
    RegionEnteredMessage,
    unique_regions,
    union_regions,
)

from .publishers import (
    BasePublisher,
    RegionEventPublisher,
    event_topic,
)

from .logging import (
    LogEvent,
    StructuredLogger,
    create_logger,
)

__all__ = [
    '__version__',
    # Schemas
    'Timestamp',
    'VisitedRecord',
    'RegionEnteredMessage',
    'unique_regions',
    'union_regions',
    # Publishers
    'BasePublisher',
    'RegionEventPublisher',
    'event_topic',
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
