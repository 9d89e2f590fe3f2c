"""
Structured Logging for statetrack
=================================

Bounded Context: Observability

JSON-structured logging for the sync engine, remote stores and publishers.

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from statetrack_mqtt.logging import create_logger, LogEvent
    >>> logger = create_logger("sync")
    >>> logger.info(
    ...     event=LogEvent.SYNC_PUSH_SUCCESS,
    ...     message="Pushed 12 regions",
    ...     metadata={'version': 7}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
