"""
Structured JSON Logger
=====================

Bounded Context: Observability Infrastructure

JSON structured logs for the sync layer and MQTT transports.

Design:
- One JSON object per line (compatible with log aggregators)
- Thread-safe (uses standard logging module)
- Bound context: identifiers fixed for a logger's lifetime (device_id,
  record_id) are attached to every entry
- Type-safe events (LogEvent enum)

Example:
    >>> logger = create_logger("sync", context={'device_id': 'phone-01'})
    >>> logger.info(
    ...     event=LogEvent.SYNC_PUSH_SUCCESS,
    ...     message="Pushed visited regions",
    ...     metadata={'version': 7, 'state_count': 12}
    ... )

Output:
    {
        "timestamp": "2025-10-24T15:30:45.123456+00:00",
        "level": "INFO",
        "component": "sync",
        "event": "sync.push.success",
        "message": "Pushed visited regions",
        "context": {"device_id": "phone-01"},
        "metadata": {"version": 7, "state_count": 12}
    }
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from .events import LogEvent


class StructuredLogger:
    """
    JSON structured logger.

    Attributes:
        component: Component name (e.g., "sync", "remote", "notifier")
        context: Fields attached to every entry
        logger: Underlying Python logger (``statetrack.<component>``)
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        context: Optional[Dict[str, Any]] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component
        self.context = dict(context or {})
        self.logger_name = logger_name or f"statetrack.{component}"
        self.logger = logging.getLogger(self.logger_name)
        self.logger.setLevel(level)

        # Loggers are shared by name: attach the JSON handler only once
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def bind(self, **context: Any) -> 'StructuredLogger':
        """Child logger for the same component with extra bound fields."""
        merged = dict(self.context)
        merged.update(context)
        return StructuredLogger(
            component=self.component,
            level=self.logger.level,
            context=merged,
            logger_name=self.logger_name
        )

    def entry(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> Dict[str, Any]:
        """Build the JSON-ready log entry (without emitting it)."""
        log_entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level,
            'component': self.component,
            'event': event.value,
            'message': message,
        }
        if self.context:
            log_entry['context'] = self.context
        if metadata:
            log_entry['metadata'] = metadata
        if exc_info is not None:
            log_entry['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info)
            }
        return log_entry

    def _log(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        log_level = getattr(logging, level)
        if not self.logger.isEnabledFor(log_level):
            return

        log_entry = self.entry(level, event, message, metadata, exc_info)
        self.logger.log(
            log_level,
            json.dumps(log_entry, default=str),
            exc_info=exc_info if level == 'ERROR' else None
        )

    def debug(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._log('DEBUG', event, message, metadata)

    def info(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._log('INFO', event, message, metadata)

    def warning(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        self._log('WARNING', event, message, metadata, exc_info)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log ERROR level message.

        Args:
            event: Typed log event
            message: Human-readable message
            metadata: Additional context
            exc_info: Exception instance; its traceback follows the JSON line
        """
        self._log('ERROR', event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


class JSONFormatter(logging.Formatter):
    """
    Emits the pre-rendered JSON line, followed by the traceback when the
    record carries one.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = record.getMessage()
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def create_logger(
    component: str,
    level: int = logging.INFO,
    context: Optional[Dict[str, Any]] = None
) -> StructuredLogger:
    """
    Factory function to create configured StructuredLogger.

    Example:
        >>> logger = create_logger("remote", context={'record_id': 'VisitedStates'})
    """
    return StructuredLogger(component=component, level=level, context=context)
