"""
Base MQTT Publisher
==================

Bounded Context: MQTT Infrastructure

This module provides the abstract base class for MQTT publishers.

Design:
- Connection management (connect, disconnect, reconnect)
- paho-mqtt callback API version 2
- Thread-safe (paho-mqtt loop)
- Structured logging integration

Architecture:
    BasePublisher (abstract)
        ↓
    RegionEventPublisher, MqttRemoteStore (concrete)

Responsibilities:
- MQTT connection lifecycle
- Message publishing to broker
- Error handling and logging
- NOT responsible for: Message formatting (delegated to subclasses)

Example:
    >>> class MyPublisher(BasePublisher):
    ...     def format_message(self, data):
    ...         return {"my_data": data}
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import paho.mqtt.client as mqtt

from ..logging import StructuredLogger, LogEvent

# MQTT v5 reason codes for rejected credentials
AUTH_FAILURE_CODES = (134, 135)


class BasePublisher(ABC):
    """
    Abstract base class for MQTT publishers.

    Handles MQTT connection management and message publication.
    Subclasses must implement format_message() for message-specific logic.

    Attributes:
        broker_host: MQTT broker hostname
        broker_port: MQTT broker port
        topic: Default MQTT topic to publish to
        client_id: MQTT client identifier
        qos: Quality of Service
        logger: Structured logger instance

    Thread Safety:
        Thread-safe via paho-mqtt's loop_start() and threading.Event
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic: str,
        client_id: str,
        logger: StructuredLogger,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        """
        Initialize MQTT publisher.

        Args:
            broker_host: MQTT broker hostname
            broker_port: MQTT broker port
            topic: Topic to publish to
            client_id: Unique client identifier
            logger: Structured logger for observability
            username: MQTT authentication username (optional)
            password: MQTT authentication password (optional)
            qos: Quality of Service (0=fire-and-forget, 1=at-least-once)
        """
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.logger = logger
        self.qos = qos

        # MQTT client setup
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username and password:
            self.client.username_pw_set(username, password)

        # Callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        # Connection state
        self._connected = threading.Event()
        self._auth_failed = False
        self._message_count = 0
        self._stats_lock = threading.Lock()

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None
    ) -> None:
        """
        Callback when connection established.

        Args:
            client: MQTT client instance
            userdata: User data (unused)
            flags: Connection flags
            reason_code: paho ReasonCode (failure when is_failure is set)
            properties: MQTT v5 properties (unused)
        """
        if not reason_code.is_failure:
            self._auth_failed = False
            self._connected.set()
            self.logger.info(
                event=LogEvent.MQTT_CONNECTED,
                message="Connected to MQTT broker",
                metadata={
                    'broker': self.broker,
                    'client_id': self.client_id,
                    'topic': self.topic
                }
            )
        else:
            self._auth_failed = reason_code.value in AUTH_FAILURE_CODES
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Failed to connect to broker (reason={reason_code})",
                metadata={'broker': self.broker, 'auth_failed': self._auth_failed}
            )

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None
    ) -> None:
        """Callback when disconnected from broker."""
        self._connected.clear()
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from MQTT broker",
            metadata={
                'broker': self.broker,
                'reason_code': str(reason_code)
            }
        )

    def connect(self, timeout: float = 10.0) -> bool:
        """
        Connect to MQTT broker.

        Args:
            timeout: Connection timeout in seconds

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            self.client.connect(self.broker_host, self.broker_port)
            self.client.loop_start()

            if self._connected.wait(timeout=timeout):
                return True
            else:
                self.logger.error(
                    event=LogEvent.MQTT_CONNECTION_ERROR,
                    message="Connection timeout",
                    metadata={'timeout': timeout}
                )
                return False

        except (OSError, ValueError) as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Failed to connect to broker",
                exc_info=e,
                metadata={'broker': self.broker}
            )
            return False

    def disconnect(self) -> None:
        """
        Disconnect from MQTT broker gracefully.

        Stops the network loop and disconnects the client.
        """
        self.client.loop_stop()
        self.client.disconnect()
        self._connected.clear()
        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from broker",
            metadata={'message_count': self._message_count}
        )

    def is_connected(self) -> bool:
        """Check if currently connected to broker."""
        return self._connected.is_set()

    @property
    def auth_failed(self) -> bool:
        """True if the broker rejected the last connection for bad credentials."""
        return self._auth_failed

    @abstractmethod
    def format_message(self, *args, **kwargs) -> Dict[str, Any]:
        """
        Format message for publication.

        Subclasses must implement this to provide message-specific formatting.

        Returns:
            Dictionary ready for JSON serialization
        """
        raise NotImplementedError("Subclasses must implement format_message()")

    def publish(
        self,
        message_data: Dict[str, Any],
        retain: bool = False,
        topic: Optional[str] = None,
        wait_timeout: Optional[float] = None
    ) -> bool:
        """
        Publish message to MQTT broker.

        Args:
            message_data: Message dictionary (already formatted)
            retain: MQTT retain flag (default: False)
            topic: Override of the default topic
            wait_timeout: If set, block until the broker acknowledges
                the message or the timeout expires

        Returns:
            True if published successfully, False otherwise
        """
        topic = topic or self.topic

        if not self._connected.is_set():
            self.logger.warning(
                event=LogEvent.MQTT_PUBLISH_FAILED,
                message="Cannot publish: not connected to broker",
                metadata={'topic': topic}
            )
            return False

        try:
            json_message = json.dumps(message_data)

            result = self.client.publish(
                topic=topic,
                payload=json_message,
                qos=self.qos,
                retain=retain
            )

            if result.rc != mqtt.MQTT_ERR_SUCCESS:
                self.logger.warning(
                    event=LogEvent.MQTT_PUBLISH_FAILED,
                    message=f"Publish failed (rc={result.rc})",
                    metadata={'topic': topic}
                )
                return False

            if wait_timeout is not None:
                result.wait_for_publish(timeout=wait_timeout)
                if not result.is_published():
                    self.logger.warning(
                        event=LogEvent.MQTT_PUBLISH_FAILED,
                        message="Publish not acknowledged in time",
                        metadata={'topic': topic, 'timeout': wait_timeout}
                    )
                    return False

            with self._stats_lock:
                self._message_count += 1

            self.logger.info(
                event=LogEvent.MQTT_PUBLISH_SUCCESS,
                message="Published message",
                metadata={
                    'topic': topic,
                    'message_count': self._message_count,
                    'qos': self.qos
                }
            )
            return True

        except (TypeError, ValueError, RuntimeError) as e:
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Error publishing message",
                exc_info=e,
                metadata={'topic': topic}
            )
            return False

    def get_stats(self) -> Dict[str, Any]:
        """
        Get publisher statistics.

        Returns:
            Dictionary with message count and connection status
        """
        with self._stats_lock:
            return {
                'message_count': self._message_count,
                'connected': self._connected.is_set(),
                'topic': self.topic,
                'broker': self.broker
            }
