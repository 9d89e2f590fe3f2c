"""
Region Event Publisher
=====================

Bounded Context: Region Notification Dispatch

This module provides the bundled notifier: it publishes the allowed
"you entered region X" messages to a per-device MQTT topic.

Design:
- Inherits from BasePublisher (connection management)
- Formats RegionEnteredMessage to JSON
- Publishes to statetrack/events/<device_id>
- Logs structured events

Message Flow:
    NotificationGate → RegionEnteredMessage → RegionEventPublisher → MQTT Broker

Example:
    >>> from statetrack_mqtt.publishers import RegionEventPublisher
    >>> from statetrack_mqtt.logging import create_logger
    >>>
    >>> publisher = RegionEventPublisher(
    ...     broker_host="localhost",
    ...     device_id="phone-01",
    ...     logger=create_logger("notifier")
    ... )
    >>> publisher.connect()
    >>> publisher.publish_region_entered(msg)
"""

from typing import Dict, Any, Optional
from .base import BasePublisher
from ..schemas import RegionEnteredMessage
from ..logging import StructuredLogger, LogEvent

EVENT_TOPIC_PREFIX = "statetrack/events"


def event_topic(device_id: str, prefix: str = EVENT_TOPIC_PREFIX) -> str:
    """Topic carrying region-entered messages for one device."""
    return f"{prefix}/{device_id}"


class RegionEventPublisher(BasePublisher):
    """
    Publisher for region-entered notifications.

    Instances are callable so they can be handed to the tracking service
    directly as its ``notifier``.
    """

    def __init__(
        self,
        broker_host: str,
        device_id: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1,
        topic_prefix: str = EVENT_TOPIC_PREFIX
    ):
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=event_topic(device_id, topic_prefix),
            client_id=client_id or f"statetrack_events_{device_id}",
            logger=logger,
            username=username,
            password=password,
            qos=qos
        )
        self.device_id = device_id

    def format_message(self, region_msg: RegionEnteredMessage) -> Dict[str, Any]:
        """
        Format RegionEnteredMessage to JSON-compatible dict.

        Raises:
            ValueError: If region_msg cannot be serialized
        """
        try:
            formatted = region_msg.to_dict()
        except AttributeError as e:
            self.logger.error(
                event=LogEvent.SERIALIZATION_ERROR,
                message="Failed to serialize region entered message",
                exc_info=e
            )
            raise ValueError(f"Failed to format region entered message: {e}")

        self.logger.debug(
            event=LogEvent.REGION_ENTERED_SERIALIZED,
            message="Serialized region entered message",
            metadata={'region': region_msg.region, 'device_id': region_msg.device_id}
        )
        return formatted

    def publish_region_entered(self, region_msg: RegionEnteredMessage) -> bool:
        """
        Publish a region-entered message to the broker.

        Returns:
            True if published successfully, False otherwise
        """
        try:
            message_data = self.format_message(region_msg)
        except ValueError:
            return False

        success = self.publish(message_data)
        if success:
            self.logger.info(
                event=LogEvent.REGION_ENTERED_PUBLISHED,
                message=f"Published region entered: {region_msg.region}",
                metadata={
                    'region': region_msg.region,
                    'first_visit': region_msg.first_visit,
                    'topic': self.topic
                }
            )
        return success

    def __call__(self, region_msg: RegionEnteredMessage) -> bool:
        return self.publish_region_entered(region_msg)
