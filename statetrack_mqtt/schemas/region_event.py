"""
Region Entered Message Schema
=============================

Bounded Context: Outbound Notification Data

The message handed to the notification dispatcher once the notification
gate allows a "you entered region X" event.

Message Flow:
    RegionDetector → RegionChangeEvent → NotificationGate
        → RegionEnteredMessage → RegionEventPublisher → MQTT
"""

from dataclasses import dataclass
from typing import Any, Dict

from .common import Timestamp

SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class RegionEnteredMessage:
    """
    Region-entered notification.

    Attributes:
        schema_version: Message schema version
        timestamp: ISO 8601 time of the fix that resolved the region
        device_id: Identifier of the reporting device
        region: Region the device entered
        latitude: Fix latitude in decimal degrees
        longitude: Fix longitude in decimal degrees
        first_visit: True if the region was not in the visited set
        method: Detection path that resolved the region

    Example:
        >>> msg = RegionEnteredMessage(
        ...     schema_version="1.0",
        ...     timestamp=Timestamp.now(),
        ...     device_id="phone-01",
        ...     region="Nevada",
        ...     latitude=39.16,
        ...     longitude=-119.76,
        ...     first_visit=True,
        ...     method="primary"
        ... )
    """
    schema_version: str
    timestamp: Timestamp
    device_id: str
    region: str
    latitude: float
    longitude: float
    first_visit: bool = False
    method: str = "primary"

    def __post_init__(self):
        """Validate invariants."""
        if not self.region:
            raise ValueError("region cannot be empty")
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(f"Latitude must be in [-90, 90], got {self.latitude}")
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(f"Longitude must be in [-180, 180], got {self.longitude}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'device_id': self.device_id,
            'region': self.region,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'first_visit': self.first_visit,
            'method': self.method
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RegionEnteredMessage':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            return cls(
                schema_version=str(data['schema_version']),
                timestamp=Timestamp(value=data['timestamp']),
                device_id=str(data['device_id']),
                region=str(data['region']),
                latitude=float(data['latitude']),
                longitude=float(data['longitude']),
                first_visit=bool(data.get('first_visit', False)),
                method=str(data.get('method', 'primary'))
            )
        except KeyError as e:
            raise ValueError(f"Missing required RegionEnteredMessage field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid RegionEnteredMessage data: {e}")
