"""
Configuration schema for the region tracking service.

This module defines the configuration structure for the tracker: boundary
dataset, detection thresholds, fix filter, notification policy, sync
behaviour and MQTT settings. Loaded once from YAML with from_yaml() and
written back with to_yaml().
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml


@dataclass(frozen=True)
class DetectionConfig:
    """Region detector thresholds."""

    discontinuity_distance_m: float = 100_000.0
    discontinuity_window_s: float = 600.0
    failure_threshold: int = 3
    search_radii_deg: Tuple[float, ...] = (0.01, 0.02, 0.05)
    nearby_distance_m: float = 10_000.0
    nearby_window_s: float = 3600.0

    def __post_init__(self):
        """Validate detection configuration."""
        if self.discontinuity_distance_m <= 0:
            raise ValueError(
                f"discontinuity_distance_m must be positive, got {self.discontinuity_distance_m}"
            )
        if self.discontinuity_window_s <= 0:
            raise ValueError(
                f"discontinuity_window_s must be positive, got {self.discontinuity_window_s}"
            )
        if self.failure_threshold < 0:
            raise ValueError(
                f"failure_threshold must be >= 0, got {self.failure_threshold}"
            )
        if not self.search_radii_deg or any(r <= 0 for r in self.search_radii_deg):
            raise ValueError(
                f"search_radii_deg must be non-empty and positive, got {self.search_radii_deg}"
            )
        if self.nearby_distance_m <= 0 or self.nearby_window_s <= 0:
            raise ValueError("nearby_distance_m and nearby_window_s must be positive")


@dataclass(frozen=True)
class FixFilterConfig:
    """Fix quality thresholds (10,000 ft, 100 mph, 1 km)."""

    max_altitude_m: float = 3048.0
    max_speed_mps: float = 44.7
    max_accuracy_m: float = 1000.0

    def __post_init__(self):
        if self.max_speed_mps <= 0 or self.max_accuracy_m <= 0:
            raise ValueError("max_speed_mps and max_accuracy_m must be positive")


@dataclass(frozen=True)
class NotificationConfig:
    """Notification policy and cooldown."""

    notifications_enabled: bool = True
    notify_only_new_regions: bool = False
    cooldown_s: float = 300.0

    def __post_init__(self):
        if self.cooldown_s < 0:
            raise ValueError(f"cooldown_s must be >= 0, got {self.cooldown_s}")


@dataclass(frozen=True)
class SyncConfig:
    """
    Merge-sync behaviour.

    backend: "memory" (process-local remote) or "mqtt" (retained record on
    the broker from mqtt_config)
    """

    backend: str = "memory"
    record_id: str = "VisitedStates"
    operation_timeout_s: float = 10.0
    retry_delay_s: float = 5.0
    max_retries: int = 3
    max_conflict_rounds: int = 3
    initial_pull_retry_delay_s: float = 3.0

    def __post_init__(self):
        """Validate sync configuration."""
        valid_backends = {"memory", "mqtt"}
        if self.backend not in valid_backends:
            raise ValueError(
                f"Invalid sync backend: {self.backend}. "
                f"Must be one of {valid_backends}"
            )
        if not self.record_id:
            raise ValueError("record_id cannot be empty")
        if self.operation_timeout_s <= 0:
            raise ValueError(
                f"operation_timeout_s must be positive, got {self.operation_timeout_s}"
            )
        if self.retry_delay_s < 0 or self.initial_pull_retry_delay_s < 0:
            raise ValueError("retry delays must be >= 0")
        if self.max_retries < 0 or self.max_conflict_rounds < 0:
            raise ValueError("max_retries and max_conflict_rounds must be >= 0")


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""

    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 1

    # Publish region-entered notifications to the broker
    publish_events: bool = False
    event_topic_prefix: str = "statetrack/events"
    sync_topic_prefix: str = "statetrack/sync"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not self.broker:
            raise ValueError("MQTT broker cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )


@dataclass(frozen=True)
class TrackerConfig:
    """
    Main configuration for the region tracking service.

    Immutable after construction (frozen dataclass).
    """

    # Device identification
    device_id: str

    # Boundary dataset
    dataset_path: Path = Path("./data/regions_sample.geojson")
    name_property: str = "NAME"

    # Local storage file (None = in-memory)
    storage_path: Optional[Path] = None

    # Dispatch channel capacity
    event_queue_size: int = 512

    detection_config: DetectionConfig = field(default_factory=DetectionConfig)
    fix_filter_config: FixFilterConfig = field(default_factory=FixFilterConfig)
    notification_config: NotificationConfig = field(default_factory=NotificationConfig)
    sync_config: SyncConfig = field(default_factory=SyncConfig)
    mqtt_config: MQTTConfig = field(default_factory=MQTTConfig)

    def __post_init__(self):
        """Validate tracker configuration."""
        if not self.device_id:
            raise ValueError("device_id cannot be empty")

        if not self.name_property:
            raise ValueError("name_property cannot be empty")

        if not 1 <= self.event_queue_size <= 65536:
            raise ValueError(
                f"event_queue_size must be in [1, 65536], got {self.event_queue_size}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackerConfig":
        """
        Build from a plain dict (as produced by yaml.safe_load).

        Raises:
            ValueError: If a section is invalid or device_id is missing
        """
        if not isinstance(data, dict):
            raise ValueError("Tracker configuration must be a mapping")
        if "device_id" not in data:
            raise ValueError("Tracker configuration requires 'device_id'")

        detection_data = dict(data.get("detection_config") or {})
        if "search_radii_deg" in detection_data:
            detection_data["search_radii_deg"] = tuple(detection_data["search_radii_deg"])

        try:
            detection_config = DetectionConfig(**detection_data)
            fix_filter_config = FixFilterConfig(**(data.get("fix_filter_config") or {}))
            notification_config = NotificationConfig(**(data.get("notification_config") or {}))
            sync_config = SyncConfig(**(data.get("sync_config") or {}))
            mqtt_config = MQTTConfig(**(data.get("mqtt_config") or {}))
        except TypeError as e:
            raise ValueError(f"Unknown configuration key: {e}") from e

        storage_path = data.get("storage_path")

        return cls(
            device_id=str(data["device_id"]),
            dataset_path=Path(data.get("dataset_path", "./data/regions_sample.geojson")),
            name_property=data.get("name_property", "NAME"),
            storage_path=Path(storage_path) if storage_path else None,
            event_queue_size=data.get("event_queue_size", 512),
            detection_config=detection_config,
            fix_filter_config=fix_filter_config,
            notification_config=notification_config,
            sync_config=sync_config,
            mqtt_config=mqtt_config,
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "TrackerConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            device_id: "phone-01"
            dataset_path: "./data/regions_sample.geojson"
            storage_path: "./state/tracker.json"

            detection_config:
              discontinuity_distance_m: 100000
              search_radii_deg: [0.01, 0.02, 0.05]

            notification_config:
              notify_only_new_regions: true
              cooldown_s: 300

            sync_config:
              backend: "mqtt"
              record_id: "VisitedStates"

            mqtt_config:
              broker: "localhost"
              port: 1883
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict with YAML-friendly values (str paths, list tuples)."""
        data = asdict(self)
        data["dataset_path"] = str(self.dataset_path)
        data["storage_path"] = str(self.storage_path) if self.storage_path else None
        data["detection_config"]["search_radii_deg"] = list(
            self.detection_config.search_radii_deg
        )
        return data

    def to_yaml(self, yaml_path: Path) -> None:
        """Write configuration to YAML file (round-trips through from_yaml)."""
        with open(yaml_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
