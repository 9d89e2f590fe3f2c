"""
statetrack_processor - Region tracking service

This package wires position fixes through region detection, notification
gating, local persistence and remote sync.

Architecture:
- RegionTrackingService: Main orchestrator
- TrackerConfig: Configuration management (YAML)

Threading Model:
- Caller Thread (position source, calls observe)
- Dispatch Thread (our thread for gate, store and push requests)
- Sync threads (MergeSyncEngine internal)
"""

from statetrack_processor.config import (
    DetectionConfig,
    FixFilterConfig,
    MQTTConfig,
    NotificationConfig,
    SyncConfig,
    TrackerConfig,
)
from statetrack_processor.service import RegionTrackingService

__all__ = [
    "TrackerConfig",
    "DetectionConfig",
    "FixFilterConfig",
    "NotificationConfig",
    "SyncConfig",
    "MQTTConfig",
    "RegionTrackingService",
]
