"""
Detection Layer - Fix stream to region-change stream (stateful).
"""

from statetrack_zone.detection.state import (
    DetectionMethod,
    DetectionState,
    GeoFix,
    RegionChangeEvent,
)
from statetrack_zone.detection.filters import FixFilter
from statetrack_zone.detection.detector import RegionDetector

__all__ = [
    'GeoFix',
    'RegionChangeEvent',
    'DetectionMethod',
    'DetectionState',
    'FixFilter',
    'RegionDetector',
]
