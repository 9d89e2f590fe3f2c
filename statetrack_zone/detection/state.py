"""
Detection Value Objects
=======================

Position fixes, region-change events and the detector state snapshot.

Design:
- Frozen dataclasses (thread-safe read)
- DetectionState is a snapshot: the detector keeps its own mutable copy
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class GeoFix:
    """
    One reported position sample.

    Attributes:
        latitude: Decimal degrees in [-90, 90]
        longitude: Decimal degrees in [-180, 180]
        timestamp: Unix epoch seconds
        accuracy_m: Horizontal accuracy radius (optional)
        speed_mps: Ground speed, negative when unknown (optional)
        altitude_m: Altitude above sea level (optional)
    """

    latitude: float
    longitude: float
    timestamp: float
    accuracy_m: Optional[float] = None
    speed_mps: Optional[float] = None
    altitude_m: Optional[float] = None

    def __post_init__(self):
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(f"Latitude must be in [-90, 90], got {self.latitude}")
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(f"Longitude must be in [-180, 180], got {self.longitude}")

    @property
    def coordinate(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


class DetectionMethod(str, Enum):
    """Resolution path that produced a region."""
    PRIMARY = "primary"
    DISCONTINUITY_CONFIRMED = "discontinuity_confirmed"
    EXPANDED_SEARCH = "expanded_search"
    RECENT_NEARBY = "recent_nearby"


@dataclass(frozen=True)
class RegionChangeEvent:
    """Emitted when the resolved region differs from the last confirmed one."""

    region: str
    fix: GeoFix
    method: DetectionMethod = DetectionMethod.PRIMARY

    def __str__(self) -> str:
        return f"{self.region} ({self.method.value})"


@dataclass(frozen=True)
class DetectionState:
    """
    Immutable snapshot of the detector's state.

    Attributes:
        last_confirmed_region: Region of the last emitted event (or restored)
        last_fix_by_region: Last fix resolved into each region
        pending_discontinuity: Candidate region -> time first suspected
        consecutive_failures: Fixes in a row that resolved to nothing
    """

    last_confirmed_region: Optional[str] = None
    last_fix_by_region: Dict[str, GeoFix] = field(default_factory=dict)
    pending_discontinuity: Dict[str, float] = field(default_factory=dict)
    consecutive_failures: int = 0
