"""
Region Detector
===============

Stateful transformation from a stream of position fixes to a stream of
deduplicated region-change events.

Resolution order (first success wins):

    1. Primary containment        BoundaryIndex.region_containing(fix)
    2. Discontinuity (long jump)  hold a far-away region as a pending
                                  candidate until a second fix confirms it
    3. Expanded spatial search    3x3 offset grid at ~1, 2, 5 km
    4. Recent-nearby fallback     closest region seen within 10 km / 1 h
    5. Nothing                    consecutive-failure counter increments

Steps 3 and 4 only run once the counter already holds
``failure_threshold`` primary misses.

Design:
- Single-writer: callers serialise observe() (the service holds a lock)
- No notification or persistence knowledge
- All thresholds are constructor parameters
- Time comes from fix timestamps, never the wall clock
"""

import logging
from typing import Dict, Optional, Sequence

from statetrack_zone.boundary import BoundaryIndex
from statetrack_zone.detection.state import (
    DetectionMethod,
    DetectionState,
    GeoFix,
    RegionChangeEvent,
)
from statetrack_zone.geometry.geodesy import (
    DEFAULT_SEARCH_RADII_DEG,
    haversine_m,
    offset_grid,
)

logger = logging.getLogger(__name__)


class RegionDetector:
    """
    Resolves fixes to regions and emits an event on every region change.

    Usage:
        detector = RegionDetector(boundary_index)
        detector.restore("Colorado")      # last visited region at launch

        event = detector.observe(fix)
        if event is not None:
            print(f"Entered {event.region}")
    """

    def __init__(
        self,
        boundary_index: BoundaryIndex,
        discontinuity_distance_m: float = 100_000.0,
        discontinuity_window_s: float = 600.0,
        failure_threshold: int = 3,
        search_radii_deg: Sequence[float] = DEFAULT_SEARCH_RADII_DEG,
        nearby_distance_m: float = 10_000.0,
        nearby_window_s: float = 3600.0
    ):
        """
        Args:
            boundary_index: Immutable region geometry
            discontinuity_distance_m: Jump length that needs confirmation
            discontinuity_window_s: Lifetime of an unconfirmed candidate
            failure_threshold: Primary misses before fallbacks engage
            search_radii_deg: Expanded-search grid radii, increasing
            nearby_distance_m: Recent-nearby search radius
            nearby_window_s: Recent-nearby history age limit
        """
        if failure_threshold < 0:
            raise ValueError(f"failure_threshold must be >= 0, got {failure_threshold}")

        self.boundary_index = boundary_index
        self.discontinuity_distance_m = discontinuity_distance_m
        self.discontinuity_window_s = discontinuity_window_s
        self.failure_threshold = failure_threshold
        self.search_radii_deg = tuple(sorted(search_radii_deg))
        self.nearby_distance_m = nearby_distance_m
        self.nearby_window_s = nearby_window_s

        self._last_confirmed: Optional[str] = None
        self._last_fix_by_region: Dict[str, GeoFix] = {}
        self._pending: Dict[str, float] = {}
        self._failures = 0

    @property
    def state(self) -> DetectionState:
        """Immutable snapshot of the current state."""
        return DetectionState(
            last_confirmed_region=self._last_confirmed,
            last_fix_by_region=dict(self._last_fix_by_region),
            pending_discontinuity=dict(self._pending),
            consecutive_failures=self._failures
        )

    @property
    def last_confirmed_region(self) -> Optional[str]:
        return self._last_confirmed

    def restore(self, region: Optional[str]) -> None:
        """Seed the last confirmed region (launch-time rebuild)."""
        self._last_confirmed = region
        logger.info(f"Detector restored with last confirmed region: {region}")

    def reset(self) -> None:
        self._last_confirmed = None
        self._last_fix_by_region.clear()
        self._pending.clear()
        self._failures = 0

    def observe(self, fix: GeoFix) -> Optional[RegionChangeEvent]:
        """
        Resolve one fix.

        Returns:
            RegionChangeEvent if the resolved region differs from the last
            confirmed one, None otherwise
        """
        self._expire_candidates(fix.timestamp)

        region = self.boundary_index.region_containing(fix.latitude, fix.longitude)
        if region is not None:
            self._failures = 0
            return self._resolve_primary(region, fix)

        if self._failures >= self.failure_threshold:
            region = self._expanded_search(fix)
            if region is not None:
                self._failures = 0
                return self._confirm(region, fix, DetectionMethod.EXPANDED_SEARCH)

            region = self._recent_nearby(fix)
            if region is not None:
                self._failures = 0
                return self._confirm(region, fix, DetectionMethod.RECENT_NEARBY)

        self._failures += 1
        logger.debug(
            f"No region for ({fix.latitude:.5f}, {fix.longitude:.5f}), "
            f"consecutive failures: {self._failures}"
        )
        return None

    def _resolve_primary(self, region: str, fix: GeoFix) -> Optional[RegionChangeEvent]:
        last = self._last_confirmed
        if last is None or region == last:
            return self._confirm(region, fix, DetectionMethod.PRIMARY)

        if region in self._pending:
            del self._pending[region]
            logger.info(f"Discontinuity into {region} confirmed")
            return self._confirm(region, fix, DetectionMethod.DISCONTINUITY_CONFIRMED)

        anchor = self._last_fix_by_region.get(last)
        if anchor is not None:
            distance = haversine_m(
                anchor.latitude, anchor.longitude, fix.latitude, fix.longitude
            )
            if distance > self.discontinuity_distance_m:
                self._pending[region] = fix.timestamp
                logger.info(
                    f"Possible discontinuity {last} -> {region} "
                    f"({distance / 1000.0:.0f} km), awaiting confirmation"
                )
                return None

        return self._confirm(region, fix, DetectionMethod.PRIMARY)

    def _expanded_search(self, fix: GeoFix) -> Optional[str]:
        for lat, lon in offset_grid(fix.latitude, fix.longitude, self.search_radii_deg):
            region = self.boundary_index.region_containing(lat, lon)
            if region is not None:
                logger.debug(f"Expanded search hit {region} at ({lat:.5f}, {lon:.5f})")
                return region
        return None

    def _recent_nearby(self, fix: GeoFix) -> Optional[str]:
        best_region = None
        best_distance = None
        for region, previous in self._last_fix_by_region.items():
            if fix.timestamp - previous.timestamp > self.nearby_window_s:
                continue
            distance = haversine_m(
                previous.latitude, previous.longitude, fix.latitude, fix.longitude
            )
            if distance > self.nearby_distance_m:
                continue
            if best_distance is None or distance < best_distance:
                best_region, best_distance = region, distance
        return best_region

    def _confirm(
        self,
        region: str,
        fix: GeoFix,
        method: DetectionMethod
    ) -> Optional[RegionChangeEvent]:
        self._last_fix_by_region[region] = fix
        if region == self._last_confirmed:
            return None

        previous = self._last_confirmed
        self._last_confirmed = region
        logger.info(f"Region changed {previous} -> {region} via {method.value}")
        return RegionChangeEvent(region=region, fix=fix, method=method)

    def _expire_candidates(self, now: float) -> None:
        expired = [
            region for region, since in self._pending.items()
            if now - since > self.discontinuity_window_s
        ]
        for region in expired:
            del self._pending[region]
            logger.info(f"Discarding unconfirmed discontinuity candidate {region}")
