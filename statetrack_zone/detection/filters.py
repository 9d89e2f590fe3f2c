"""
Fix quality filter applied before region detection.

Drops fixes that are almost certainly taken in flight or too imprecise to
place in a region. Missing optional fields never cause a rejection.
"""

import logging

from statetrack_zone.detection.state import GeoFix

logger = logging.getLogger(__name__)

# 10,000 ft
DEFAULT_MAX_ALTITUDE_M = 3048.0
# 100 mph
DEFAULT_MAX_SPEED_MPS = 44.7
DEFAULT_MAX_ACCURACY_M = 1000.0


class FixFilter:
    """
    Stateless accept/reject predicate for position fixes.

    Example:
        >>> fix_filter = FixFilter()
        >>> fix_filter.accept(GeoFix(39.0, -105.0, 0.0, altitude_m=11000.0))
        False
    """

    def __init__(
        self,
        max_altitude_m: float = DEFAULT_MAX_ALTITUDE_M,
        max_speed_mps: float = DEFAULT_MAX_SPEED_MPS,
        max_accuracy_m: float = DEFAULT_MAX_ACCURACY_M
    ):
        self.max_altitude_m = max_altitude_m
        self.max_speed_mps = max_speed_mps
        self.max_accuracy_m = max_accuracy_m

    def rejection_reason(self, fix: GeoFix):
        """Why the fix is rejected, or None if it is usable."""
        if fix.altitude_m is not None and fix.altitude_m > self.max_altitude_m:
            return f"altitude {fix.altitude_m:.0f} m above {self.max_altitude_m:.0f} m"
        if fix.speed_mps is not None and fix.speed_mps > self.max_speed_mps:
            return f"speed {fix.speed_mps:.1f} m/s above {self.max_speed_mps:.1f} m/s"
        if fix.accuracy_m is not None:
            if fix.accuracy_m < 0:
                return "invalid horizontal accuracy"
            if fix.accuracy_m > self.max_accuracy_m:
                return f"accuracy {fix.accuracy_m:.0f} m worse than {self.max_accuracy_m:.0f} m"
        return None

    def accept(self, fix: GeoFix) -> bool:
        reason = self.rejection_reason(fix)
        if reason is not None:
            logger.debug(f"Dropping fix at ({fix.latitude:.4f}, {fix.longitude:.4f}): {reason}")
            return False
        return True
