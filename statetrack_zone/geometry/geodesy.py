"""
Geodesy helpers: great-circle distance and the offset grid used by the
expanded spatial search.
"""

import math
from typing import Iterator, Sequence, Tuple

EARTH_RADIUS_M = 6_371_000.0

# Grid radii in degrees (~1 km, 2 km, 5 km)
DEFAULT_SEARCH_RADII_DEG = (0.01, 0.02, 0.05)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two (lat, lon) points in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)

    s = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(s)))


def offset_grid(
    latitude: float,
    longitude: float,
    radii: Sequence[float] = DEFAULT_SEARCH_RADII_DEG
) -> Iterator[Tuple[float, float]]:
    """
    Yield sample points of a 3x3 grid around a point, centre skipped,
    for each radius in increasing order.

    Row-major order per radius: south-west first, north-east last.
    Points that fall off the globe are skipped.
    """
    for radius in radii:
        for dlat in (-radius, 0.0, radius):
            for dlon in (-radius, 0.0, radius):
                if dlat == 0.0 and dlon == 0.0:
                    continue
                lat = latitude + dlat
                lon = longitude + dlon
                if -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0:
                    yield lat, lon
