"""
Geometry Layer - Pure geometric shapes and containment logic.

Immutable, stateless, thread-safe.
"""

from statetrack_zone.geometry.shapes import BoundingBox, RegionPolygon, ring_contains
from statetrack_zone.geometry.geodesy import (
    DEFAULT_SEARCH_RADII_DEG,
    EARTH_RADIUS_M,
    haversine_m,
    offset_grid,
)

__all__ = [
    'BoundingBox',
    'RegionPolygon',
    'ring_contains',
    'haversine_m',
    'offset_grid',
    'EARTH_RADIUS_M',
    'DEFAULT_SEARCH_RADII_DEG',
]
