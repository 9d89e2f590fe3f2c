"""
Geometric Shapes Module
========================

Pure geometric representations - NO state, NO side effects.

Design:
- Immutable shapes (frozen dataclass pattern)
- Even-odd ray casting vectorised with numpy (exact, no rasterisation)
- Bounding-box prefilter before the ring test
- Thread-safe (immutable)

Coordinates are (latitude, longitude) in decimal degrees throughout.
"""

import numpy as np
from dataclasses import dataclass
from typing import Sequence, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned latitude/longitude rectangle.

    Attributes:
        min_lat, min_lon, max_lat, max_lon: Inclusive bounds in degrees
    """

    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    def __post_init__(self):
        if self.min_lat > self.max_lat or self.min_lon > self.max_lon:
            raise ValueError(f"Inverted bounding box: {self}")

    @classmethod
    def of_ring(cls, ring: np.ndarray) -> 'BoundingBox':
        """Smallest box around an Nx2 (lat, lon) array."""
        mins = ring.min(axis=0)
        maxs = ring.max(axis=0)
        return cls(
            min_lat=float(mins[0]),
            min_lon=float(mins[1]),
            max_lat=float(maxs[0]),
            max_lon=float(maxs[1])
        )

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_lat <= latitude <= self.max_lat
            and self.min_lon <= longitude <= self.max_lon
        )

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        return BoundingBox(
            min_lat=min(self.min_lat, other.min_lat),
            min_lon=min(self.min_lon, other.min_lon),
            max_lat=max(self.max_lat, other.max_lat),
            max_lon=max(self.max_lon, other.max_lon)
        )

    @property
    def center(self) -> Tuple[float, float]:
        return (
            (self.min_lat + self.max_lat) / 2.0,
            (self.min_lon + self.max_lon) / 2.0
        )


def ring_contains(ring: np.ndarray, latitude: float, longitude: float) -> bool:
    """
    Even-odd ray casting test of one closed ring.

    Casts a ray from the point towards increasing longitude and counts the
    edges it crosses. The ring is implicitly closed (last vertex connects to
    the first).

    Args:
        ring: Nx2 array of (lat, lon) vertices
        latitude, longitude: Point to test

    Returns:
        True if the crossing count is odd
    """
    lat = ring[:, 0]
    lon = ring[:, 1]
    lat_prev = np.roll(lat, 1)
    lon_prev = np.roll(lon, 1)

    straddles = (lat > latitude) != (lat_prev > latitude)
    # Edges that do not straddle produce inf/nan here and are masked out below
    with np.errstate(divide='ignore', invalid='ignore'):
        crossing_lon = (lon_prev - lon) * (latitude - lat) / (lat_prev - lat) + lon

    crossings = np.count_nonzero(straddles & (longitude < crossing_lon))
    return crossings % 2 == 1


@dataclass(frozen=True, eq=False)
class RegionPolygon:
    """
    Immutable polygon tagged with its region identifier.

    The first ring is the outer boundary; any further rings are holes.
    Parity is accumulated across all rings, so a point inside a hole is
    outside the polygon.

    Attributes:
        region: Region identifier (full region name)
        rings: Tuple of read-only Nx2 arrays of (lat, lon) vertices
    """

    region: str
    rings: Tuple[np.ndarray, ...]

    def __post_init__(self):
        """Validate rings, freeze arrays and precompute the bounding box."""
        if not self.region:
            raise ValueError("Polygon region identifier cannot be empty")
        if len(self.rings) == 0:
            raise ValueError(f"Polygon for {self.region} has no rings")

        frozen = []
        for ring in self.rings:
            if not isinstance(ring, np.ndarray):
                raise TypeError(f"rings must be np.ndarray, got {type(ring)}")
            if ring.ndim != 2 or ring.shape[1] != 2:
                raise ValueError(f"Ring must be Nx2 array, got shape {ring.shape}")
            if len(np.unique(ring, axis=0)) < 3:
                raise ValueError(
                    f"Ring for {self.region} must have at least 3 distinct vertices"
                )
            ring = ring.astype(np.float64, copy=True)
            ring.flags.writeable = False
            frozen.append(ring)

        object.__setattr__(self, 'rings', tuple(frozen))
        object.__setattr__(self, '_bbox', BoundingBox.of_ring(frozen[0]))

    @classmethod
    def from_rings(
        cls,
        region: str,
        rings: Sequence[Sequence[Tuple[float, float]]]
    ) -> 'RegionPolygon':
        """Build from plain (lat, lon) sequences."""
        return cls(
            region=region,
            rings=tuple(np.asarray(ring, dtype=np.float64) for ring in rings)
        )

    @property
    def outer(self) -> np.ndarray:
        return self.rings[0]

    @property
    def holes(self) -> Tuple[np.ndarray, ...]:
        return self.rings[1:]

    @property
    def bounding_box(self) -> BoundingBox:
        return self._bbox

    def contains_point(self, latitude: float, longitude: float) -> bool:
        """
        Exact point-in-polygon test.

        Args:
            latitude, longitude: Point in decimal degrees

        Returns:
            True if the point is inside the outer ring and not inside a hole
        """
        if not self._bbox.contains(latitude, longitude):
            return False

        inside = False
        for ring in self.rings:
            if ring_contains(ring, latitude, longitude):
                inside = not inside
        return inside
