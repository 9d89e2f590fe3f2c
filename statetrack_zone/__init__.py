"""
statetrack Zone
===============

Bounded Context: Region detection for position fixes.

Architecture:

    statetrack_zone/
    ├── geometry/          # Pure geometry (immutable, stateless)
    │   ├── shapes.py      # BoundingBox, RegionPolygon, ray casting
    │   └── geodesy.py     # haversine distance, offset grid
    │
    ├── boundary.py        # BoundaryIndex (dataset load + containment)
    │
    └── detection/         # Fix stream -> region changes (stateful)
        ├── state.py       # GeoFix, RegionChangeEvent, DetectionState
        ├── filters.py     # FixFilter
        └── detector.py    # RegionDetector

Usage:

    from statetrack_zone import BoundaryIndex, RegionDetector, GeoFix

    index = BoundaryIndex.from_file("data/regions_sample.geojson")
    detector = RegionDetector(index)

    event = detector.observe(GeoFix(latitude=39.0, longitude=-105.5, timestamp=0.0))
    if event:
        print(event.region)
"""

# Geometry Layer (immutable, stateless)
from statetrack_zone.geometry.shapes import BoundingBox, RegionPolygon
from statetrack_zone.geometry.geodesy import haversine_m

# Boundary dataset
from statetrack_zone.boundary import BoundaryIndex, DatasetLoadError

# Detection Layer (stateful)
from statetrack_zone.detection import (
    DetectionMethod,
    DetectionState,
    FixFilter,
    GeoFix,
    RegionChangeEvent,
    RegionDetector,
)

__all__ = [
    'BoundingBox',
    'RegionPolygon',
    'haversine_m',
    'BoundaryIndex',
    'DatasetLoadError',
    'GeoFix',
    'RegionChangeEvent',
    'DetectionMethod',
    'DetectionState',
    'FixFilter',
    'RegionDetector',
]

__version__ = '1.0.0'
