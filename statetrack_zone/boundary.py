"""
Boundary Index
==============

Bounded Context: Static region geometry

Loads the bundled polygon dataset once and answers two questions:
"which region contains this coordinate?" and "what is the bounding box of
region R?".

Design:
- Immutable after load: shared across threads without locking
- Injected into consumers (no process-wide singleton)
- Exact containment: no padding, no insetting, no rounded lookup cache
- Per-polygon bounding box prefilter before the ring test

Dataset format (GeoJSON FeatureCollection):

    {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"NAME": "Colorado"},
                "geometry": {"type": "Polygon", "coordinates": [[[lon, lat], ...]]}
            }
        ]
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from statetrack_zone.geometry.shapes import BoundingBox, RegionPolygon

logger = logging.getLogger(__name__)

FALLBACK_NAME_PROPERTY = "name"


class DatasetLoadError(Exception):
    """Boundary dataset missing, unreadable or malformed."""
    pass


def _parse_ring(raw_ring: Any, region: str) -> np.ndarray:
    """Convert a GeoJSON ring of [lon, lat] positions to an Nx2 (lat, lon) array."""
    try:
        positions = np.asarray(raw_ring, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise DatasetLoadError(f"Non-numeric coordinates for {region}: {e}") from e

    if positions.ndim != 2 or positions.shape[1] < 2:
        raise DatasetLoadError(
            f"Ring for {region} must be a list of [lon, lat] positions, "
            f"got shape {positions.shape}"
        )
    if not np.all(np.isfinite(positions[:, :2])):
        raise DatasetLoadError(f"Non-finite coordinates for {region}")

    ring = positions[:, [1, 0]]
    # GeoJSON rings repeat the first vertex at the end
    if len(ring) > 1 and np.array_equal(ring[0], ring[-1]):
        ring = ring[:-1]
    return ring


def _parse_polygon(raw_rings: Any, region: str) -> RegionPolygon:
    if not isinstance(raw_rings, list) or not raw_rings:
        raise DatasetLoadError(f"Polygon for {region} has no rings")
    rings = tuple(_parse_ring(raw_ring, region) for raw_ring in raw_rings)
    try:
        return RegionPolygon(region=region, rings=rings)
    except (TypeError, ValueError) as e:
        raise DatasetLoadError(f"Invalid polygon for {region}: {e}") from e


def _parse_geometry(geometry: Any, region: str) -> List[RegionPolygon]:
    if not isinstance(geometry, dict):
        raise DatasetLoadError(f"Feature {region} has no geometry")

    geometry_type = geometry.get('type')
    coordinates = geometry.get('coordinates')

    if geometry_type == 'Polygon':
        return [_parse_polygon(coordinates, region)]
    if geometry_type == 'MultiPolygon':
        if not isinstance(coordinates, list) or not coordinates:
            raise DatasetLoadError(f"MultiPolygon for {region} has no polygons")
        return [_parse_polygon(part, region) for part in coordinates]

    raise DatasetLoadError(
        f"Unsupported geometry type for {region}: {geometry_type!r}"
    )


class BoundaryIndex:
    """
    Immutable mapping from region identifier to its polygons.

    Attributes:
        regions: Region identifiers in dataset order

    Example:
        >>> index = BoundaryIndex.from_file("data/regions_sample.geojson")
        >>> index.region_containing(39.0, -105.5)
        'Colorado'
        >>> index.region_containing(0.0, 0.0) is None
        True
    """

    def __init__(self, polygons: Dict[str, Iterable[RegionPolygon]]):
        frozen: Dict[str, Tuple[RegionPolygon, ...]] = {}
        boxes: Dict[str, BoundingBox] = {}

        for region, region_polygons in polygons.items():
            region_polygons = tuple(region_polygons)
            if not region_polygons:
                raise ValueError(f"Region {region} has no polygons")

            box = region_polygons[0].bounding_box
            for polygon in region_polygons[1:]:
                box = box.union(polygon.bounding_box)

            frozen[region] = region_polygons
            boxes[region] = box

        self._polygons = frozen
        self._boxes = boxes

    @classmethod
    def load(
        cls,
        dataset: Union[bytes, str],
        name_property: str = "NAME"
    ) -> 'BoundaryIndex':
        """
        Parse a GeoJSON feature collection.

        Args:
            dataset: Raw dataset bytes (or already-decoded text)
            name_property: Feature property holding the region name

        Returns:
            BoundaryIndex

        Raises:
            DatasetLoadError: On any malformed input
        """
        try:
            document = json.loads(dataset)
        except (TypeError, ValueError) as e:
            raise DatasetLoadError(f"Boundary dataset is not valid JSON: {e}") from e

        if not isinstance(document, dict) or document.get('type') != 'FeatureCollection':
            raise DatasetLoadError("Boundary dataset must be a GeoJSON FeatureCollection")

        features = document.get('features')
        if not isinstance(features, list) or not features:
            raise DatasetLoadError("Boundary dataset contains no features")

        polygons: Dict[str, List[RegionPolygon]] = {}
        for position, feature in enumerate(features):
            if not isinstance(feature, dict):
                raise DatasetLoadError(f"Feature #{position} is not an object")

            properties = feature.get('properties') or {}
            if not isinstance(properties, dict):
                raise DatasetLoadError(f"Feature #{position} properties must be an object")
            region = properties.get(name_property) or properties.get(FALLBACK_NAME_PROPERTY)
            if not isinstance(region, str) or not region.strip():
                raise DatasetLoadError(
                    f"Feature #{position} has no '{name_property}' property"
                )
            region = region.strip()

            polygons.setdefault(region, []).extend(
                _parse_geometry(feature.get('geometry'), region)
            )

        index = cls(polygons)
        logger.info(
            f"Loaded boundary dataset: {len(index)} regions, "
            f"{sum(len(p) for p in polygons.values())} polygons"
        )
        return index

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        name_property: str = "NAME"
    ) -> 'BoundaryIndex':
        """
        Load the dataset from disk.

        Raises:
            DatasetLoadError: If the file is missing, unreadable or malformed
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise DatasetLoadError(f"Cannot read boundary dataset {path}: {e}") from e
        return cls.load(raw, name_property=name_property)

    @property
    def regions(self) -> Tuple[str, ...]:
        return tuple(self._polygons)

    def __contains__(self, region: object) -> bool:
        return region in self._polygons

    def __len__(self) -> int:
        return len(self._polygons)

    def polygons_of(self, region: str) -> Tuple[RegionPolygon, ...]:
        """Polygons of a region, empty for unknown identifiers."""
        return self._polygons.get(region, ())

    def region_containing(self, latitude: float, longitude: float) -> Optional[str]:
        """
        Region whose polygons contain the point, or None.

        A region with several polygons is hit if any of them contains the
        point. The first match in dataset order wins.
        """
        for region, region_polygons in self._polygons.items():
            if not self._boxes[region].contains(latitude, longitude):
                continue
            for polygon in region_polygons:
                if polygon.contains_point(latitude, longitude):
                    return region
        return None

    def bounding_box_of(self, region: str) -> Optional[BoundingBox]:
        """Union of the bounding boxes of all the region's polygons."""
        return self._boxes.get(region)

    def __repr__(self) -> str:
        return f"BoundaryIndex(regions={len(self)})"
