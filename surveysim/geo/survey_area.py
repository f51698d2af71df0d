"""Survey polygons and their bounding boxes.

``SurveyArea.from_geojson`` is the only place where GeoJSON ``[lng, lat]``
positions are read; everything downstream sees ``(lat, lng)`` pairs.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
import logging
import math

from shapely.geometry import Polygon
from shapely.validation import explain_validity

from surveysim.exceptions import ConfigurationError

from .geo_point import GeoPoint

logger = logging.getLogger(__name__)

MAX_LATITUDE = 90.0
MAX_LONGITUDE = 180.0


def in_geographic_range(lat: float, lng: float) -> bool:
    """True for a finite ``(lat, lng)`` inside [-90, 90] x [-180, 180]."""
    return abs(lat) <= MAX_LATITUDE and abs(lng) <= MAX_LONGITUDE


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned latitude/longitude box."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @property
    def center(self) -> GeoPoint:
        return GeoPoint((self.min_lat + self.max_lat) / 2.0, (self.min_lng + self.max_lng) / 2.0)

    @property
    def corners(self) -> tuple[GeoPoint, GeoPoint, GeoPoint, GeoPoint]:
        """South-west, south-east, north-east, north-west."""
        return (
            GeoPoint(self.min_lat, self.min_lng),
            GeoPoint(self.min_lat, self.max_lng),
            GeoPoint(self.max_lat, self.max_lng),
            GeoPoint(self.max_lat, self.min_lng),
        )

    def contains(self, point: GeoPoint, epsilon: float = 0.0) -> bool:
        return (
            self.min_lat - epsilon <= point.latitude <= self.max_lat + epsilon
            and self.min_lng - epsilon <= point.longitude <= self.max_lng + epsilon
        )


@dataclass(frozen=True)
class SurveyArea:
    """Closed ring of ``(lat, lng)`` vertices bounding the area to cover.

    The ring is stored closed (first vertex repeated at the end). Non-finite
    or degenerate rings can be represented; path generation checks
    :meth:`is_usable` and yields an empty path for them.

    Attributes:
        ring: Vertices in traversal order, closed.
    """

    ring: tuple[tuple[float, float], ...]

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "SurveyArea":
        """Build an area from ``(lat, lng)`` pairs, closing the ring if needed."""
        ring = [(float(p[0]), float(p[1])) for p in points]
        if ring and ring[0] != ring[-1]:
            ring.append(ring[0])
        return cls(tuple(ring))

    @classmethod
    def from_geojson(cls, geometry: Mapping) -> "SurveyArea":
        """Parse a GeoJSON ``Polygon`` (or a ``Feature`` wrapping one).

        Only the exterior ring is used; holes are ignored.

        Raises:
            ConfigurationError: If the object is not a polygon or its
                coordinates are not ``[lng, lat]`` number pairs.
        """
        if not isinstance(geometry, Mapping):
            msg = "Survey area must be a GeoJSON object"
            raise ConfigurationError(msg)
        if geometry.get("type") == "Feature":
            geometry = geometry.get("geometry") or {}
        if geometry.get("type") != "Polygon":
            msg = f"Survey area must be a GeoJSON Polygon, got {geometry.get('type')!r}"
            raise ConfigurationError(msg)

        rings = geometry.get("coordinates")
        if not rings or not isinstance(rings, Sequence):
            msg = "Survey area polygon has no coordinates"
            raise ConfigurationError(msg)

        try:
            points = [(float(pos[1]), float(pos[0])) for pos in rings[0]]
        except (TypeError, ValueError, IndexError) as e:
            msg = f"Malformed survey area coordinates: {e}"
            raise ConfigurationError(msg) from e

        for lat, lng in points:
            if math.isfinite(lat) and math.isfinite(lng) and not in_geographic_range(lat, lng):
                msg = f"Survey area vertex [{lng}, {lat}] is outside the valid longitude/latitude range"
                raise ConfigurationError(msg)

        return cls.from_points(points)

    def to_geojson(self) -> dict:
        return {
            "type": "Polygon",
            "coordinates": [[[lng, lat] for lat, lng in self.ring]],
        }

    @property
    def vertices(self) -> tuple[tuple[float, float], ...]:
        """Ring vertices without the closing repeat."""
        if len(self.ring) > 1 and self.ring[0] == self.ring[-1]:
            return self.ring[:-1]
        return self.ring

    def is_finite(self) -> bool:
        return all(math.isfinite(lat) and math.isfinite(lng) for lat, lng in self.ring)

    def in_range(self) -> bool:
        """True when every vertex is a valid latitude/longitude pair."""
        return all(in_geographic_range(lat, lng) for lat, lng in self.ring)

    def is_usable(self) -> bool:
        """True when the ring is finite, in range and has at least three distinct vertices.

        Returns:
            bool: False for anything a coverage path cannot be generated over.
        """
        return self.is_finite() and self.in_range() and len(set(self.vertices)) >= 3

    def bounding_box(self) -> BoundingBox:
        lats = [lat for lat, _ in self.ring]
        lngs = [lng for _, lng in self.ring]
        return BoundingBox(min(lats), min(lngs), max(lats), max(lngs))

    def _polygon(self) -> Polygon:
        # shapely works in x/y, i.e. (lng, lat)
        return Polygon([(lng, lat) for lat, lng in self.ring])

    def centroid(self) -> GeoPoint:
        """Area-weighted centroid, or the box centre for a zero-area ring."""
        polygon = self._polygon()
        if polygon.area == 0:
            return self.bounding_box().center
        c = polygon.centroid
        return GeoPoint(c.y, c.x)

    def is_simple(self) -> bool:
        polygon = self._polygon()
        if not polygon.is_valid:
            logger.debug("Survey area is not a simple polygon: %s", explain_validity(polygon))
            return False
        return True
