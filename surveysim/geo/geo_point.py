"""Geographic points and spherical geodesics.

Every coordinate inside surveysim is a ``(latitude, longitude)`` pair in
decimal degrees. Distances, bearings and forward projections are computed
on a sphere of radius ``EARTH_RADIUS_M`` through ``pyproj.Geod``, so the
results match the haversine and spherical destination-point formulas.
"""

from dataclasses import dataclass
import math

import numpy as np
from pyproj import Geod

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0

_SPHERE = Geod(a=EARTH_RADIUS_M, b=EARTH_RADIUS_M)


def normalize_heading(azimuth: float) -> float:
    """Map an azimuth in degrees into ``[0, 360)``."""
    heading = azimuth % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if heading >= 360.0 else heading


def heading_difference(a: float, b: float) -> float:
    """Smallest absolute angle between two headings, in ``[0, 180]``."""
    diff = abs(a - b) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


@dataclass(frozen=True)
class GeoPoint:
    """A position on the Earth's surface.

    Instances are immutable; movement produces a new point, which keeps
    dynamics snapshots comparable with ``==``.

    Attributes:
        latitude: Latitude in decimal degrees, positive north.
        longitude: Longitude in decimal degrees, positive east.

    Example:
        >>> a = GeoPoint(37.7749, -122.4194)
        >>> b = a.forward(90.0, 100.0)
        >>> round(a.distance_to(b), 6)
        100.0
    """

    latitude: float
    longitude: float

    @classmethod
    def from_lng_lat(cls, position) -> "GeoPoint":
        """Build a point from a GeoJSON ``[lng, lat, ...]`` position."""
        return cls(float(position[1]), float(position[0]))

    def is_finite(self) -> bool:
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)

    def as_tuple(self) -> tuple[float, float]:
        return self.latitude, self.longitude

    def _inverse(self, other: "GeoPoint") -> tuple[float, float]:
        az12, _az21, dist = _SPHERE.inv(
            self.longitude, self.latitude, other.longitude, other.latitude
        )
        return az12, dist

    def distance_to(self, other: "GeoPoint") -> float:
        """Great-circle distance to ``other`` in metres."""
        return self._inverse(other)[1]

    def heading_to(self, other: "GeoPoint") -> float:
        """Initial great-circle bearing to ``other`` in degrees ``[0, 360)``."""
        return normalize_heading(self._inverse(other)[0])

    def bearing_and_distance(self, other: "GeoPoint") -> tuple[float, float]:
        """Return ``(bearing, distance)`` to ``other`` with a single inverse solve."""
        az12, dist = self._inverse(other)
        return normalize_heading(az12), dist

    def forward(self, azimuth: float, distance: float) -> "GeoPoint":
        """Point reached by travelling ``distance`` metres along ``azimuth``.

        Args:
            azimuth: Bearing from true north in degrees.
            distance: Distance along the great circle in metres.

        Returns:
            GeoPoint: The destination point.
        """
        lon, lat, _back = _SPHERE.fwd(self.longitude, self.latitude, azimuth, distance)
        return GeoPoint(lat, lon)


class LocalFrame:
    """Equirectangular east/north frame in metres around an origin.

    Used for planar geometry (line clipping, offsets) over areas small
    enough that the flat approximation is well under a metre off.
    """

    def __init__(self, origin: GeoPoint):
        self.origin = origin
        self._lng_scale = METERS_PER_DEGREE * math.cos(math.radians(origin.latitude))

    def to_xy(self, lat, lng):
        """Project latitude/longitude (scalars or arrays) to ``(east, north)`` metres."""
        x = (np.asarray(lng, dtype=float) - self.origin.longitude) * self._lng_scale
        y = (np.asarray(lat, dtype=float) - self.origin.latitude) * METERS_PER_DEGREE
        return x, y

    def to_latlng(self, x, y):
        """Inverse of :meth:`to_xy`."""
        lat = self.origin.latitude + np.asarray(y, dtype=float) / METERS_PER_DEGREE
        lng = self.origin.longitude + np.asarray(x, dtype=float) / self._lng_scale
        return lat, lng

    def meters_to_lng_degrees(self, meters: float) -> float:
        return meters / self._lng_scale
