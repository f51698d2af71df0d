"""Geographic coordinate utilities.

Points are ``(latitude, longitude)`` in decimal degrees; distances are in
metres on a spherical Earth.
"""

from .geo_point import (
    EARTH_RADIUS_M,
    METERS_PER_DEGREE,
    GeoPoint,
    LocalFrame,
    heading_difference,
    normalize_heading,
)
from .survey_area import BoundingBox, SurveyArea

__all__ = [
    "EARTH_RADIUS_M",
    "METERS_PER_DEGREE",
    "BoundingBox",
    "GeoPoint",
    "LocalFrame",
    "SurveyArea",
    "heading_difference",
    "normalize_heading",
]
