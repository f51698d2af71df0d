"""Coverage path synthesis over a survey area.

Generation is a pure function of the area, the pattern and the
parameters. An unusable area (fewer than three distinct vertices, or any
non-finite coordinate) yields an empty ``FlightPath`` rather than an
exception; callers treat an empty path as "cannot simulate".

Sweep patterns work on the area's bounding box:

* Grid: boustrophedon rows from the south-west corner northward.
* Crosshatch: Grid, then columns from the west edge eastward.
* Hatch: parallel lines at a fixed angle, clipped to the box.

Perimeter follows the ring itself, shrinking each further lap toward the
centroid. Waypoint returns the ring vertices unchanged.
"""

from collections.abc import Callable
import logging
import math

import numpy as np

from surveysim.geo import METERS_PER_DEGREE, BoundingBox, GeoPoint, LocalFrame, SurveyArea

from .pattern import FlightPattern, PathParameters
from .waypoint import FlightPath

logger = logging.getLogger(__name__)

Line = tuple[GeoPoint, GeoPoint]

_DESCRIPTIONS = {
    FlightPattern.GRID: "Parallel lines in a lawn-mower pattern for systematic coverage",
    FlightPattern.CROSSHATCH: "Two perpendicular grid passes for denser coverage",
    FlightPattern.PERIMETER: "Laps around the boundary, spiralling inward",
    FlightPattern.HATCH: "Diagonal lines at a fixed angle across the area",
    FlightPattern.WAYPOINT: "Direct navigation between the boundary vertices",
}

# Turns are only rounded inside this fraction of a line's length.
_MAX_TURN_FRACTION = 0.25


def _sweep_positions(low: float, high: float, step: float) -> np.ndarray:
    """Positions ``low, low + step, ...`` not exceeding ``high``."""
    positions = np.arange(low, high + step * 1e-9, step)
    if positions.size == 0:
        positions = np.array([low])
    return np.minimum(positions, high)


def _lerp(a: GeoPoint, b: GeoPoint, t: float) -> GeoPoint:
    return GeoPoint(
        a.latitude + (b.latitude - a.latitude) * t,
        a.longitude + (b.longitude - a.longitude) * t,
    )


def _bezier(p0: GeoPoint, p1: GeoPoint, p2: GeoPoint, count: int) -> list[GeoPoint]:
    """Interior points of the quadratic Bezier ``p0 -> p2`` with control ``p1``."""
    t = np.linspace(0.0, 1.0, count + 2)[1:-1]
    u = 1.0 - t
    lat = u * u * p0.latitude + 2 * u * t * p1.latitude + t * t * p2.latitude
    lng = u * u * p0.longitude + 2 * u * t * p1.longitude + t * t * p2.longitude
    return [GeoPoint(float(a), float(b)) for a, b in zip(lat, lng)]


def _clip_to_box(points: list[GeoPoint], box: BoundingBox) -> list[GeoPoint]:
    return [
        GeoPoint(
            min(max(p.latitude, box.min_lat), box.max_lat),
            min(max(p.longitude, box.min_lng), box.max_lng),
        )
        for p in points
    ]


def _dedupe(points: list[GeoPoint]) -> list[GeoPoint]:
    result: list[GeoPoint] = []
    for p in points:
        if not result or result[-1] != p:
            result.append(p)
    return result


class PathGenerator:
    """Turns a survey area and a flight pattern into an ordered flight path.

    Example:
        >>> area = SurveyArea.from_points([(0.0, 0.0), (0.0, 0.001), (0.001, 0.001), (0.001, 0.0)])
        >>> path = PathGenerator().generate(area, FlightPattern.GRID)
        >>> path[0].as_tuple()
        (0.0, 0.0)
    """

    def __init__(self, params: PathParameters | None = None):
        self.params = params or PathParameters()
        self._generators: dict[
            FlightPattern, Callable[[SurveyArea, PathParameters], list[GeoPoint]]
        ] = {
            FlightPattern.GRID: self._grid,
            FlightPattern.CROSSHATCH: self._crosshatch,
            FlightPattern.PERIMETER: self._perimeter,
            FlightPattern.HATCH: self._hatch,
            FlightPattern.WAYPOINT: self._waypoint,
        }

    @staticmethod
    def describe(pattern: FlightPattern) -> str:
        return _DESCRIPTIONS[pattern]

    def generate(
        self,
        area: SurveyArea,
        pattern: FlightPattern,
        params: PathParameters | None = None,
    ) -> FlightPath:
        """Generate the flight path for ``area``.

        Args:
            area: Survey polygon.
            pattern: Coverage strategy.
            params: Overrides the generator's default parameters.

        Returns:
            FlightPath: Ordered waypoints, empty if the area is unusable.
        """
        params = params or self.params
        if not area.is_usable():
            logger.warning(
                "Survey area unusable for path generation (%d ring points, finite=%s)",
                len(area.ring),
                area.is_finite(),
            )
            return FlightPath()
        if not area.is_simple():
            logger.warning("Survey area ring self-intersects; sweeping its bounding box anyway")

        points = _dedupe(self._generators[pattern](area, params))
        if not all(p.is_finite() for p in points):
            logger.warning("Discarding %s path with non-finite coordinates", pattern.value)
            return FlightPath()

        logger.debug("Generated %d waypoints for %s pattern", len(points), pattern.value)
        return FlightPath.from_points(points)

    def _connect(self, lines: list[Line], params: PathParameters) -> list[GeoPoint]:
        """Chain sweep lines into one point list, rounding the turns between them."""
        if not params.smoothing or params.turn_points == 0 or len(lines) < 2:
            return [p for line in lines for p in line]

        radius = params.spacing_m / 2.0
        trimmed: list[Line] = []
        for i, (start, end) in enumerate(lines):
            length = start.distance_to(end)
            frac = min(_MAX_TURN_FRACTION, radius / length) if length > 0 else 0.0
            new_start = start if i == 0 else _lerp(start, end, frac)
            new_end = end if i == len(lines) - 1 else _lerp(start, end, 1.0 - frac)
            trimmed.append((new_start, new_end))

        points: list[GeoPoint] = []
        for i, (start, end) in enumerate(trimmed):
            points.extend((start, end))
            if i + 1 < len(trimmed):
                corner = _lerp(lines[i][1], lines[i + 1][0], 0.5)
                points.extend(_bezier(end, corner, trimmed[i + 1][0], params.turn_points))
        return points

    def _row_lines(self, box: BoundingBox, params: PathParameters) -> list[Line]:
        step = params.spacing_m / METERS_PER_DEGREE
        lines = []
        for i, lat in enumerate(_sweep_positions(box.min_lat, box.max_lat, step)):
            west = GeoPoint(float(lat), box.min_lng)
            east = GeoPoint(float(lat), box.max_lng)
            lines.append((west, east) if i % 2 == 0 else (east, west))
        return lines

    def _column_lines(self, box: BoundingBox, params: PathParameters) -> list[Line]:
        step = LocalFrame(box.center).meters_to_lng_degrees(params.spacing_m)
        lines = []
        for i, lng in enumerate(_sweep_positions(box.min_lng, box.max_lng, step)):
            south = GeoPoint(box.min_lat, float(lng))
            north = GeoPoint(box.max_lat, float(lng))
            lines.append((south, north) if i % 2 == 0 else (north, south))
        return lines

    def _grid(self, area: SurveyArea, params: PathParameters) -> list[GeoPoint]:
        return self._connect(self._row_lines(area.bounding_box(), params), params)

    def _crosshatch(self, area: SurveyArea, params: PathParameters) -> list[GeoPoint]:
        box = area.bounding_box()
        rows = self._connect(self._row_lines(box, params), params)
        columns = self._connect(self._column_lines(box, params), params)
        return rows + columns

    def _perimeter(self, area: SurveyArea, params: PathParameters) -> list[GeoPoint]:
        centroid = area.centroid()
        points = []
        for lap in range(params.laps):
            factor = 1.0 - params.shrink_step * lap
            if factor <= 0:
                break
            points.extend(_lerp(centroid, GeoPoint(lat, lng), factor) for lat, lng in area.ring)
        return points

    def _hatch(self, area: SurveyArea, params: PathParameters) -> list[GeoPoint]:
        box = area.bounding_box()
        frame = LocalFrame(box.center)
        x_min, y_min = (float(v) for v in frame.to_xy(box.min_lat, box.min_lng))
        x_max, y_max = (float(v) for v in frame.to_xy(box.max_lat, box.max_lng))

        theta = math.radians(params.hatch_angle_deg)
        dx, dy = math.cos(theta), math.sin(theta)
        nx, ny = -dy, dx
        half_diagonal = math.hypot(x_max - x_min, y_max - y_min) / 2.0
        cx, cy = (x_min + x_max) / 2.0, (y_min + y_max) / 2.0

        steps = math.floor(half_diagonal / params.spacing_m)
        lines: list[Line] = []
        for offset in np.arange(-steps, steps + 1) * params.spacing_m:
            px, py = cx + offset * nx, cy + offset * ny
            segment = self._clip_line(px, py, dx, dy, (x_min, y_min, x_max, y_max))
            if segment is None:
                continue
            (ax, ay), (bx, by) = segment
            lat, lng = frame.to_latlng([ax, bx], [ay, by])
            start, end = _clip_to_box(
                [GeoPoint(float(lat[0]), float(lng[0])), GeoPoint(float(lat[1]), float(lng[1]))],
                box,
            )
            lines.append((start, end) if len(lines) % 2 == 0 else (end, start))

        return self._connect(lines, params)

    @staticmethod
    def _clip_line(px, py, dx, dy, bounds) -> tuple[tuple[float, float], tuple[float, float]] | None:
        """Clip the infinite line ``p + t*d`` to a rectangle (Liang-Barsky)."""
        x_min, y_min, x_max, y_max = bounds
        t_low, t_high = -math.inf, math.inf
        for p, d, low, high in ((px, dx, x_min, x_max), (py, dy, y_min, y_max)):
            if abs(d) < 1e-12:
                if p < low or p > high:
                    return None
                continue
            t0, t1 = (low - p) / d, (high - p) / d
            t_low = max(t_low, min(t0, t1))
            t_high = min(t_high, max(t0, t1))
        if t_high - t_low <= 1e-9:
            return None
        return (px + t_low * dx, py + t_low * dy), (px + t_high * dx, py + t_high * dy)

    def _waypoint(self, area: SurveyArea, params: PathParameters) -> list[GeoPoint]:
        return [GeoPoint(lat, lng) for lat, lng in area.ring]
