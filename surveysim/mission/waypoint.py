"""Waypoints and the ordered flight path a mission follows.

A ``FlightPath`` is produced once by the path generator when a mission
starts and never changes afterwards. The controller walks it with an
integer cursor: waypoints before the cursor have been visited, the one at
the cursor is the current target.

Example:
    >>> path = FlightPath.from_points([GeoPoint(0.0, 0.0), GeoPoint(0.0, 0.001)])
    >>> len(path), path[1].index
    (2, 1)
    >>> round(path.total_distance())
    111
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import numpy as np

from surveysim.geo import GeoPoint


@dataclass(frozen=True)
class Waypoint(GeoPoint):
    """A path point tagged with its position in the traversal order."""

    index: int = 0

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    def to_dict(self) -> dict:
        return {"index": self.index, "latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class FlightPath:
    """Immutable, ordered sequence of waypoints.

    Leg lengths are computed once so the distance still to fly from any
    cursor is a constant-time lookup.
    """

    waypoints: tuple[Waypoint, ...] = ()
    _remaining: tuple[float, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        legs = [a.distance_to(b) for a, b in zip(self.waypoints, self.waypoints[1:])]
        # _remaining[i]: distance from waypoint i to the end of the path
        tail = np.concatenate(([0.0], np.cumsum(legs[::-1])))[::-1] if self.waypoints else []
        object.__setattr__(self, "_remaining", tuple(float(d) for d in tail))

    @classmethod
    def from_points(cls, points: Sequence[GeoPoint]) -> "FlightPath":
        return cls(
            tuple(Waypoint(p.latitude, p.longitude, index=i) for i, p in enumerate(points))
        )

    def __len__(self) -> int:
        """Number of waypoints in the path."""
        return len(self.waypoints)

    def __iter__(self) -> Iterator[Waypoint]:
        return iter(self.waypoints)

    def __getitem__(self, index: int) -> Waypoint:
        """Waypoint at ``index`` in traversal order.

        Args:
            index (int): Position in the path; negative values count from
                the end.

        Returns:
            Waypoint: The waypoint, whose ``index`` attribute equals its
            non-negative position.

        Raises:
            IndexError: If ``index`` is outside the path.
        """
        return self.waypoints[index]

    def __bool__(self) -> bool:
        return bool(self.waypoints)

    def total_distance(self) -> float:
        """Length of the whole path in metres."""
        return self._remaining[0] if self._remaining else 0.0

    def remaining_distance(self, cursor: int, position: GeoPoint) -> float:
        """Distance still to fly from ``position`` heading for waypoint ``cursor``.

        Args:
            cursor (int): Index of the next unvisited waypoint.
            position (GeoPoint): Current drone position.

        Returns:
            float: Metres to the cursor waypoint plus the rest of the path,
            or 0.0 once every waypoint has been visited.
        """
        if cursor >= len(self.waypoints):
            return 0.0
        return position.distance_to(self.waypoints[cursor]) + self._remaining[cursor]

    def to_list(self) -> list[dict]:
        return [wp.to_dict() for wp in self.waypoints]
