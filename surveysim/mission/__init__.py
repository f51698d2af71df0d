"""Mission description and coverage path generation."""

from .descriptor import MissionDescriptor
from .path_generator import PathGenerator
from .pattern import FlightPattern, PathParameters
from .waypoint import FlightPath, Waypoint

__all__ = [
    "FlightPath",
    "FlightPattern",
    "MissionDescriptor",
    "PathGenerator",
    "PathParameters",
    "Waypoint",
]
