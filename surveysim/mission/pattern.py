"""Flight patterns and the parameters that shape generated paths."""

from dataclasses import dataclass
from enum import Enum

from surveysim.exceptions import ConfigurationError

SPACING_OVERLAP_OFFSET = 0.3
"""Added to ``1 - overlap`` so full overlap still leaves a usable line spacing."""


class FlightPattern(Enum):
    """Coverage strategy used to turn a survey area into waypoints."""

    GRID = "grid"
    CROSSHATCH = "crosshatch"
    PERIMETER = "perimeter"
    HATCH = "hatch"
    WAYPOINT = "waypoint"

    @classmethod
    def parse(cls, value: "FlightPattern | str") -> "FlightPattern":
        """Accept an enum member or its case-insensitive name/value.

        Raises:
            ConfigurationError: For an unknown pattern name.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for pattern in cls:
                if key in (pattern.value, pattern.name.lower()):
                    return pattern
        msg = f"Unknown flight pattern: {value!r}"
        raise ConfigurationError(msg)


@dataclass(frozen=True)
class PathParameters:
    """Knobs for path synthesis.

    Attributes:
        base_spacing_m: Nominal distance between sweep lines in metres.
        overlap: Image overlap fraction in ``[0, 1)``; higher is denser.
        smoothing: Round line-end turns with quadratic Bezier points.
        turn_points: Interior points per rounded turn.
        laps: Number of Perimeter laps.
        shrink_step: Per-lap shrink toward the centroid for Perimeter.
        hatch_angle_deg: Hatch line angle, counter-clockwise from east.
    """

    base_spacing_m: float = 30.0
    overlap: float = 0.7
    smoothing: bool = True
    turn_points: int = 8
    laps: int = 3
    shrink_step: float = 0.15
    hatch_angle_deg: float = 45.0

    def __post_init__(self):
        if not self.base_spacing_m > 0:
            msg = "base_spacing_m must be positive"
            raise ValueError(msg)
        if not 0.0 <= self.overlap < 1.0:
            msg = "overlap must be within [0, 1)"
            raise ValueError(msg)
        if self.turn_points < 0:
            msg = "turn_points cannot be negative"
            raise ValueError(msg)
        if self.laps < 1:
            msg = "laps must be at least 1"
            raise ValueError(msg)
        if not 0.0 <= self.shrink_step < 1.0:
            msg = "shrink_step must be within [0, 1)"
            raise ValueError(msg)

    @property
    def spacing_m(self) -> float:
        """Effective sweep-line spacing in metres."""
        return self.base_spacing_m * (1.0 - self.overlap + SPACING_OVERLAP_OFFSET)
