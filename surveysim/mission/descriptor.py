"""What the mission repository hands to the simulator."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from surveysim.exceptions import ConfigurationError
from surveysim.geo import GeoPoint, SurveyArea
from surveysim.vehicles import DEFAULT_CRUISE_ALTITUDE, DEFAULT_CRUISE_SPEED, DroneLimits

from .pattern import FlightPattern, PathParameters


@dataclass(frozen=True)
class MissionDescriptor:
    """Everything needed to simulate one mission.

    Attributes:
        mission_id: Mission identifier.
        drone_id: Assigned drone, or None if nobody was assigned yet.
        survey_area: Polygon to cover, or None if the mission has none.
        pattern: Default coverage strategy.
        speed: Cruise speed in m/s.
        altitude: Cruise altitude in metres.
        path_params: Path synthesis parameters.
        drone_limits: Speed envelope of the assigned drone.
        home: Launch and landing point; defaults to the first waypoint.
        battery: Battery percentage at launch.
    """

    mission_id: str
    drone_id: str | None
    survey_area: SurveyArea | None
    pattern: FlightPattern = FlightPattern.GRID
    speed: float = DEFAULT_CRUISE_SPEED
    altitude: float = DEFAULT_CRUISE_ALTITUDE
    path_params: PathParameters = field(default_factory=PathParameters)
    drone_limits: DroneLimits = field(default_factory=DroneLimits)
    home: GeoPoint | None = None
    battery: float = 100.0

    @classmethod
    def from_record(cls, record: Mapping) -> "MissionDescriptor":
        """Build a descriptor from a JSON-style mission record.

        Expected keys are ``id``, ``droneId``, ``surveyArea`` (GeoJSON
        Polygon), ``flightPattern`` and an optional ``flightParameters``
        object with ``speed``, ``altitude``, ``overlapPercentage`` and
        ``spacing`` (metres).

        Raises:
            ConfigurationError: If a field is present but invalid.
        """
        try:
            mission_id = str(record["id"])
        except KeyError as e:
            msg = "Mission record has no id"
            raise ConfigurationError(msg) from e

        area = record.get("surveyArea")
        flight = record.get("flightParameters") or {}
        home = record.get("home")

        try:
            path_params = PathParameters(
                base_spacing_m=float(flight.get("spacing", PathParameters.base_spacing_m)),
                overlap=float(flight.get("overlapPercentage", PathParameters.overlap * 100)) / 100.0,
            )
            return cls(
                mission_id=mission_id,
                drone_id=record.get("droneId"),
                survey_area=SurveyArea.from_geojson(area) if area is not None else None,
                pattern=FlightPattern.parse(record.get("flightPattern", FlightPattern.GRID)),
                speed=float(flight.get("speed", DEFAULT_CRUISE_SPEED)),
                altitude=float(flight.get("altitude", DEFAULT_CRUISE_ALTITUDE)),
                path_params=path_params,
                home=GeoPoint(float(home["latitude"]), float(home["longitude"])) if home else None,
                battery=float(record.get("battery", 100.0)),
            )
        except (TypeError, ValueError, KeyError) as e:
            msg = f"Invalid mission record {mission_id}: {e}"
            raise ConfigurationError(msg) from e
