"""Deterministic, tick-based flight simulation for drone survey missions.

SurveySim turns a user-drawn survey polygon into a coverage flight path and
flies a simulated drone along it, streaming telemetry, progress and mission
status events to subscribers. Any number of missions run concurrently, each
on its own cancellable tick.

Framework Components:
    Geographic Systems (surveysim.geo):
        • GeoPoint: (latitude, longitude) with spherical geodesics via pyproj
        • SurveyArea: closed survey ring, GeoJSON ingestion, bounding box, centroid

    Path Synthesis (surveysim.mission):
        • FlightPattern: Grid, Crosshatch, Perimeter, Hatch and Waypoint strategies
        • PathGenerator: pure (area, pattern, parameters) -> FlightPath
        • MissionDescriptor: what the mission repository supplies

    Flight Dynamics (surveysim.vehicles):
        • DynamicsState: position, altitude, speed, heading, battery, lifecycle
        • advance(): pure integrator with rate-limited speed and battery model
        • FlightDynamics: owns the state and the validated lifecycle graph

    Simulation Engine (surveysim.simulator):
        • MissionSimulationController: start, pause, resume, stop, set_speed, trigger_rth
        • ThreadingScheduler / ManualScheduler: wall-clock or virtual-clock ticking
        • Telemetry, drone status, battery alert, progress and mission status events

    Collaborators:
        • surveysim.transport: in-process and Redis publish/subscribe
        • surveysim.repository: mission lookup and outcome recording

Example:
    >>> from surveysim import (
    ...     InMemoryMissionRepository, InMemoryTelemetryPublisher, ManualScheduler,
    ...     MissionDescriptor, MissionSimulationController, SurveyArea,
    ... )
    >>> area = SurveyArea.from_points(
    ...     [(37.7749, -122.4194), (37.7749, -122.4183), (37.7758, -122.4183), (37.7758, -122.4194)]
    ... )
    >>> repo = InMemoryMissionRepository([MissionDescriptor("m1", "d1", area)])
    >>> scheduler = ManualScheduler()
    >>> controller = MissionSimulationController(
    ...     repo, InMemoryTelemetryPublisher(), scheduler=scheduler
    ... )
    >>> controller.start("m1")
    True
    >>> _ = scheduler.run_until_idle()
    >>> repo.outcomes("m1")[0].status.value
    'completed'
"""

from surveysim.exceptions import (
    ConfigurationError,
    EmptyPathError,
    InvalidTransitionError,
    MissionNotFoundError,
    NonFiniteStateError,
    SimulationError,
    SurveySimError,
)
from surveysim.geo import GeoPoint, SurveyArea
from surveysim.mission import (
    FlightPath,
    FlightPattern,
    MissionDescriptor,
    PathGenerator,
    PathParameters,
    Waypoint,
)
from surveysim.repository import InMemoryMissionRepository, MissionRepository
from surveysim.simulator import ManualScheduler, MissionSimulationController, ThreadingScheduler
from surveysim.transport import InMemoryTelemetryPublisher, TelemetryPublisher
from surveysim.vehicles import DynamicsState, FlightDynamics, LifecycleState

__all__ = [
    "ConfigurationError",
    "DynamicsState",
    "EmptyPathError",
    "FlightDynamics",
    "FlightPath",
    "FlightPattern",
    "GeoPoint",
    "InMemoryMissionRepository",
    "InMemoryTelemetryPublisher",
    "InvalidTransitionError",
    "LifecycleState",
    "ManualScheduler",
    "MissionDescriptor",
    "MissionNotFoundError",
    "MissionRepository",
    "MissionSimulationController",
    "NonFiniteStateError",
    "PathGenerator",
    "PathParameters",
    "SimulationError",
    "SurveyArea",
    "SurveySimError",
    "TelemetryPublisher",
    "ThreadingScheduler",
    "Waypoint",
]
