"""Error taxonomy for the survey flight simulator.

Configuration and path errors are raised synchronously from
``MissionSimulationController.start`` and mean the simulation never began.
Errors raised from inside a running tick are either recoverable
(``SimulationError``: the tick is dropped and retried) or an invariant
violation (``InvalidTransitionError``).
"""


class SurveySimError(Exception):
    """Base class for every error raised by surveysim."""


class ConfigurationError(SurveySimError):
    """Mission descriptor cannot be turned into a runnable simulation.

    Raised for a missing or malformed survey polygon, an unknown flight
    pattern name, a mission without an assigned drone, or invalid
    flight parameters.
    """


class MissionNotFoundError(ConfigurationError):
    """The mission repository has no mission with the requested id."""

    def __init__(self, mission_id: str):
        self.mission_id = mission_id
        super().__init__(f"Mission not found: {mission_id}")


class EmptyPathError(SurveySimError):
    """Path generation produced zero waypoints for the mission's survey area."""


class InvalidTransitionError(SurveySimError):
    """A lifecycle transition outside the allowed graph was requested."""

    def __init__(self, frm, to):
        self.frm = frm
        self.to = to
        super().__init__(f"Illegal transition {frm.name} -> {to.name}")


class SimulationError(SurveySimError):
    """A single tick could not be applied; the previous state is kept."""


class NonFiniteStateError(SimulationError):
    """Integration produced NaN or infinity in one of the dynamics fields."""
