from .repository import (
    InMemoryMissionRepository,
    MissionOutcome,
    MissionRepository,
    OutcomeStatus,
)

__all__ = [
    "InMemoryMissionRepository",
    "MissionOutcome",
    "MissionRepository",
    "OutcomeStatus",
]
