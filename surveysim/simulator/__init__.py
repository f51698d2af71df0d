from .controller import MissionSimulationController, MissionSnapshot
from .events import (
    BATTERY_ALERT,
    DRONE_STATUS,
    MISSION_PROGRESS,
    MISSION_STATUS,
    TELEMETRY,
    AlertLevel,
    MissionStatus,
)
from .registry import MissionRegistry, MissionSimHandle, RthReason
from .scheduler import ManualScheduler, Scheduler, ThreadingScheduler

__all__ = [
    "BATTERY_ALERT",
    "DRONE_STATUS",
    "MISSION_PROGRESS",
    "MISSION_STATUS",
    "TELEMETRY",
    "AlertLevel",
    "ManualScheduler",
    "MissionRegistry",
    "MissionSimHandle",
    "MissionSimulationController",
    "MissionSnapshot",
    "MissionStatus",
    "RthReason",
    "Scheduler",
    "ThreadingScheduler",
]
