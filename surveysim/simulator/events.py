"""Events emitted by the mission simulation controller.

Each event knows its transport topic and event name and serialises to a
JSON-ready dict with camelCase keys and an ISO-8601 timestamp.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from surveysim.geo import GeoPoint
from surveysim.mission import FlightPath
from surveysim.transport import drone_topic, mission_topic
from surveysim.vehicles import LifecycleState

TELEMETRY = "telemetry:update"
MISSION_STATUS = "mission:status"
MISSION_PROGRESS = "mission:progress"
DRONE_STATUS = "drone:status"
BATTERY_ALERT = "alert:battery"


class MissionStatus(Enum):
    STARTED = "started"
    COMPLETED = "completed"
    ABORTED = "aborted"


class AlertLevel(Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TelemetryEvent:
    event_name: ClassVar[str] = TELEMETRY

    mission_id: str
    drone_id: str
    position: GeoPoint
    altitude: float
    speed: float
    battery: float
    heading: float
    lifecycle: LifecycleState
    waypoint_index: int
    timestamp: datetime

    @property
    def topic(self) -> str:
        return drone_topic(self.drone_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "droneId": self.drone_id,
            "missionId": self.mission_id,
            "latitude": self.position.latitude,
            "longitude": self.position.longitude,
            "altitude": self.altitude,
            "speed": self.speed,
            "battery": self.battery,
            "heading": self.heading,
            "lifecycleState": self.lifecycle.name,
            "waypointIndex": self.waypoint_index,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class MissionStatusEvent:
    event_name: ClassVar[str] = MISSION_STATUS

    mission_id: str
    status: MissionStatus
    flight_path: FlightPath
    timestamp: datetime
    reason: str | None = None

    @property
    def topic(self) -> str:
        return mission_topic(self.mission_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "missionId": self.mission_id,
            "status": self.status.value,
            "flightPath": self.flight_path.to_list(),
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class MissionProgressEvent:
    event_name: ClassVar[str] = MISSION_PROGRESS

    mission_id: str
    percentage: float
    eta: float
    current_waypoint: int
    total_waypoints: int
    timestamp: datetime

    @property
    def topic(self) -> str:
        return mission_topic(self.mission_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "missionId": self.mission_id,
            "percentage": self.percentage,
            "eta": self.eta,
            "currentWaypoint": self.current_waypoint,
            "totalWaypoints": self.total_waypoints,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class DroneStatusEvent:
    event_name: ClassVar[str] = DRONE_STATUS

    mission_id: str
    drone_id: str
    previous: LifecycleState
    current: LifecycleState
    timestamp: datetime

    @property
    def topic(self) -> str:
        return drone_topic(self.drone_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "droneId": self.drone_id,
            "missionId": self.mission_id,
            "previousState": self.previous.name,
            "lifecycleState": self.current.name,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class BatteryAlertEvent:
    event_name: ClassVar[str] = BATTERY_ALERT

    mission_id: str
    drone_id: str
    battery: float
    level: AlertLevel
    timestamp: datetime

    @property
    def topic(self) -> str:
        return drone_topic(self.drone_id)

    @property
    def message(self) -> str:
        return f"Low battery warning: Drone battery at {self.battery:.1f}%"

    def to_dict(self) -> dict[str, Any]:
        return {
            "droneId": self.drone_id,
            "missionId": self.mission_id,
            "batteryLevel": self.battery,
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
