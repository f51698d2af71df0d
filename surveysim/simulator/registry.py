"""Per-mission simulation handles and the registry of running missions.

A ``MissionSimHandle`` is everything the controller keeps for one running
mission: the generated flight path, the drone's dynamics, the waypoint
cursor and the bookkeeping needed by pause, resume and return-to-home.

The ``MissionRegistry`` maps mission ids to handles. Insertion is
first-wins, so two concurrent ``start`` calls for the same mission leave
exactly one handle behind, and removal can be pinned to a specific handle.

Tick scheduling:
    Each handle carries a ``generation`` counter. Scheduling a tick bumps it
    and binds the new value to the scheduled callback; cancelling bumps it
    again. A callback whose generation no longer matches is stale and must
    do nothing, which covers timers that already fired but were still
    waiting on ``lock`` when they were cancelled.

Example:
    >>> registry = MissionRegistry()
    >>> registry.add_if_absent(handle)
    True
    >>> registry.get(handle.mission_id) is handle
    True
"""

from dataclasses import dataclass, field
from enum import Enum
import threading

from surveysim.geo import GeoPoint
from surveysim.mission import FlightPath
from surveysim.timer import Timer
from surveysim.vehicles import DynamicsState, FlightDynamics, LifecycleState

from .events import AlertLevel
from .scheduler import ScheduledCall


class RthReason(Enum):
    MISSION_COMPLETE = "mission_complete"
    LOW_BATTERY = "low_battery"
    MANUAL = "return_to_home"


@dataclass(eq=False)
class MissionSimHandle:
    """Mutable run state of one mission, guarded by ``lock``.

    Every tick and every control command for the mission holds ``lock``
    while it runs, so ticks never overlap and commands observe whole ticks.

    Attributes:
        mission_id: Mission identifier.
        drone_id: Drone flying the mission.
        flight_path: Waypoints generated at start.
        dynamics: The drone's physics; its state is the DynamicsState.
        home: Launch and landing point.
        turn_angles: Heading change at each waypoint, zero at the ends.
        cursor: Index of the next unvisited waypoint.
        call: Pending tick, if one is scheduled.
        generation: Token of the only tick allowed to run; bumped on every
            schedule and cancel.
        cancelled: Set once the mission is finishing; no tick may follow.
        paused_from: Lifecycle state to restore on resume.
        rth_reason: Why the drone is returning home.
        hover_timer: Remaining hover time while HOVERING.
    """

    mission_id: str
    drone_id: str
    flight_path: FlightPath
    dynamics: FlightDynamics
    home: GeoPoint
    turn_angles: tuple[float, ...] = ()
    cursor: int = 0
    call: ScheduledCall | None = None
    generation: int = 0
    cancelled: bool = False
    paused_from: LifecycleState | None = None
    rth_reason: RthReason | None = None
    hover_timer: Timer | None = None
    alert_level: AlertLevel | None = None
    last_lifecycle: LifecycleState = LifecycleState.IDLE
    last_progress: float = 0.0
    ticks: int = 0
    sorties: int = 0
    distance_flown: float = 0.0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def state(self) -> DynamicsState:
        return self.dynamics.state

    def cancel_call(self) -> None:
        """Cancel the pending tick and invalidate any tick already in flight.

        The scheduler may not be able to stop a callback that has already
        started, so the generation is bumped as well; that callback then
        sees a stale token and returns without stepping.
        """
        self.generation += 1
        if self.call is not None:
            self.call.cancel()
            self.call = None


class MissionRegistry:
    """missionId -> handle map; inserts and removals are atomic."""

    def __init__(self):
        self._handles: dict[str, MissionSimHandle] = {}
        self._lock = threading.Lock()

    def __contains__(self, mission_id: str) -> bool:
        with self._lock:
            return mission_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def get(self, mission_id: str) -> MissionSimHandle | None:
        """Look up the handle of a running mission.

        Args:
            mission_id (str): Mission to look up.

        Returns:
            MissionSimHandle | None: The handle, or None if the mission is
            not running.
        """
        with self._lock:
            return self._handles.get(mission_id)

    def add_if_absent(self, handle: MissionSimHandle) -> bool:
        """Insert ``handle`` unless its mission already has one.

        Args:
            handle (MissionSimHandle): Handle to register under its
                ``mission_id``.

        Returns:
            bool: True if inserted, False if another handle was already
            registered.
        """
        with self._lock:
            if handle.mission_id in self._handles:
                return False
            self._handles[handle.mission_id] = handle
            return True

    def remove(self, mission_id: str, handle: MissionSimHandle | None = None) -> MissionSimHandle | None:
        """Remove and return the mission's handle.

        If ``handle`` is given, only that exact handle is removed, so a
        late removal cannot evict a newer run of the same mission.

        Args:
            mission_id (str): Mission to remove.
            handle (MissionSimHandle, optional): Expected handle; removal is
                skipped if a different one is registered.

        Returns:
            MissionSimHandle | None: The removed handle, or None if nothing
            was removed.
        """
        with self._lock:
            current = self._handles.get(mission_id)
            if current is None or (handle is not None and current is not handle):
                return None
            return self._handles.pop(mission_id)

    def mission_ids(self) -> list[str]:
        """Snapshot of the running mission ids."""
        with self._lock:
            return list(self._handles)
