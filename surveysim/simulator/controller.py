"""Mission simulation controller.

Owns the registry of running missions and drives each one with its own
chain of scheduled ticks. A tick, under the mission's lock:

1. Picks the target for the lifecycle state (next waypoint while flying,
   home while returning or landing).
2. Advances the drone's dynamics by ``tick_interval``.
3. Applies arrivals and lifecycle transitions; a battery below the RTH
   threshold overrides normal waypoint advancement.
4. Emits telemetry, then alerts and progress.
5. Schedules the next tick unless the mission paused or finished.

Control commands take the same lock, so they always observe whole ticks.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
import logging

from surveysim.config import SimulationConfig
from surveysim.exceptions import (
    ConfigurationError,
    EmptyPathError,
    InvalidTransitionError,
    SimulationError,
)
from surveysim.geo import GeoPoint, heading_difference
from surveysim.mission import FlightPath, FlightPattern, MissionDescriptor, PathGenerator
from surveysim.repository import MissionOutcome, MissionRepository, OutcomeStatus
from surveysim.timer import Timer
from surveysim.transport import TelemetryPublisher
from surveysim.vehicles import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    DynamicsParameters,
    DynamicsState,
    FlightDynamics,
    LifecycleState,
)

from .events import (
    AlertLevel,
    BatteryAlertEvent,
    DroneStatusEvent,
    MissionProgressEvent,
    MissionStatus,
    MissionStatusEvent,
    TelemetryEvent,
)
from .registry import MissionRegistry, MissionSimHandle, RthReason
from .scheduler import Scheduler, ThreadingScheduler

logger = logging.getLogger(__name__)

_FLIGHT_STATES = (LifecycleState.TAKEOFF, LifecycleState.FLYING, LifecycleState.HOVERING)
_RETURNING_STATES = (LifecycleState.RTH, LifecycleState.LANDING, LifecycleState.CHARGING)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _turn_angles(path: FlightPath) -> tuple[float, ...]:
    angles = [0.0] * len(path)
    for i in range(1, len(path) - 1):
        incoming = path[i - 1].heading_to(path[i])
        outgoing = path[i].heading_to(path[i + 1])
        angles[i] = heading_difference(incoming, outgoing)
    return tuple(angles)


@dataclass(frozen=True)
class MissionSnapshot:
    """Point-in-time view of a running mission."""

    mission_id: str
    drone_id: str
    state: DynamicsState
    cursor: int
    total_waypoints: int
    progress: float
    cruise_speed: float
    paused: bool


class MissionSimulationController:
    """Runs any number of mission simulations concurrently.

    Args:
        repository: Source of mission descriptors and sink of outcomes.
        publisher: Transport for emitted events.
        config: Tick and threshold settings.
        scheduler: Fires ticks; defaults to a wall-clock ``ThreadingScheduler``.
        path_generator: Builds flight paths at start.
        dynamics_params: Integration rates shared by every drone.
        clock: Source of event timestamps.

    Example:
        >>> controller = MissionSimulationController(repo, publisher, scheduler=ManualScheduler())
        >>> controller.start("mission-1")
        True
        >>> controller.start("mission-1")  # already running
        False
    """

    def __init__(
        self,
        repository: MissionRepository,
        publisher: TelemetryPublisher,
        *,
        config: SimulationConfig | None = None,
        scheduler: Scheduler | None = None,
        path_generator: PathGenerator | None = None,
        dynamics_params: DynamicsParameters | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or SimulationConfig()
        self._repository = repository
        self._publisher = publisher
        self._scheduler = scheduler or ThreadingScheduler()
        self._path_generator = path_generator or PathGenerator()
        self._dynamics_params = dynamics_params or DynamicsParameters()
        self._clock = clock
        self._registry = MissionRegistry()

    # Commands

    def start(self, mission_id: str, pattern_override: FlightPattern | str | None = None) -> bool:
        """Start simulating ``mission_id``.

        Starting a mission that is already running does nothing.

        Args:
            mission_id: Mission to start.
            pattern_override: Flight pattern to use instead of the mission's.

        Returns:
            True if a new simulation started, False if one was already running.

        Raises:
            ConfigurationError: If the mission is unknown, has no drone or
                survey area, or its parameters are invalid.
            EmptyPathError: If no waypoints could be generated.
        """
        if mission_id in self._registry:
            logger.debug("Mission %s already running, start ignored", mission_id)
            return False

        descriptor = self._repository.get_mission(mission_id)
        handle = self._build_handle(descriptor, pattern_override)

        with handle.lock:
            if not self._registry.add_if_absent(handle):
                logger.debug("Mission %s already running, start ignored", mission_id)
                return False
            self._emit(
                MissionStatusEvent(
                    mission_id, MissionStatus.STARTED, handle.flight_path, self._clock()
                )
            )
            self._begin_sortie(handle)
            self._schedule(handle)

        logger.info(
            "Started mission %s with drone %s: %d waypoints, %.0f m",
            mission_id,
            handle.drone_id,
            len(handle.flight_path),
            handle.flight_path.total_distance(),
        )
        return True

    def pause(self, mission_id: str) -> bool:
        """Suspend ticking; the dynamics state is kept exactly as it is."""
        handle = self._lookup(mission_id, "pause")
        if handle is None:
            return False
        with handle.lock:
            lifecycle = handle.dynamics.lifecycle
            if handle.cancelled or lifecycle not in ACTIVE_STATES:
                return False
            handle.cancel_call()
            handle.paused_from = lifecycle
            self._transition(handle, LifecycleState.PAUSED)
        logger.info("Paused mission %s in %s", mission_id, lifecycle.name)
        return True

    def resume(self, mission_id: str) -> bool:
        """Continue a paused mission from the state it was paused in."""
        handle = self._lookup(mission_id, "resume")
        if handle is None:
            return False
        with handle.lock:
            if handle.cancelled or handle.dynamics.lifecycle is not LifecycleState.PAUSED:
                return False
            previous, handle.paused_from = handle.paused_from, None
            self._transition(handle, previous)
            self._schedule(handle)
        logger.info("Resumed mission %s in %s", mission_id, previous.name)
        return True

    def stop(self, mission_id: str) -> bool:
        """Abort the mission and tear its simulation down."""
        handle = self._registry.remove(mission_id)
        if handle is None:
            logger.warning("stop: mission %s is not running", mission_id)
            return False
        with handle.lock:
            if handle.cancelled:
                return False
            self._finish(handle, MissionStatus.ABORTED, "stopped")
        return True

    def set_speed(self, mission_id: str, speed: float) -> bool:
        """Change the cruise speed, clamped to the drone's limits.

        Raises:
            ValueError: If ``speed`` is not a finite number.
        """
        handle = self._lookup(mission_id, "set_speed")
        if handle is None:
            return False
        with handle.lock:
            if handle.cancelled:
                return False
            applied = handle.dynamics.set_cruise_speed(speed)
        if applied != speed:
            logger.info("Mission %s speed %.1f clamped to %.1f m/s", mission_id, speed, applied)
        return True

    def trigger_rth(self, mission_id: str) -> bool:
        """Send the drone home now and end the mission once it has landed and charged."""
        handle = self._lookup(mission_id, "trigger_rth")
        if handle is None:
            return False
        with handle.lock:
            if handle.cancelled:
                return False
            lifecycle = handle.dynamics.lifecycle
            if lifecycle in _FLIGHT_STATES:
                self._return_home(handle, RthReason.MANUAL)
            elif lifecycle is LifecycleState.PAUSED and handle.paused_from in _FLIGHT_STATES:
                handle.paused_from = None
                self._return_home(handle, RthReason.MANUAL)
                self._schedule(handle)
            elif lifecycle in _RETURNING_STATES or lifecycle is LifecycleState.PAUSED:
                handle.rth_reason = RthReason.MANUAL
            else:
                return False
        logger.info("Return to home requested for mission %s", mission_id)
        return True

    def shutdown(self) -> None:
        """Stop every running mission."""
        for mission_id in self._registry.mission_ids():
            self.stop(mission_id)

    # Queries

    def active_missions(self) -> list[str]:
        return self._registry.mission_ids()

    def is_running(self, mission_id: str) -> bool:
        return mission_id in self._registry

    def snapshot(self, mission_id: str) -> MissionSnapshot | None:
        handle = self._registry.get(mission_id)
        if handle is None:
            return None
        with handle.lock:
            return MissionSnapshot(
                mission_id=handle.mission_id,
                drone_id=handle.drone_id,
                state=handle.state,
                cursor=handle.cursor,
                total_waypoints=len(handle.flight_path),
                progress=self._progress(handle),
                cruise_speed=handle.dynamics.cruise_speed,
                paused=handle.state.lifecycle is LifecycleState.PAUSED,
            )

    def current_target(self, mission_id: str) -> GeoPoint | None:
        """Point the next tick will steer toward, if any."""
        handle = self._registry.get(mission_id)
        if handle is None:
            return None
        with handle.lock:
            return self._target_for(handle)

    # Setup

    def _lookup(self, mission_id: str, command: str) -> MissionSimHandle | None:
        handle = self._registry.get(mission_id)
        if handle is None:
            logger.warning("%s: mission %s is not running", command, mission_id)
        return handle

    def _build_handle(
        self,
        descriptor: MissionDescriptor,
        pattern_override: FlightPattern | str | None,
    ) -> MissionSimHandle:
        mission_id = descriptor.mission_id
        if not descriptor.drone_id:
            msg = f"No drone assigned to mission {mission_id}"
            raise ConfigurationError(msg)
        if descriptor.survey_area is None:
            msg = f"Mission {mission_id} has no survey area"
            raise ConfigurationError(msg)
        if descriptor.survey_area.is_finite() and not descriptor.survey_area.in_range():
            msg = f"Mission {mission_id} survey area lies outside the valid latitude/longitude range"
            raise ConfigurationError(msg)
        if not 0.0 <= descriptor.battery <= 100.0:
            msg = f"Mission {mission_id} launch battery {descriptor.battery} outside [0, 100]"
            raise ConfigurationError(msg)

        pattern = descriptor.pattern
        if pattern_override is not None:
            pattern = FlightPattern.parse(pattern_override)

        path = self._path_generator.generate(descriptor.survey_area, pattern, descriptor.path_params)
        if not path:
            msg = f"Mission {mission_id}: {pattern.value} pattern produced no waypoints"
            raise EmptyPathError(msg)

        home = descriptor.home or path[0].point
        try:
            dynamics = FlightDynamics(
                DynamicsState(position=home, battery=descriptor.battery),
                params=self._dynamics_params,
                limits=descriptor.drone_limits,
                cruise_speed=descriptor.speed,
                cruise_altitude=descriptor.altitude,
            )
        except ValueError as e:
            msg = f"Mission {mission_id}: {e}"
            raise ConfigurationError(msg) from e

        return MissionSimHandle(
            mission_id=mission_id,
            drone_id=str(descriptor.drone_id),
            flight_path=path,
            dynamics=dynamics,
            home=home,
            turn_angles=_turn_angles(path),
        )

    def _schedule(self, handle: MissionSimHandle) -> None:
        # Any tick already fired but still waiting on the lock becomes stale.
        handle.generation += 1
        handle.call = self._scheduler.call_later(
            self.config.wall_interval, partial(self._on_tick, handle, handle.generation)
        )

    # Tick

    def _on_tick(self, handle: MissionSimHandle, generation: int) -> None:
        with handle.lock:
            if generation != handle.generation:
                logger.debug(
                    "Mission %s: dropping stale tick (generation %d, current %d)",
                    handle.mission_id,
                    generation,
                    handle.generation,
                )
                return
            handle.call = None
            if handle.cancelled or handle.dynamics.lifecycle is LifecycleState.PAUSED:
                return
            try:
                self._step(handle)
            except SimulationError:
                logger.warning(
                    "Mission %s: tick %d rejected, holding state",
                    handle.mission_id,
                    handle.ticks,
                    exc_info=True,
                )
            except InvalidTransitionError:
                logger.exception("Mission %s: lifecycle invariant violated", handle.mission_id)
                self._finish(handle, MissionStatus.ABORTED, "internal_error")
                raise
            except Exception:
                logger.exception(
                    "Mission %s: tick %d failed, holding state", handle.mission_id, handle.ticks
                )
            if handle.cancelled or handle.dynamics.lifecycle in TERMINAL_STATES:
                return
            self._schedule(handle)

    def _step(self, handle: MissionSimHandle) -> None:
        dt = self.config.tick_interval
        dynamics = handle.dynamics

        if dynamics.lifecycle is LifecycleState.HOVERING:
            handle.hover_timer.advance(dt)
            if handle.hover_timer.done:
                handle.hover_timer = None
                self._transition(handle, LifecycleState.FLYING)

        target = self._target_for(handle)
        previous = dynamics.state
        dynamics.update(dt, target, maneuvering=self._approaching_turn(handle))
        handle.distance_flown += previous.position.distance_to(dynamics.state.position)
        handle.ticks += 1
        if dynamics.lifecycle is not handle.last_lifecycle:
            self._announce_transition(handle)

        self._evaluate(handle)
        if dynamics.lifecycle in TERMINAL_STATES:
            return

        state = dynamics.state
        self._emit(
            TelemetryEvent(
                handle.mission_id,
                handle.drone_id,
                state.position,
                state.altitude,
                state.speed,
                state.battery,
                state.heading,
                state.lifecycle,
                handle.cursor,
                self._clock(),
            )
        )
        self._check_battery(handle)
        self._report_progress(handle)

    def _target_for(self, handle: MissionSimHandle) -> GeoPoint | None:
        lifecycle = handle.dynamics.lifecycle
        if lifecycle is LifecycleState.FLYING:
            if handle.cursor < len(handle.flight_path):
                return handle.flight_path[handle.cursor].point
            return handle.home
        if lifecycle in (LifecycleState.TAKEOFF, LifecycleState.RTH, LifecycleState.LANDING):
            return handle.home
        if lifecycle is LifecycleState.HOVERING:
            return handle.state.position
        return None

    def _approaching_turn(self, handle: MissionSimHandle) -> bool:
        if handle.dynamics.lifecycle is not LifecycleState.FLYING:
            return False
        window = handle.turn_angles[handle.cursor : handle.cursor + self.config.turn_lookahead]
        return any(angle > self.config.approach_turn_deg for angle in window)

    def _evaluate(self, handle: MissionSimHandle) -> None:
        state = handle.state
        lifecycle = state.lifecycle
        radius = self.config.arrival_radius_m

        if lifecycle is LifecycleState.TAKEOFF:
            if state.altitude >= handle.dynamics.cruise_altitude:
                self._transition(handle, LifecycleState.FLYING)
        elif (
            lifecycle in (LifecycleState.FLYING, LifecycleState.HOVERING)
            and state.battery < self.config.rth_battery_threshold
        ):
            logger.warning(
                "Mission %s: battery %.1f%% below %.1f%%, returning home",
                handle.mission_id,
                state.battery,
                self.config.rth_battery_threshold,
            )
            self._return_home(handle, RthReason.LOW_BATTERY)
        elif lifecycle is LifecycleState.FLYING:
            self._advance_cursor(handle)
        elif lifecycle is LifecycleState.RTH:
            if state.position.distance_to(handle.home) <= radius:
                self._transition(handle, LifecycleState.LANDING)
        elif lifecycle is LifecycleState.LANDING:
            if state.altitude <= 0.0:
                self._transition(handle, LifecycleState.CHARGING)
        elif lifecycle is LifecycleState.IDLE:
            self._after_charge(handle)

    def _advance_cursor(self, handle: MissionSimHandle) -> None:
        path = handle.flight_path
        position = handle.state.position
        hover = False
        while handle.cursor < len(path):
            if position.distance_to(path[handle.cursor]) > self.config.arrival_radius_m:
                break
            reached = handle.cursor
            handle.cursor += 1
            if self._is_pause_point(handle, reached):
                hover = True
                break

        if handle.cursor >= len(path):
            self._return_home(handle, RthReason.MISSION_COMPLETE)
        elif hover:
            handle.hover_timer = Timer(self.config.hover_duration_s)
            self._transition(handle, LifecycleState.HOVERING)

    def _is_pause_point(self, handle: MissionSimHandle, index: int) -> bool:
        if self.config.hover_duration_s <= 0:
            return False
        every = self.config.hover_every_n_waypoints
        if every and (index + 1) % every == 0:
            return True
        return handle.turn_angles[index] > self.config.sharp_turn_deg

    def _return_home(self, handle: MissionSimHandle, reason: RthReason) -> None:
        handle.hover_timer = None
        if handle.rth_reason is not RthReason.MANUAL:
            handle.rth_reason = reason
        self._transition(handle, LifecycleState.RTH)
        logger.info("Mission %s returning home (%s)", handle.mission_id, reason.value)

    def _after_charge(self, handle: MissionSimHandle) -> None:
        if handle.cursor >= len(handle.flight_path):
            self._finish(handle, MissionStatus.COMPLETED, RthReason.MISSION_COMPLETE.value)
        elif handle.rth_reason is RthReason.MANUAL:
            self._finish(handle, MissionStatus.ABORTED, RthReason.MANUAL.value)
        else:
            logger.info(
                "Mission %s recharged, resuming at waypoint %d/%d",
                handle.mission_id,
                handle.cursor,
                len(handle.flight_path),
            )
            self._begin_sortie(handle)

    def _begin_sortie(self, handle: MissionSimHandle) -> None:
        handle.rth_reason = None
        handle.sorties += 1
        self._transition(handle, LifecycleState.TAKEOFF)

    def _finish(self, handle: MissionSimHandle, status: MissionStatus, reason: str) -> None:
        handle.cancelled = True
        handle.cancel_call()
        terminal = (
            LifecycleState.COMPLETED if status is MissionStatus.COMPLETED else LifecycleState.ABORTED
        )
        if handle.dynamics.lifecycle is not terminal:
            self._transition(handle, terminal)
        self._registry.remove(handle.mission_id, handle)

        if status is MissionStatus.COMPLETED:
            self._report_progress(handle, force=True)
        self._emit(
            MissionStatusEvent(
                handle.mission_id, status, handle.flight_path, self._clock(), reason=reason
            )
        )

        state = handle.state
        outcome = MissionOutcome(
            status=OutcomeStatus(status.value),
            reason=reason,
            progress=self._progress(handle),
            battery=state.battery,
            distance_flown=handle.distance_flown,
            finished_at=self._clock(),
        )
        try:
            self._repository.record_outcome(handle.mission_id, outcome)
        except Exception:
            logger.exception("Failed to record outcome of mission %s", handle.mission_id)
        logger.info("Mission %s %s (%s)", handle.mission_id, status.value, reason)

    # Events

    def _transition(self, handle: MissionSimHandle, next_state: LifecycleState) -> None:
        handle.dynamics.transition_to(next_state)
        self._announce_transition(handle)

    def _announce_transition(self, handle: MissionSimHandle) -> None:
        previous, current = handle.last_lifecycle, handle.dynamics.lifecycle
        handle.last_lifecycle = current
        self._emit(
            DroneStatusEvent(handle.mission_id, handle.drone_id, previous, current, self._clock())
        )

    def _progress(self, handle: MissionSimHandle) -> float:
        if handle.dynamics.lifecycle is LifecycleState.COMPLETED:
            return 100.0
        return 100.0 * handle.cursor / len(handle.flight_path)

    def _eta(self, handle: MissionSimHandle) -> float:
        state = handle.state
        path = handle.flight_path
        if state.lifecycle is LifecycleState.COMPLETED:
            return 0.0
        if handle.cursor < len(path) and state.lifecycle not in _RETURNING_STATES:
            remaining = path.remaining_distance(handle.cursor, state.position)
            remaining += path[-1].distance_to(handle.home)
        else:
            remaining = state.position.distance_to(handle.home)
        return remaining / handle.dynamics.cruise_speed

    def _report_progress(self, handle: MissionSimHandle, force: bool = False) -> None:
        percentage = max(self._progress(handle), handle.last_progress)
        interval = self.config.progress_interval_ticks
        if not force and percentage == handle.last_progress and handle.ticks % interval:
            return
        handle.last_progress = percentage
        self._emit(
            MissionProgressEvent(
                handle.mission_id,
                percentage,
                self._eta(handle),
                handle.cursor,
                len(handle.flight_path),
                self._clock(),
            )
        )

    def _check_battery(self, handle: MissionSimHandle) -> None:
        battery = handle.state.battery
        if battery > self.config.low_battery_warning:
            handle.alert_level = None
            return
        level = (
            AlertLevel.CRITICAL
            if battery <= self.config.critical_battery_level
            else AlertLevel.WARNING
        )
        if level is handle.alert_level or handle.alert_level is AlertLevel.CRITICAL:
            return
        handle.alert_level = level
        self._emit(
            BatteryAlertEvent(handle.mission_id, handle.drone_id, battery, level, self._clock())
        )

    def _emit(self, event) -> None:
        try:
            self._publisher.publish(event.topic, event.event_name, event.to_dict())
        except Exception:
            logger.exception("Publishing %s failed", event.event_name)
