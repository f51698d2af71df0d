"""Point-mass flight dynamics and battery model for one simulated drone.

The integrator is the pure function :func:`advance`, mapping a frozen
:class:`DynamicsState` to the next one for a time step and a target.
:class:`FlightDynamics` owns the current state, rejects non-finite results
and routes every lifecycle change through a validated state machine.

Per step, depending on the lifecycle state:

* ``TAKEOFF`` climbs toward the cruise altitude, holding position.
* ``FLYING`` / ``RTH`` fly toward the target along the great circle.
* ``LANDING`` descends to the ground while closing on the target.
* ``HOVERING`` holds position while speed decays.
* ``CHARGING`` adds charge until full, then becomes ``IDLE``.

Without a target, position and battery are held; only the altitude and
charging changes above still apply.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum, auto
import logging
import math

from surveysim.exceptions import NonFiniteStateError, SimulationError
from surveysim.geo import GeoPoint
from surveysim.state import Action, StateMachine

logger = logging.getLogger(__name__)

DEFAULT_CRUISE_SPEED = 10.0  # m/s
DEFAULT_CRUISE_ALTITUDE = 50.0  # m
BATTERY_MIN = 0.0
BATTERY_MAX = 100.0


class LifecycleState(Enum):
    IDLE = auto()
    TAKEOFF = auto()
    FLYING = auto()
    HOVERING = auto()
    RTH = auto()
    LANDING = auto()
    CHARGING = auto()
    PAUSED = auto()
    ABORTED = auto()
    COMPLETED = auto()


ACTIVE_STATES = frozenset(
    {
        LifecycleState.TAKEOFF,
        LifecycleState.FLYING,
        LifecycleState.HOVERING,
        LifecycleState.RTH,
        LifecycleState.LANDING,
        LifecycleState.CHARGING,
    }
)
TERMINAL_STATES = frozenset({LifecycleState.ABORTED, LifecycleState.COMPLETED})

_MOVING_STATES = frozenset({LifecycleState.FLYING, LifecycleState.RTH, LifecycleState.LANDING})
_AIRBORNE_STATES = _MOVING_STATES | {LifecycleState.TAKEOFF, LifecycleState.HOVERING}

_INTERRUPTS = (LifecycleState.PAUSED, LifecycleState.ABORTED)

# Every active state may additionally pause or abort.
LIFECYCLE_EDGES: dict[LifecycleState, tuple[LifecycleState, ...]] = {
    LifecycleState.IDLE: (
        LifecycleState.TAKEOFF,
        LifecycleState.COMPLETED,
        LifecycleState.ABORTED,
    ),
    LifecycleState.TAKEOFF: (LifecycleState.FLYING, LifecycleState.RTH, *_INTERRUPTS),
    LifecycleState.FLYING: (LifecycleState.HOVERING, LifecycleState.RTH, *_INTERRUPTS),
    LifecycleState.HOVERING: (LifecycleState.FLYING, LifecycleState.RTH, *_INTERRUPTS),
    LifecycleState.RTH: (LifecycleState.LANDING, *_INTERRUPTS),
    LifecycleState.LANDING: (LifecycleState.CHARGING, *_INTERRUPTS),
    LifecycleState.CHARGING: (LifecycleState.IDLE, *_INTERRUPTS),
    LifecycleState.PAUSED: (
        LifecycleState.TAKEOFF,
        LifecycleState.FLYING,
        LifecycleState.HOVERING,
        LifecycleState.RTH,
        LifecycleState.LANDING,
        LifecycleState.CHARGING,
        LifecycleState.ABORTED,
    ),
    LifecycleState.ABORTED: (),
    LifecycleState.COMPLETED: (),
}


@dataclass(frozen=True)
class DroneLimits:
    """Speed envelope of the airframe in m/s."""

    min_speed: float = 1.0
    max_speed: float = 20.0

    def __post_init__(self):
        if not 0 < self.min_speed <= self.max_speed:
            msg = f"Invalid speed bounds [{self.min_speed}, {self.max_speed}]"
            raise ValueError(msg)

    def clamp(self, speed: float) -> float:
        return min(max(speed, self.min_speed), self.max_speed)


@dataclass(frozen=True)
class DynamicsParameters:
    """Rates used by the integrator.

    Attributes:
        acceleration: Maximum speed increase, m/s².
        deceleration: Maximum speed decrease, m/s².
        base_drain_rate: Battery drain while airborne, %/s.
        speed_drain_rate: Extra drain at maximum speed, %/s, scaled linearly.
        maneuver_multiplier: Drain factor while approaching a sharp turn.
        altitude_drain_coefficient: Drain factor is ``1 + coefficient * altitude``.
        charge_rate: Charging speed, %/s.
        climb_rate: Vertical speed during takeoff, m/s.
        descent_rate: Vertical speed during landing, m/s.
    """

    acceleration: float = 2.0
    deceleration: float = 3.0
    base_drain_rate: float = 0.05
    speed_drain_rate: float = 0.10
    maneuver_multiplier: float = 1.5
    altitude_drain_coefficient: float = 0.0
    charge_rate: float = 2.0
    climb_rate: float = 3.0
    descent_rate: float = 2.0


@dataclass(frozen=True)
class DynamicsState:
    """Observable physical state of the drone after a tick."""

    position: GeoPoint
    altitude: float = 0.0
    speed: float = 0.0
    heading: float = 0.0
    battery: float = BATTERY_MAX
    lifecycle: LifecycleState = LifecycleState.IDLE

    def is_finite(self) -> bool:
        if not self.position.is_finite():
            return False
        return all(
            math.isfinite(getattr(self, f.name))
            for f in fields(self)
            if f.name not in ("position", "lifecycle")
        )


def _approach(value: float, target: float, max_step: float) -> float:
    if value < target:
        return min(value + max_step, target)
    return max(value - max_step, target)


def advance(
    state: DynamicsState,
    dt: float,
    target: GeoPoint | None,
    *,
    params: DynamicsParameters,
    limits: DroneLimits,
    cruise_speed: float,
    cruise_altitude: float,
    maneuvering: bool = False,
) -> DynamicsState:
    """Integrate ``state`` over ``dt`` seconds toward ``target``.

    Args:
        state: State at the start of the step.
        dt: Step length in seconds.
        target: Point to fly toward, or None to hold.
        params: Integration rates.
        limits: Airframe speed envelope.
        cruise_speed: Configured speed cap for horizontal flight.
        cruise_altitude: Altitude reached by takeoff.
        maneuvering: True while approaching a sharp turn.

    Returns:
        DynamicsState: The state at the end of the step. May contain
        non-finite values if the inputs did; callers must check.
    """
    lifecycle = state.lifecycle

    if lifecycle is LifecycleState.CHARGING:
        battery = min(BATTERY_MAX, state.battery + params.charge_rate * dt)
        return replace(
            state,
            speed=0.0,
            battery=battery,
            lifecycle=LifecycleState.IDLE if battery >= BATTERY_MAX else lifecycle,
        )

    if lifecycle not in _AIRBORNE_STATES:
        return state

    altitude = state.altitude
    if lifecycle is LifecycleState.TAKEOFF:
        altitude = _approach(altitude, cruise_altitude, params.climb_rate * dt)
    elif lifecycle is LifecycleState.LANDING:
        altitude = _approach(altitude, 0.0, params.descent_rate * dt)

    if target is None:
        return replace(state, altitude=altitude)

    bearing, distance = state.position.bearing_and_distance(target)

    if lifecycle in _MOVING_STATES:
        desired = max(limits.min_speed, min(cruise_speed, distance))
    else:
        desired = 0.0
    if desired > state.speed:
        speed = min(desired, state.speed + params.acceleration * dt)
    else:
        speed = max(desired, state.speed - params.deceleration * dt)
    speed = min(max(speed, 0.0), limits.max_speed)

    position, heading = state.position, state.heading
    step = min(distance, speed * dt)
    if step > 0:
        position = position.forward(bearing, step)
        heading = bearing

    drain = params.base_drain_rate + (speed / limits.max_speed) * params.speed_drain_rate
    if maneuvering:
        drain *= params.maneuver_multiplier
    drain *= 1.0 + params.altitude_drain_coefficient * altitude
    battery = min(max(state.battery - drain * dt, BATTERY_MIN), BATTERY_MAX)

    return replace(
        state,
        position=position,
        altitude=altitude,
        speed=speed,
        heading=heading,
        battery=battery,
    )


class FlightDynamics:
    """Owns one drone's :class:`DynamicsState` and advances it tick by tick.

    The state is only replaced by :meth:`update` and :meth:`transition_to`;
    callers read it through :attr:`state`, which is immutable.

    Example:
        >>> dyn = FlightDynamics(DynamicsState(GeoPoint(0.0, 0.0)))
        >>> dyn.transition_to(LifecycleState.TAKEOFF)
        >>> dyn.update(0.05, GeoPoint(0.0, 0.0))
        >>> round(dyn.state.altitude, 2)
        0.15
    """

    def __init__(
        self,
        initial: DynamicsState,
        *,
        params: DynamicsParameters | None = None,
        limits: DroneLimits | None = None,
        cruise_speed: float = DEFAULT_CRUISE_SPEED,
        cruise_altitude: float = DEFAULT_CRUISE_ALTITUDE,
    ):
        if not initial.is_finite():
            msg = "Initial dynamics state must be finite"
            raise ValueError(msg)
        if not cruise_altitude > 0:
            msg = "cruise_altitude must be positive"
            raise ValueError(msg)

        self.params = params or DynamicsParameters()
        self.limits = limits or DroneLimits()
        self.cruise_altitude = cruise_altitude
        self._cruise_speed = self.limits.min_speed
        self.set_cruise_speed(cruise_speed)
        self._state = initial
        self._state_machine = StateMachine(
            initial.lifecycle,
            {
                state: [Action(target, self._log_transition) for target in targets]
                for state, targets in LIFECYCLE_EDGES.items()
            },
        )

    @property
    def state(self) -> DynamicsState:
        return self._state

    @property
    def lifecycle(self) -> LifecycleState:
        return self._state.lifecycle

    @property
    def cruise_speed(self) -> float:
        return self._cruise_speed

    def set_cruise_speed(self, speed: float) -> float:
        """Set the horizontal speed cap, clamped to the airframe limits.

        Returns:
            float: The speed actually applied.
        """
        if not math.isfinite(speed):
            msg = f"Speed must be finite, got {speed}"
            raise ValueError(msg)
        self._cruise_speed = self.limits.clamp(speed)
        return self._cruise_speed

    def can_transition(self, next_state: LifecycleState) -> bool:
        return self._state_machine.can_transition(next_state)

    def transition_to(self, next_state: LifecycleState) -> None:
        """Change lifecycle state along an allowed edge.

        Raises:
            InvalidTransitionError: If the edge is not in ``LIFECYCLE_EDGES``.
        """
        self._state_machine.request_transition(next_state, self._state.lifecycle)
        self._state = replace(self._state, lifecycle=next_state)

    def update(self, dt: float, target: GeoPoint | None, *, maneuvering: bool = False) -> None:
        """Advance the state by ``dt`` seconds toward ``target``.

        A rejected step leaves the previous state in place.

        Raises:
            SimulationError: If ``dt`` is not a positive finite number.
            NonFiniteStateError: If the step produced NaN or infinity.
            InvalidTransitionError: If the step implied an illegal
                lifecycle change.
        """
        if not (math.isfinite(dt) and dt > 0):
            msg = f"Tick length must be positive and finite, got {dt}"
            raise SimulationError(msg)
        if target is not None and not target.is_finite():
            msg = f"Target is not finite: {target}"
            raise SimulationError(msg)

        candidate = advance(
            self._state,
            dt,
            target,
            params=self.params,
            limits=self.limits,
            cruise_speed=self._cruise_speed,
            cruise_altitude=self.cruise_altitude,
            maneuvering=maneuvering,
        )
        if not candidate.is_finite():
            msg = f"Rejected non-finite dynamics state: {candidate}"
            raise NonFiniteStateError(msg)

        if candidate.lifecycle is not self._state.lifecycle:
            self._state_machine.request_transition(candidate.lifecycle, self._state.lifecycle)
        self._state = candidate

    def _log_transition(self, previous: LifecycleState) -> None:
        logger.debug("Lifecycle %s -> %s", previous.name, self._state_machine.current.name)
