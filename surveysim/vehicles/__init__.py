"""Simulated drone physics."""

from .dynamics import (
    ACTIVE_STATES,
    DEFAULT_CRUISE_ALTITUDE,
    DEFAULT_CRUISE_SPEED,
    LIFECYCLE_EDGES,
    TERMINAL_STATES,
    DroneLimits,
    DynamicsParameters,
    DynamicsState,
    FlightDynamics,
    LifecycleState,
    advance,
)

__all__ = [
    "ACTIVE_STATES",
    "DEFAULT_CRUISE_ALTITUDE",
    "DEFAULT_CRUISE_SPEED",
    "LIFECYCLE_EDGES",
    "TERMINAL_STATES",
    "DroneLimits",
    "DynamicsParameters",
    "DynamicsState",
    "FlightDynamics",
    "LifecycleState",
    "advance",
]
