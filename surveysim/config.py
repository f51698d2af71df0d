"""Simulation-wide configuration.

Physical defaults for a single drone live next to the dynamics code in
``surveysim.vehicles.dynamics``; this module only holds what the controller
needs to pace ticks, detect arrivals and react to the battery.
"""

from dataclasses import dataclass

DEFAULT_TICK_INTERVAL = 0.05  # seconds, 20 Hz
DEFAULT_ARRIVAL_RADIUS = 5.0  # metres
DEFAULT_RTH_BATTERY_THRESHOLD = 15.0
DEFAULT_LOW_BATTERY_WARNING = 20.0
DEFAULT_CRITICAL_BATTERY_LEVEL = 10.0


@dataclass
class SimulationConfig:
    """Configuration for the mission simulation controller.

    Attributes:
        tick_interval: Simulated seconds advanced by every tick (``dt``).
        time_scale: Real-time speed-up. The scheduler waits
            ``tick_interval / time_scale`` wall-clock seconds between ticks.
        arrival_radius_m: Distance under which a target counts as reached.
        rth_battery_threshold: Battery percentage that forces return to home.
        low_battery_warning: Battery percentage that raises a warning alert.
        critical_battery_level: Battery percentage that raises a critical alert.
        hover_every_n_waypoints: Hover at every n-th waypoint (0 disables).
        hover_duration_s: Length of a hover pause in simulated seconds.
        sharp_turn_deg: Heading change at a waypoint that triggers a hover.
        turn_lookahead: Waypoints inspected ahead for the maneuver drain.
        approach_turn_deg: Heading change ahead that counts as maneuvering.
        progress_interval_ticks: Emit progress at least this often even
            when the percentage did not change.
    """

    tick_interval: float = DEFAULT_TICK_INTERVAL
    time_scale: float = 1.0
    arrival_radius_m: float = DEFAULT_ARRIVAL_RADIUS
    rth_battery_threshold: float = DEFAULT_RTH_BATTERY_THRESHOLD
    low_battery_warning: float = DEFAULT_LOW_BATTERY_WARNING
    critical_battery_level: float = DEFAULT_CRITICAL_BATTERY_LEVEL
    hover_every_n_waypoints: int = 10
    hover_duration_s: float = 1.0
    sharp_turn_deg: float = 60.0
    turn_lookahead: int = 3
    approach_turn_deg: float = 30.0
    progress_interval_ticks: int = 20

    def __post_init__(self):
        if self.tick_interval <= 0:
            msg = "tick_interval must be positive"
            raise ValueError(msg)
        if self.time_scale <= 0:
            msg = "time_scale must be positive"
            raise ValueError(msg)
        if self.arrival_radius_m <= 0:
            msg = "arrival_radius_m must be positive"
            raise ValueError(msg)
        if not 0.0 <= self.rth_battery_threshold <= 100.0:
            msg = "rth_battery_threshold must be within [0, 100]"
            raise ValueError(msg)
        if self.hover_every_n_waypoints < 0 or self.hover_duration_s < 0:
            msg = "hover pacing values cannot be negative"
            raise ValueError(msg)
        if self.progress_interval_ticks < 1:
            msg = "progress_interval_ticks must be at least 1"
            raise ValueError(msg)

    @property
    def wall_interval(self) -> float:
        """Wall-clock seconds between two scheduled ticks."""
        return self.tick_interval / self.time_scale
