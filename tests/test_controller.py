"""
Tests for the mission simulation controller.
"""

from datetime import UTC, datetime
import math
import time
import unittest
from unittest import mock

from surveysim.config import SimulationConfig
from surveysim.exceptions import ConfigurationError, EmptyPathError, MissionNotFoundError
from surveysim.geo import METERS_PER_DEGREE, GeoPoint, SurveyArea, heading_difference
from surveysim.mission import FlightPattern, MissionDescriptor
from surveysim.repository import InMemoryMissionRepository, OutcomeStatus
from surveysim.simulator import (
    BATTERY_ALERT,
    DRONE_STATUS,
    MISSION_PROGRESS,
    MISSION_STATUS,
    TELEMETRY,
    ManualScheduler,
    MissionSimulationController,
    ThreadingScheduler,
)
from surveysim.transport import InMemoryTelemetryPublisher
from surveysim.vehicles import LIFECYCLE_EDGES, DynamicsParameters, LifecycleState

ORIGIN = GeoPoint(37.7749, -122.4194)
FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def square_area(size_m=60.0):
    dlat = size_m / METERS_PER_DEGREE
    dlng = size_m / (METERS_PER_DEGREE * math.cos(math.radians(ORIGIN.latitude)))
    lat, lng = ORIGIN.latitude, ORIGIN.longitude
    return SurveyArea.from_points(
        [(lat, lng), (lat, lng + dlng), (lat + dlat, lng + dlng), (lat + dlat, lng)]
    )


class RecordingPublisher(InMemoryTelemetryPublisher):
    """In-memory publisher that also keeps every event in publish order."""

    def __init__(self):
        super().__init__()
        self.events = []
        self.subscribe_all(lambda topic, name, payload: self.events.append((topic, name, payload)))

    def named(self, event_name):
        return [payload for _, name, payload in self.events if name == event_name]

    def lifecycle_changes(self):
        return [
            (LifecycleState[p["previousState"]], LifecycleState[p["lifecycleState"]])
            for p in self.named(DRONE_STATUS)
        ]


class FailingPublisher:
    def publish(self, topic, event_name, payload):
        raise RuntimeError("transport down")


class LateCall:
    def __init__(self, callback):
        self.callback = callback

    def cancel(self):
        # The timer thread has already fired; there is nothing left to stop.
        pass


class LateCancelScheduler:
    """Scheduler whose calls cannot be cancelled, like a timer that already fired."""

    def __init__(self):
        self.calls = []

    def call_later(self, delay, callback):
        call = LateCall(callback)
        self.calls.append(call)
        return call


class ControllerTestCase(unittest.TestCase):
    def setUp(self):
        self.repository = InMemoryMissionRepository(
            [
                MissionDescriptor("m1", "d1", square_area()),
                MissionDescriptor("no-drone", None, square_area()),
                MissionDescriptor("no-area", "d2", None),
                MissionDescriptor(
                    "degenerate",
                    "d3",
                    SurveyArea.from_points([(1.0, 1.0), (1.0, 1.001), (1.0, 1.0)]),
                ),
                MissionDescriptor("low-battery", "d4", square_area(), battery=16.0),
            ]
        )
        self.publisher = RecordingPublisher()
        self.scheduler = ManualScheduler()
        self.controller = self.make_controller()

    def make_controller(self, **kwargs):
        kwargs.setdefault("scheduler", self.scheduler)
        return MissionSimulationController(
            self.repository, kwargs.pop("publisher", self.publisher), clock=lambda: FIXED_NOW, **kwargs
        )

    def run_until(self, mission_id, predicate, max_ticks=20_000):
        for _ in range(max_ticks):
            snapshot = self.controller.snapshot(mission_id)
            if snapshot is not None and predicate(snapshot):
                return snapshot
            if not self.scheduler.run_next():
                break
        self.fail("condition never reached")


class TestStart(ControllerTestCase):
    """Test starting missions."""

    def test_start_emits_started_status(self):
        """Test start registers the mission, takes off and publishes the path."""
        self.assertTrue(self.controller.start("m1"))
        self.assertEqual(self.controller.active_missions(), ["m1"])
        status = self.publisher.named(MISSION_STATUS)
        self.assertEqual(len(status), 1)
        self.assertEqual(status[0]["status"], "started")
        self.assertGreater(len(status[0]["flightPath"]), 0)
        self.assertIs(self.controller.snapshot("m1").state.lifecycle, LifecycleState.TAKEOFF)
        self.assertEqual(self.scheduler.pending(), 1)

    def test_duplicate_start_is_ignored(self):
        """Test a second start keeps exactly one simulation."""
        self.assertTrue(self.controller.start("m1"))
        self.assertFalse(self.controller.start("m1"))
        self.assertEqual(len(self.controller.active_missions()), 1)
        self.assertEqual(len(self.publisher.named(MISSION_STATUS)), 1)
        self.assertEqual(self.scheduler.pending(), 1)

    def test_unknown_mission(self):
        """Test an unknown id is reported as not found."""
        with self.assertRaises(MissionNotFoundError):
            self.controller.start("missing")
        self.assertEqual(self.controller.active_missions(), [])

    def test_configuration_errors(self):
        """Test missions without a drone or area are refused."""
        for mission_id in ("no-drone", "no-area"):
            with self.subTest(mission_id=mission_id), self.assertRaises(ConfigurationError):
                self.controller.start(mission_id)
        self.assertEqual(self.controller.active_missions(), [])
        self.assertEqual(self.publisher.events, [])

    def test_out_of_range_area_is_refused(self):
        """Test an area reaching past the pole is a configuration error."""
        self.repository.add(
            MissionDescriptor(
                "past-pole",
                "d5",
                SurveyArea.from_points([(89.9995, 0.0), (89.9995, 0.01), (95.0, 0.01), (95.0, 0.0)]),
            )
        )
        with self.assertRaises(ConfigurationError):
            self.controller.start("past-pole")
        self.assertFalse(self.controller.is_running("past-pole"))
        self.assertEqual(self.scheduler.pending(), 0)
        self.assertEqual(self.publisher.events, [])

    def test_empty_path(self):
        """Test an area that yields no waypoints cannot be started."""
        with self.assertRaises(EmptyPathError):
            self.controller.start("degenerate")
        self.assertFalse(self.controller.is_running("degenerate"))
        self.assertEqual(self.scheduler.pending(), 0)

    def test_pattern_override(self):
        """Test the override pattern is used for the flight path."""
        self.controller.start("m1", "waypoint")
        path = self.publisher.named(MISSION_STATUS)[0]["flightPath"]
        self.assertEqual(len(path), 5)

    def test_unknown_pattern_override(self):
        """Test an unknown override is a configuration error."""
        with self.assertRaises(ConfigurationError):
            self.controller.start("m1", "zigzag")
        self.assertFalse(self.controller.is_running("m1"))


class TestFullRun(ControllerTestCase):
    """Test a mission flown to completion."""

    def setUp(self):
        super().setUp()
        self.controller.start("m1")
        self.scheduler.run_until_idle()

    def test_completes_and_records_outcome(self):
        """Test the mission ends completed and is torn down."""
        outcomes = self.repository.outcomes("m1")
        self.assertEqual(len(outcomes), 1)
        self.assertIs(outcomes[0].status, OutcomeStatus.COMPLETED)
        self.assertEqual(outcomes[0].progress, 100.0)
        self.assertGreater(outcomes[0].distance_flown, 0.0)
        self.assertEqual(self.controller.active_missions(), [])
        self.assertEqual(self.scheduler.pending(), 0)

        status = self.publisher.named(MISSION_STATUS)
        self.assertEqual([s["status"] for s in status], ["started", "completed"])

    def test_lifecycle_follows_graph(self):
        """Test every announced transition is an edge of the lifecycle graph."""
        changes = self.publisher.lifecycle_changes()
        for previous, current in changes:
            self.assertIn(current, LIFECYCLE_EDGES[previous])
        visited = [current for _, current in changes]
        expected = [
            LifecycleState.TAKEOFF,
            LifecycleState.FLYING,
            LifecycleState.RTH,
            LifecycleState.LANDING,
            LifecycleState.CHARGING,
            LifecycleState.IDLE,
            LifecycleState.COMPLETED,
        ]
        positions = [visited.index(state) for state in expected]
        self.assertEqual(positions, sorted(positions))
        self.assertEqual(visited[-1], LifecycleState.COMPLETED)

    def test_progress_is_monotonic_and_ends_at_100(self):
        """Test progress never decreases and reaches 100 at completion."""
        percentages = [p["percentage"] for p in self.publisher.named(MISSION_PROGRESS)]
        self.assertTrue(percentages)
        self.assertEqual(percentages, sorted(percentages))
        self.assertEqual(percentages[-1], 100.0)
        self.assertTrue(all(0.0 <= p <= 100.0 for p in percentages))
        self.assertEqual(self.publisher.named(MISSION_PROGRESS)[-1]["eta"], 0.0)

    def test_battery_drains_until_charging(self):
        """Test telemetry battery never rises while airborne and stays in range."""
        telemetry = self.publisher.named(TELEMETRY)
        self.assertTrue(telemetry)
        airborne = []
        for payload in telemetry:
            self.assertGreaterEqual(payload["battery"], 0.0)
            self.assertLessEqual(payload["battery"], 100.0)
            if payload["lifecycleState"] == "CHARGING":
                break
            airborne.append(payload["battery"])
        self.assertEqual(airborne, sorted(airborne, reverse=True))
        self.assertEqual(self.repository.outcomes("m1")[0].battery, 100.0)

    def test_completed_status_follows_last_telemetry(self):
        """Test the terminal status is the last event of the mission."""
        _, name, payload = self.publisher.events[-1]
        self.assertEqual(name, MISSION_STATUS)
        self.assertEqual(payload["status"], "completed")
        self.assertEqual(payload["reason"], "mission_complete")

    def test_restart_after_completion(self):
        """Test a finished mission can be started again."""
        self.assertTrue(self.controller.start("m1"))
        self.assertTrue(self.controller.is_running("m1"))


class TestCommands(ControllerTestCase):
    """Test pause, resume, stop, speed and return-to-home commands."""

    def setUp(self):
        super().setUp()
        self.controller.start("m1")
        self.home = self.controller.snapshot("m1").state.position

    def fly_away(self, distance=20.0):
        return self.run_until(
            "m1",
            lambda s: s.state.lifecycle is LifecycleState.FLYING
            and s.state.position.distance_to(self.home) > distance,
        )

    def test_pause_and_resume_preserve_state(self):
        """Test a paused mission resumes from exactly the same state."""
        self.fly_away()
        before = self.controller.snapshot("m1")

        self.assertTrue(self.controller.pause("m1"))
        self.assertEqual(self.scheduler.pending(), 0)
        paused = self.controller.snapshot("m1")
        self.assertTrue(paused.paused)
        self.assertEqual(paused.state.position, before.state.position)
        self.assertEqual(paused.state.battery, before.state.battery)

        events = len(self.publisher.named(TELEMETRY))
        self.scheduler.advance(5.0)
        self.assertEqual(len(self.publisher.named(TELEMETRY)), events)

        self.assertTrue(self.controller.resume("m1"))
        after = self.controller.snapshot("m1")
        self.assertEqual(after.state, before.state)
        self.assertEqual(after.cursor, before.cursor)
        self.assertEqual(self.scheduler.pending(), 1)

    def test_pause_twice_and_resume_when_running(self):
        """Test commands that do not apply are refused."""
        self.assertFalse(self.controller.resume("m1"))
        self.assertTrue(self.controller.pause("m1"))
        self.assertFalse(self.controller.pause("m1"))
        self.assertTrue(self.controller.resume("m1"))

    def test_stop(self):
        """Test stop aborts, records the outcome and ends ticking."""
        self.fly_away()
        self.assertTrue(self.controller.stop("m1"))
        self.assertEqual(self.scheduler.pending(), 0)
        self.assertFalse(self.controller.is_running("m1"))
        self.assertFalse(self.controller.stop("m1"))

        status = self.publisher.named(MISSION_STATUS)[-1]
        self.assertEqual(status["status"], "aborted")
        self.assertEqual(status["reason"], "stopped")
        outcome = self.repository.outcomes("m1")[-1]
        self.assertIs(outcome.status, OutcomeStatus.ABORTED)

        events = len(self.publisher.events)
        self.scheduler.run_until_idle()
        self.assertEqual(len(self.publisher.events), events)

    def test_stop_while_paused(self):
        """Test a paused mission can be stopped."""
        self.controller.pause("m1")
        self.assertTrue(self.controller.stop("m1"))
        self.assertEqual(self.repository.outcomes("m1")[-1].reason, "stopped")

    def test_set_speed_is_clamped(self):
        """Test speed changes are clamped to the drone limits."""
        self.assertTrue(self.controller.set_speed("m1", 100.0))
        self.assertEqual(self.controller.snapshot("m1").cruise_speed, 20.0)
        self.assertTrue(self.controller.set_speed("m1", 0.0))
        self.assertEqual(self.controller.snapshot("m1").cruise_speed, 1.0)
        self.assertTrue(self.controller.set_speed("m1", 7.5))
        self.assertEqual(self.controller.snapshot("m1").cruise_speed, 7.5)

    def test_commands_on_unknown_mission(self):
        """Test commands for missions that are not running return False."""
        self.assertFalse(self.controller.pause("other"))
        self.assertFalse(self.controller.resume("other"))
        self.assertFalse(self.controller.stop("other"))
        self.assertFalse(self.controller.set_speed("other", 5.0))
        self.assertFalse(self.controller.trigger_rth("other"))
        self.assertIsNone(self.controller.snapshot("other"))
        self.assertIsNone(self.controller.current_target("other"))

    def test_trigger_rth(self):
        """Test return to home steers toward home and ends the mission aborted."""
        self.fly_away()
        self.assertTrue(self.controller.trigger_rth("m1"))
        snapshot = self.controller.snapshot("m1")
        self.assertIs(snapshot.state.lifecycle, LifecycleState.RTH)
        self.assertEqual(self.controller.current_target("m1"), self.home)

        self.scheduler.run_next()
        state = self.controller.snapshot("m1").state
        self.assertLess(heading_difference(state.heading, state.position.heading_to(self.home)), 0.01)

        self.scheduler.run_until_idle()
        outcome = self.repository.outcomes("m1")[-1]
        self.assertIs(outcome.status, OutcomeStatus.ABORTED)
        self.assertEqual(outcome.reason, "return_to_home")
        self.assertLess(outcome.progress, 100.0)

    def test_trigger_rth_while_paused(self):
        """Test return to home from pause resumes ticking toward home."""
        self.fly_away()
        self.controller.pause("m1")
        self.assertTrue(self.controller.trigger_rth("m1"))
        self.assertIs(self.controller.snapshot("m1").state.lifecycle, LifecycleState.RTH)
        self.assertEqual(self.scheduler.pending(), 1)

    def test_shutdown(self):
        """Test shutdown stops every mission."""
        self.controller.shutdown()
        self.assertEqual(self.controller.active_missions(), [])
        self.assertEqual(self.scheduler.pending(), 0)


class TestLowBattery(ControllerTestCase):
    """Test the automatic return on low battery."""

    def test_returns_recharges_and_completes(self):
        """Test a low launch battery forces a second sortie before completing."""
        self.controller.start("low-battery")
        self.scheduler.run_until_idle()

        outcome = self.repository.outcomes("low-battery")[-1]
        self.assertIs(outcome.status, OutcomeStatus.COMPLETED)

        visited = [current for _, current in self.publisher.lifecycle_changes()]
        self.assertEqual(visited.count(LifecycleState.TAKEOFF), 2)
        self.assertEqual(visited.count(LifecycleState.CHARGING), 2)

        alerts = self.publisher.named(BATTERY_ALERT)
        self.assertTrue(alerts)
        self.assertEqual(alerts[0]["level"], "warning")
        self.assertTrue(alerts[0]["message"].startswith("Low battery warning"))

    def test_alert_not_repeated_every_tick(self):
        """Test one alert per threshold crossing."""
        self.controller.start("low-battery")
        self.run_until("low-battery", lambda s: s.state.lifecycle is LifecycleState.RTH)
        self.assertEqual(len(self.publisher.named(BATTERY_ALERT)), 1)


class TestTickFailures(ControllerTestCase):
    """Test failures inside ticks."""

    def test_publisher_failure_does_not_stop_simulation(self):
        """Test a broken transport is logged and the mission keeps flying."""
        controller = self.make_controller(publisher=FailingPublisher())
        self.controller = controller
        with self.assertLogs("surveysim.simulator.controller", level="ERROR"):
            self.assertTrue(controller.start("m1"))
        for _ in range(10):
            self.scheduler.run_next()
        self.assertGreater(controller.snapshot("m1").state.altitude, 0.0)

    def test_rejected_step_holds_state(self):
        """Test a non-finite step keeps the previous state and keeps ticking."""
        controller = self.make_controller(
            dynamics_params=DynamicsParameters(base_drain_rate=float("nan"))
        )
        controller.start("m1")
        before = controller.snapshot("m1").state
        with self.assertLogs("surveysim.simulator.controller", level="WARNING"):
            for _ in range(5):
                self.scheduler.run_next()
        self.assertEqual(controller.snapshot("m1").state, before)
        self.assertTrue(controller.is_running("m1"))
        self.assertEqual(self.scheduler.pending(), 1)

    def test_unexpected_error_holds_state_and_keeps_ticking(self):
        """Test an unexpected exception in a tick is logged and the mission carries on."""
        self.controller.start("m1")
        before = self.controller.snapshot("m1").state
        with mock.patch.object(
            MissionSimulationController, "_approaching_turn", side_effect=RuntimeError("boom")
        ), self.assertLogs("surveysim.simulator.controller", level="ERROR") as logs:
            for _ in range(3):
                self.assertTrue(self.scheduler.run_next())
        self.assertIn("tick", logs.output[0])
        self.assertEqual(self.controller.snapshot("m1").state, before)
        self.assertTrue(self.controller.is_running("m1"))
        self.assertEqual(self.scheduler.pending(), 1)

        for _ in range(5):
            self.scheduler.run_next()
        self.assertGreater(self.controller.snapshot("m1").state.altitude, before.altitude)


class TestStaleTicks(ControllerTestCase):
    """Test ticks that fire after they were cancelled."""

    def setUp(self):
        super().setUp()
        self.late = LateCancelScheduler()
        self.controller = self.make_controller(scheduler=self.late)
        self.controller.start("m1")
        self.fired_early = self.late.calls[-1]

    def test_tick_from_before_pause_is_dropped(self):
        """Test pause then resume leaves exactly one tick chain."""
        self.assertTrue(self.controller.pause("m1"))
        self.assertTrue(self.controller.resume("m1"))
        self.assertEqual(len(self.late.calls), 2)
        before = self.controller.snapshot("m1")

        self.fired_early.callback()
        self.assertEqual(len(self.late.calls), 2)
        self.assertEqual(self.controller.snapshot("m1"), before)

        self.late.calls[-1].callback()
        self.assertEqual(len(self.late.calls), 3)
        self.assertNotEqual(self.controller.snapshot("m1").state, before.state)

        # The resumed chain is still the live one.
        self.late.calls[-1].callback()
        self.assertEqual(len(self.late.calls), 4)

    def test_tick_from_before_stop_is_dropped(self):
        """Test a tick racing a stop publishes nothing and schedules nothing."""
        self.assertTrue(self.controller.stop("m1"))
        events = len(self.publisher.events)
        self.fired_early.callback()
        self.assertEqual(len(self.publisher.events), events)
        self.assertEqual(len(self.late.calls), 1)


class TestThreadedRun(ControllerTestCase):
    """Test missions ticking on the wall clock."""

    def test_threaded_start_and_stop(self):
        """Test no telemetry arrives once a threaded mission is stopped."""
        controller = self.make_controller(
            scheduler=ThreadingScheduler(), config=SimulationConfig(time_scale=50.0)
        )
        controller.start("m1")
        deadline = time.monotonic() + 5.0
        while not self.publisher.named(TELEMETRY) and time.monotonic() < deadline:
            time.sleep(0.01)
        self.assertTrue(self.publisher.named(TELEMETRY))

        self.assertTrue(controller.stop("m1"))
        count = len(self.publisher.events)
        time.sleep(0.05)
        self.assertEqual(len(self.publisher.events), count)
        self.assertIs(self.repository.outcomes("m1")[-1].status, OutcomeStatus.ABORTED)

    def test_missions_run_concurrently(self):
        """Test two missions tick independently."""
        self.repository.add(MissionDescriptor("m2", "d9", square_area(40.0)))
        self.controller.start("m1")
        self.controller.start("m2")
        self.assertEqual(sorted(self.controller.active_missions()), ["m1", "m2"])
        self.scheduler.run_until_idle()
        self.assertIs(self.repository.outcomes("m1")[-1].status, OutcomeStatus.COMPLETED)
        self.assertIs(self.repository.outcomes("m2")[-1].status, OutcomeStatus.COMPLETED)


if __name__ == '__main__':
    unittest.main()
