"""
Tests for the validated state machine and the countdown timer.
"""

from enum import Enum, auto
import unittest

from surveysim.exceptions import InvalidTransitionError
from surveysim.state import Action, StateMachine
from surveysim.timer import Timer


class Light(Enum):
    RED = auto()
    GREEN = auto()
    YELLOW = auto()


class TestStateMachine(unittest.TestCase):
    """Test StateMachine transitions."""

    def setUp(self):
        self.entered = []
        self.machine = StateMachine(
            Light.RED,
            {
                Light.RED: [Action(Light.GREEN, self.entered.append)],
                Light.GREEN: [Action(Light.YELLOW)],
                Light.YELLOW: [Action(Light.RED)],
            },
        )

    def test_valid_transition(self):
        """Test following an edge changes the state and runs its effect."""
        self.machine.request_transition(Light.GREEN, "go")
        self.assertEqual(self.machine.current, Light.GREEN)
        self.assertEqual(self.entered, ["go"])

    def test_invalid_transition_is_rejected(self):
        """Test a missing edge raises and leaves the state unchanged."""
        with self.assertRaises(InvalidTransitionError) as ctx:
            self.machine.request_transition(Light.YELLOW)
        self.assertEqual(self.machine.current, Light.RED)
        self.assertEqual(ctx.exception.frm, Light.RED)
        self.assertEqual(ctx.exception.to, Light.YELLOW)
        self.assertIn("RED -> YELLOW", str(ctx.exception))

    def test_can_transition_and_allowed_from(self):
        """Test edge queries."""
        self.assertTrue(self.machine.can_transition(Light.GREEN))
        self.assertFalse(self.machine.can_transition(Light.RED))
        self.assertEqual(self.machine.allowed_from(Light.GREEN), frozenset({Light.YELLOW}))
        self.assertEqual(self.machine.allowed_from(Light.RED), frozenset({Light.GREEN}))

    def test_full_cycle(self):
        """Test walking the whole cycle."""
        for state in (Light.GREEN, Light.YELLOW, Light.RED):
            self.machine.request_transition(state, "x")
        self.assertEqual(self.machine.current, Light.RED)


class TestTimer(unittest.TestCase):
    """Test Timer countdown."""

    def test_countdown(self):
        """Test the timer completes once its duration has elapsed."""
        timer = Timer(0.1)
        self.assertFalse(timer.done)
        timer.advance(0.05)
        self.assertFalse(timer.done)
        timer.advance(0.05)
        self.assertTrue(timer.done)

    def test_zero_duration_is_done(self):
        """Test a zero timer is immediately done."""
        self.assertTrue(Timer(0.0).done)

    def test_negative_duration_rejected(self):
        """Test negative durations raise."""
        with self.assertRaises(ValueError):
            Timer(-1.0)


if __name__ == '__main__':
    unittest.main()
