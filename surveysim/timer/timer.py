"""Countdown timer driven by simulated time.

Timers never read a wall clock; whoever owns one advances it by the tick
length, which keeps hover pauses identical between real-time and
accelerated runs.
"""


class Timer:
    """Countdown over simulated seconds.

    Attributes:
        _duration: Remaining seconds; zero or less means the timer is done.

    Example:
        >>> t = Timer(1.0)
        >>> t.advance(0.6)
        >>> t.done
        False
        >>> t.advance(0.6)
        >>> t.done
        True
    """

    _duration: float

    def __init__(self, duration: float) -> None:
        if duration < 0:
            msg = "Timer duration cannot be negative"
            raise ValueError(msg)
        self._duration = duration

    @property
    def duration(self) -> float:
        """Seconds remaining."""
        return self._duration

    @property
    def done(self) -> bool:
        return self._duration <= 0.0

    def advance(self, delta: float) -> None:
        self._duration -= delta
