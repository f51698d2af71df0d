"""Schedulers that fire mission ticks.

A scheduler runs a callback once after a delay and returns a handle whose
``cancel()`` prevents a call that has not fired yet. Periodic ticking is a
chain of such one-shot calls, so pausing a mission simply means not
scheduling the next one.
"""

from collections.abc import Callable
import heapq
import itertools
import threading
from typing import Protocol


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class ThreadingScheduler:
    """Wall-clock scheduler backed by one daemon ``threading.Timer`` per call."""

    def __init__(self, thread_name_prefix: str = "SurveySimTick"):
        self.thread_name_prefix = thread_name_prefix
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.name = f"{self.thread_name_prefix}-{next(self._counter)}"
        timer.start()
        return timer


class _ManualCall:
    __slots__ = ("callback", "cancelled", "due", "seq")

    def __init__(self, due: float, seq: int, callback: Callable[[], None]):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def __lt__(self, other: "_ManualCall") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler for deterministic and accelerated runs.

    Nothing fires on its own: calls run when the owner invokes
    :meth:`run_next`, :meth:`advance` or :meth:`run_until_idle`, in due-time
    order with ties broken by scheduling order.

    Example:
        >>> s = ManualScheduler()
        >>> fired = []
        >>> _ = s.call_later(0.05, lambda: fired.append(s.now))
        >>> s.run_until_idle()
        1
        >>> fired
        [0.05]
    """

    def __init__(self):
        self.now = 0.0
        self._queue: list[_ManualCall] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualCall:
        with self._lock:
            call = _ManualCall(self.now + delay, next(self._seq), callback)
            heapq.heappush(self._queue, call)
        return call

    def pending(self) -> int:
        with self._lock:
            return sum(1 for call in self._queue if not call.cancelled)

    def _pop_due(self, until: float | None) -> _ManualCall | None:
        with self._lock:
            while self._queue:
                call = self._queue[0]
                if call.cancelled:
                    heapq.heappop(self._queue)
                    continue
                if until is not None and call.due > until:
                    return None
                heapq.heappop(self._queue)
                self.now = max(self.now, call.due)
                return call
        return None

    def run_next(self) -> bool:
        """Fire the earliest pending call. Returns False if none is pending."""
        call = self._pop_due(None)
        if call is None:
            return False
        call.callback()
        return True

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every call that falls due."""
        until = self.now + seconds
        fired = 0
        while (call := self._pop_due(until)) is not None:
            call.callback()
            fired += 1
        self.now = until
        return fired

    def run_until_idle(self, max_calls: int = 1_000_000) -> int:
        """Fire calls until none is pending.

        Raises:
            RuntimeError: If more than ``max_calls`` calls fired.
        """
        fired = 0
        while self.run_next():
            fired += 1
            if fired > max_calls:
                msg = f"Scheduler still busy after {max_calls} calls"
                raise RuntimeError(msg)
        return fired
