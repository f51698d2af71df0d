"""Publish/subscribe fan-out for simulation events.

Topics follow the room naming of the control API: ``drone:<droneId>`` for
telemetry, drone status and battery alerts, ``mission:<missionId>`` for
mission status and progress.
"""

from collections.abc import Callable
import logging
import threading
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Handler = Callable[[str, str, dict[str, Any]], None]
"""``handler(topic, event_name, payload)``."""


def drone_topic(drone_id: str) -> str:
    return f"drone:{drone_id}"


def mission_topic(mission_id: str) -> str:
    return f"mission:{mission_id}"


@runtime_checkable
class TelemetryPublisher(Protocol):
    """Transport used by the simulator to emit events.

    ``publish`` is called from inside simulation ticks and must not block
    on I/O.
    """

    def publish(self, topic: str, event_name: str, payload: dict[str, Any]) -> None: ...


class InMemoryTelemetryPublisher:
    """Synchronous in-process fan-out.

    Handlers run on the publishing thread in subscription order, so events
    of one mission are observed in the order they were published. A failing
    handler is logged and skipped.
    """

    def __init__(self):
        self._handlers: dict[str | None, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``topic``.

        Args:
            topic (str): Topic to listen on, e.g. ``drone_topic("d1")``.
            handler (Handler): Called as ``handler(topic, event_name, payload)``.

        Returns:
            Callable[[], None]: Removes the subscription; calling it twice
            is harmless.

        Example:
            >>> publisher = InMemoryTelemetryPublisher()
            >>> unsubscribe = publisher.subscribe("drone:d1", print)
            >>> publisher.subscriber_count("drone:d1")
            1
            >>> unsubscribe()
        """
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for every topic.

        Args:
            handler (Handler): Called for each event on any topic, after the
                topic's own handlers.

        Returns:
            Callable[[], None]: Removes the subscription.
        """
        return self.subscribe(None, handler)

    def subscriber_count(self, topic: str) -> int:
        """Number of handlers subscribed to ``topic`` itself.

        Args:
            topic (str): Topic to count.

        Returns:
            int: Topic handlers, not counting ``subscribe_all`` handlers.
        """
        with self._lock:
            return len(self._handlers.get(topic, []))

    def publish(self, topic: str, event_name: str, payload: dict[str, Any]) -> None:
        """Deliver an event to the topic's handlers, then to the catch-all ones.

        Args:
            topic (str): Room the event belongs to.
            event_name (str): Event type, e.g. ``"telemetry:update"``.
            payload (dict[str, Any]): JSON-ready event body.
        """
        with self._lock:
            handlers = [*self._handlers.get(topic, []), *self._handlers.get(None, [])]
        for handler in handlers:
            try:
                handler(topic, event_name, payload)
            except Exception:
                logger.exception("Event handler failed for %s on %s", event_name, topic)
