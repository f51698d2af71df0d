"""Redis pub/sub transport.

Ticks only enqueue; a single background thread owns the Redis connection
and publishes messages in FIFO order, which preserves per-mission event
ordering.
"""

import json
import logging
from queue import Empty, Full, Queue
import threading
from typing import Any

import redis

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_PREFIX = "surveysim"
_STOP = object()


class RedisTelemetryPublisher:
    """Publishes events as JSON on ``<prefix>:<topic>`` channels.

    Message body: ``{"event": event_name, "topic": topic, "data": payload}``.

    Args:
        client: Connected Redis client.
        channel_prefix: Prefix of every channel name.
        max_queue: Upper bound of buffered messages; when full, new
            messages are dropped and logged instead of blocking the tick.
    """

    def __init__(
        self,
        client: redis.Redis,
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
        max_queue: int = 10_000,
    ):
        self.client = client
        self.channel_prefix = channel_prefix
        self.dropped = 0
        self._queue: Queue = Queue(maxsize=max_queue)
        self._worker = threading.Thread(
            target=self._drain, name="RedisTelemetryPublisher", daemon=True
        )
        self._worker.start()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisTelemetryPublisher":
        client = redis.Redis.from_url(url, decode_responses=True)
        return cls(client, **kwargs)

    def channel(self, topic: str) -> str:
        return f"{self.channel_prefix}:{topic}"

    def publish(self, topic: str, event_name: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"event": event_name, "topic": topic, "data": payload})
        try:
            self._queue.put_nowait((self.channel(topic), message))
        except Full:
            self.dropped += 1
            logger.warning("Telemetry queue full, dropped %s on %s", event_name, topic)

    def close(self, timeout: float = 5.0) -> None:
        """Flush queued messages and stop the worker thread."""
        self._queue.put(_STOP)
        self._worker.join(timeout=timeout)

    def _drain(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=1.0)
            except Empty:
                continue
            if item is _STOP:
                return
            channel, message = item
            try:
                self.client.publish(channel, message)
            except redis.RedisError:
                logger.exception("Failed to publish to %s", channel)
