"""Event transports."""

from .publisher import (
    Handler,
    InMemoryTelemetryPublisher,
    TelemetryPublisher,
    drone_topic,
    mission_topic,
)
from .redis_publisher import RedisTelemetryPublisher

__all__ = [
    "Handler",
    "InMemoryTelemetryPublisher",
    "RedisTelemetryPublisher",
    "TelemetryPublisher",
    "drone_topic",
    "mission_topic",
]
