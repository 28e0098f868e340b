"""Inbound/outbound chat message queues."""

from beacon_id.messaging.queue import (
    IDENTITY_IN,
    IDENTITY_OUT,
    InMemoryQueue,
    MessageQueue,
    RedisQueue,
)

__all__ = [
    "IDENTITY_IN",
    "IDENTITY_OUT",
    "InMemoryQueue",
    "MessageQueue",
    "RedisQueue",
]
