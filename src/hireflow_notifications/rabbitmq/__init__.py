"""RabbitMQ transport adapter (aio-pika)."""

from __future__ import annotations

from .connection import RabbitMQConnectionManager
from .stream import RabbitMQDeliveryStream

__all__ = [
    "RabbitMQConnectionManager",
    "RabbitMQDeliveryStream",
]
