"""Delivery: one inbound message paired with exactly one terminal action."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import DeliveryAlreadySettledError
from .propagation import HeaderCarrier

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from aio_pika.abc import AbstractIncomingMessage


class Settlement(str, enum.Enum):
    """The terminal action taken for a delivery."""

    ACK = "ack"
    REQUEUE = "requeue"
    DEAD_LETTER = "dead_letter"


class DeliveryProperties(BaseModel):
    """Broker-assigned properties of a delivery."""

    model_config = ConfigDict(frozen=True)

    message_id: str | None = None
    correlation_id: str | None = None
    exchange: str = ""
    routing_key: str = ""
    consumer_tag: str | None = None
    delivery_tag: int | None = None
    redelivered: bool = Field(default=False)


class Delivery:
    """Wraps one inbound message: payload, headers, properties, terminal action.

    Exactly one of :meth:`ack`, :meth:`requeue` or :meth:`dead_letter` may be
    called, exactly once. The delivery counts as settled as soon as the
    action is chosen, even if the broker call then fails.
    """

    def __init__(
        self,
        body: bytes,
        *,
        headers: Mapping[str, Any] | None = None,
        properties: DeliveryProperties | None = None,
        on_ack: Callable[[], Awaitable[None]],
        on_reject: Callable[[bool], Awaitable[None]],
    ) -> None:
        """Configure delivery.

        Args:
            body: Raw payload bytes.
            headers: AMQP header table (values may be str or bytes).
            properties: Broker properties; defaults to empty.
            on_ack: Async callable acknowledging the message at the broker.
            on_reject: Async callable ``(requeue) -> None`` rejecting it.
        """
        self.body = body
        self.headers = HeaderCarrier(headers)
        self.properties = properties or DeliveryProperties()
        self._on_ack = on_ack
        self._on_reject = on_reject
        self._settlement: Settlement | None = None

    @classmethod
    def from_incoming(cls, message: AbstractIncomingMessage) -> Delivery:
        """Build a Delivery from an aio-pika incoming message."""

        async def _reject(requeue: bool) -> None:
            await message.reject(requeue=requeue)

        return cls(
            message.body,
            headers=dict(message.headers or {}),
            properties=DeliveryProperties(
                message_id=message.message_id or None,
                correlation_id=message.correlation_id or None,
                exchange=message.exchange or "",
                routing_key=message.routing_key or "",
                consumer_tag=message.consumer_tag,
                delivery_tag=message.delivery_tag,
                redelivered=bool(message.redelivered),
            ),
            on_ack=message.ack,
            on_reject=_reject,
        )

    @property
    def settlement(self) -> Settlement | None:
        """The terminal action taken, or None while still pending."""
        return self._settlement

    @property
    def is_settled(self) -> bool:
        return self._settlement is not None

    def _settle(self, action: Settlement) -> None:
        if self._settlement is not None:
            raise DeliveryAlreadySettledError(action.value, self._settlement.value)
        self._settlement = action

    async def ack(self) -> None:
        """Acknowledge: the message was processed."""
        self._settle(Settlement.ACK)
        await self._on_ack()

    async def requeue(self) -> None:
        """Reject with requeue so another worker can process it from scratch."""
        self._settle(Settlement.REQUEUE)
        await self._on_reject(True)

    async def dead_letter(self) -> None:
        """Reject without requeue; the queue topology routes it to the DLQ."""
        self._settle(Settlement.DEAD_LETTER)
        await self._on_reject(False)
