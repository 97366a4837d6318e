"""Prefetch-one RabbitMQ delivery stream with targeted intake stop."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from aio_pika import RobustChannel

from ..envelope import Delivery

if TYPE_CHECKING:
    from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

    from .connection import RabbitMQConnectionManager

logger = logging.getLogger(__name__)

_END = object()


class RabbitMQDeliveryStream:
    """Async iterator of Deliveries consumed from one queue.

    Manual acknowledgement with QoS prefetch (1 by default), so at most one
    unsettled delivery is held per worker. :meth:`stop_intake` cancels only
    this consumer's tag: the channel stays open so the in-flight delivery
    can still be acked or rejected. Iteration ends after an intake stop or
    once the channel is closed for good.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        queue_name: str,
        *,
        consumer_tag: str,
        prefetch_count: int = 1,
        declare_queue: bool = True,
        dead_letter_exchange: str | None = "hireflow.dlx",
    ) -> None:
        """Configure stream.

        Args:
            connection: Shared connection manager.
            queue_name: Queue to consume from.
            consumer_tag: Tag used to cancel intake without closing the channel.
            prefetch_count: QoS prefetch.
            declare_queue: Declare the queue (with dead-letter arguments) on open.
            dead_letter_exchange: Exchange for rejected-without-requeue messages.
        """
        self._connection = connection
        self._queue_name = queue_name
        self._consumer_tag = consumer_tag
        self._prefetch_count = prefetch_count
        self._declare_queue = declare_queue
        self._dead_letter_exchange = dead_letter_exchange
        self._queue: AbstractQueue | None = None
        self._buffer: asyncio.Queue[Any] = asyncio.Queue()
        self._intake_stopped = False
        self._closed = False

    async def open(self) -> None:
        """Connect, apply QoS, resolve the queue and start consuming."""
        await self._connection.connect()
        channel = self._connection.channel
        await channel.set_qos(prefetch_count=self._prefetch_count)
        if self._declare_queue:
            self._queue = await self._connection.declare_queue(
                self._queue_name,
                dead_letter_exchange=self._dead_letter_exchange,
            )
        else:
            self._queue = await channel.declare_queue(self._queue_name, passive=True)
        channel.close_callbacks.add(self._on_channel_closed)
        await self._queue.consume(
            self._on_message,
            no_ack=False,
            consumer_tag=self._consumer_tag,
        )
        logger.info(
            "consuming from %s (consumer_tag=%s, prefetch=%d)",
            self._queue_name,
            self._consumer_tag,
            self._prefetch_count,
        )

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        if self._intake_stopped:
            # Raced the consumer cancel; hand it back untouched.
            await message.reject(requeue=True)
            return
        await self._buffer.put(Delivery.from_incoming(message))

    def _on_channel_closed(self, sender: Any, exc: BaseException | None = None) -> None:
        # A robust channel lost to the network is reopened by aio-pika, which
        # also re-registers this consumer, so the stream keeps going. Only a
        # close we asked for, or one on a non-robust channel, ends it.
        if isinstance(sender, RobustChannel) and not self._connection.is_closing:
            dropped = self._drop_buffered()
            logger.warning(
                "channel closed (%s); waiting for restore, dropped %d buffered",
                exc,
                dropped,
            )
            return
        logger.info("channel closed (%s); ending delivery stream", exc)
        self._finish()

    def _drop_buffered(self) -> int:
        """Discard deliveries from a dead channel; the broker already requeued them."""
        dropped = 0
        while not self._buffer.empty():
            item = self._buffer.get_nowait()
            if item is _END:
                self._buffer.put_nowait(_END)
                break
            dropped += 1
        return dropped

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.put_nowait(_END)

    async def stop_intake(self) -> None:
        """Stop new deliveries; requeue any received but not yet started."""
        if self._intake_stopped:
            return
        self._intake_stopped = True
        if self._queue is not None:
            try:
                await self._queue.cancel(self._consumer_tag)
            except Exception as e:  # noqa: BLE001
                logger.error("failed to cancel consumer %s: %s", self._consumer_tag, e)
        while not self._buffer.empty():
            item = self._buffer.get_nowait()
            if item is _END:
                continue
            try:
                await item.requeue()
            except Exception as e:  # noqa: BLE001
                logger.error("failed to requeue buffered delivery: %s", e)
        self._closed = True
        self._buffer.put_nowait(_END)

    def __aiter__(self) -> RabbitMQDeliveryStream:
        return self

    async def __anext__(self) -> Delivery:
        if self._closed and self._buffer.empty():
            raise StopAsyncIteration
        item = await self._buffer.get()
        if item is _END:
            raise StopAsyncIteration
        return item
