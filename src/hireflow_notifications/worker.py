"""Consume loop and graceful shutdown for the notifications worker."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .envelope import Delivery
    from .processor import DeliveryProcessor

logger = logging.getLogger(__name__)


@runtime_checkable
class IDeliveryStream(Protocol):
    """
    Port for a durable, ordered delivery stream with per-message settlement.

    Iteration ends when the stream closes (intake stopped, channel or
    connection ended).
    """

    def __aiter__(self) -> AsyncIterator[Delivery]: ...

    async def stop_intake(self) -> None:
        """Stop handing out new deliveries without dropping the connection."""
        ...


class NotificationsWorker:
    """One consume task processing deliveries strictly one at a time.

    ``done`` is set exactly once, when the consume loop ends. Shutdown
    stops intake, then waits up to ``shutdown_grace_period`` seconds for
    the in-flight delivery before cancelling the loop.
    """

    def __init__(
        self,
        stream: IDeliveryStream,
        processor: DeliveryProcessor,
        *,
        shutdown_grace_period: float = 10.0,
    ) -> None:
        self._stream = stream
        self._processor = processor
        self._shutdown_grace_period = shutdown_grace_period
        self._task: asyncio.Task[None] | None = None
        self._done = asyncio.Event()

    @property
    def done(self) -> asyncio.Event:
        return self._done

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run_loop(), name="notifications-consume")
        logger.info("worker up; waiting for messages")

    async def _run_loop(self) -> None:
        try:
            async for delivery in self._stream:
                try:
                    await self._processor.process(delivery)
                except Exception:
                    logger.exception("unexpected error while processing delivery")
            logger.info("delivery stream closed (intake stopped or channel ended)")
        except Exception:
            logger.exception("consume loop failed")
        finally:
            self._done.set()

    async def run_until_stopped(self, cancelled: asyncio.Event) -> None:
        """Run until *cancelled* fires or the consume loop ends on its own."""
        await self.start()
        waiters = {
            asyncio.create_task(cancelled.wait()),
            asyncio.create_task(self._done.wait()),
        }
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

        if self._done.is_set():
            logger.info("consumer loop finished; shutting down")
            return
        logger.info("received shutdown signal; cancelling consumer")
        await self.stop()

    async def stop(self) -> None:
        """Stop intake and wait (bounded) for the in-flight delivery."""
        await self._stream.stop_intake()
        try:
            await asyncio.wait_for(
                self._done.wait(), timeout=self._shutdown_grace_period
            )
        except asyncio.TimeoutError:
            logger.warning(
                "shutdown timeout (%.1fs) waiting for consumer loop; exiting",
                self._shutdown_grace_period,
            )
            if self._task is not None:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
        else:
            logger.info("consumer loop finished; shutting down")
