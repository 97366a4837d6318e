"""Delivery processing: decode, bounded retry with backoff, then settle.

State machine for one delivery::

    Decoding -> Poison                      (dead-letter, no handler call)
    Decoding -> Attempting(1)
    Attempting(n) -> Success                (ack)
    Attempting(n) -> RetryWait(n)           (n < max_attempts)
    Attempting(n) -> Exhausted              (n == max_attempts, dead-letter)
    Attempting(n) -> Interrupted            (cancelled before the handler ran)
    RetryWait(n) -> Attempting(n + 1) | Interrupted   (requeue)

Every path ends in exactly one terminal action on the delivery.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from .command import CommandDecoder
from .correlation import CorrelationIdentity, bind_delivery
from .exceptions import PoisonMessageError
from .propagation import extract_context
from .retry import RetryPolicy

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from .command import SendEmailCommand
    from .correlation import WorkerIdentity
    from .envelope import Delivery
    from .handlers import ICommandHandler

logger = logging.getLogger(__name__)

TRACER_NAME = "hireflow/notifications-worker"


class ProcessingOutcome(str, enum.Enum):
    """Terminal classification of one delivery."""

    ACKNOWLEDGED = "acknowledged"
    POISON = "poison"
    EXHAUSTED = "exhausted"
    INTERRUPTED = "interrupted"


class DeliveryProcessor:
    """Runs one delivery through decode, retries and its terminal action.

    The cancellation event is the process-wide shutdown signal. It is
    checked before every attempt and raced against every backoff wait; a
    handler that has started is always allowed to finish.
    """

    def __init__(
        self,
        handler: ICommandHandler,
        worker: WorkerIdentity,
        cancelled: asyncio.Event,
        *,
        retry_policy: RetryPolicy | None = None,
        decoder: CommandDecoder | None = None,
        tracer: trace.Tracer | None = None,
        queue_name: str = "",
    ) -> None:
        """Configure processor.

        Args:
            handler: Command handler invoked per attempt.
            worker: Identity of this worker instance.
            cancelled: Shutdown signal; set once, never cleared.
            retry_policy: Attempts and backoff; default RetryPolicy().
            decoder: Payload decoder; default CommandDecoder().
            tracer: Tracer for handle/attempt spans; default global tracer.
            queue_name: Source queue, recorded on spans.
        """
        self._handler = handler
        self._worker = worker
        self._cancelled = cancelled
        self._retry_policy = retry_policy or RetryPolicy()
        self._decoder = decoder or CommandDecoder()
        self._tracer = tracer or trace.get_tracer(TRACER_NAME)
        self._queue_name = queue_name

    async def process(self, delivery: Delivery) -> ProcessingOutcome:
        """Process *delivery* and return how it was settled.

        Only task cancellation escapes. Handler, decode and broker
        settlement failures are handled here.
        """
        parent = extract_context(delivery.headers)
        with self._tracer.start_as_current_span(
            "notifications.handle",
            context=parent,
            kind=SpanKind.CONSUMER,
            attributes=self._delivery_attributes(delivery),
        ) as span:
            try:
                return await self._process(delivery, span)
            finally:
                bind_delivery(None)

    def _delivery_attributes(self, delivery: Delivery) -> dict[str, Any]:
        props = delivery.properties
        attributes: dict[str, Any] = {
            "messaging.system": "rabbitmq",
            "messaging.destination": self._queue_name,
            "messaging.operation": "process",
            "amqp.exchange": props.exchange,
            "amqp.routing_key": props.routing_key,
            "hireflow.worker_id": self._worker.worker_id,
        }
        if props.consumer_tag:
            attributes["amqp.consumer_tag"] = props.consumer_tag
        return attributes

    async def _process(self, delivery: Delivery, span: trace.Span) -> ProcessingOutcome:
        try:
            command = self._decoder.decode(delivery.body)
        except PoisonMessageError as e:
            identity = CorrelationIdentity.derive(delivery.properties, delivery.headers)
            bind_delivery(identity)
            span.set_attributes(_identity_attributes(identity))
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, "invalid json"))
            logger.error(
                "invalid message, sending to DLQ (%s): %s",
                e,
                e.raw.decode("utf-8", errors="replace"),
            )
            await self._reject(delivery.dead_letter, span, "dead-letter")
            return ProcessingOutcome.POISON

        identity = CorrelationIdentity.derive(
            delivery.properties, delivery.headers, command
        )
        bind_delivery(identity)
        span.set_attributes(
            {
                **_identity_attributes(identity),
                "hireflow.application_id": command.application_id,
                "hireflow.job_id": command.job_id,
                "notification.type": command.type,
            }
        )
        return await self._run_attempts(delivery, command, identity, span)

    async def _run_attempts(
        self,
        delivery: Delivery,
        command: SendEmailCommand,
        identity: CorrelationIdentity,
        span: trace.Span,
    ) -> ProcessingOutcome:
        policy = self._retry_policy
        attempt = 1
        while True:
            if self._cancelled.is_set():
                return await self._interrupt(delivery, span, attempt)

            error = await self._attempt(delivery, command, identity, attempt)
            if error is None:
                span.set_status(Status(StatusCode.OK))
                return ProcessingOutcome.ACKNOWLEDGED

            logger.warning(
                "handler failed (attempt %d/%d) for applicationId=%s: %s",
                attempt,
                policy.max_attempts,
                command.application_id,
                error,
            )
            if not policy.should_retry(attempt):
                span.set_status(Status(StatusCode.ERROR, "max attempts reached; dlq"))
                logger.error(
                    "max attempts reached for applicationId=%s, sending to DLQ",
                    command.application_id,
                )
                await self._reject(delivery.dead_letter, span, "dead-letter")
                return ProcessingOutcome.EXHAUSTED

            logger.info(
                "backing off for %.1fs before retrying applicationId=%s",
                policy.delay_for_attempt(attempt),
                command.application_id,
            )
            if not await policy.wait_before_retry(attempt, self._cancelled):
                return await self._interrupt(delivery, span, attempt + 1)
            attempt += 1

    async def _attempt(
        self,
        delivery: Delivery,
        command: SendEmailCommand,
        identity: CorrelationIdentity,
        attempt: int,
    ) -> Exception | None:
        """Run the handler once; ack on success. Returns the handler error."""
        with self._tracer.start_as_current_span(
            "notifications.attempt",
            kind=SpanKind.INTERNAL,
            attributes={"attempt": attempt, **_identity_attributes(identity)},
            record_exception=False,
            set_status_on_exception=False,
        ) as attempt_span:
            try:
                await self._handler(
                    otel_context.get_current(), self._worker, command, attempt
                )
            except Exception as e:  # noqa: BLE001
                attempt_span.record_exception(e)
                attempt_span.set_status(Status(StatusCode.ERROR, "handler failed"))
                return e

            try:
                await delivery.ack()
            except Exception as e:  # noqa: BLE001
                # The outcome is already decided; the broker may redeliver.
                attempt_span.record_exception(e)
                attempt_span.set_status(Status(StatusCode.ERROR, "ack failed"))
                logger.error("failed to ack message: %s", e)
            else:
                attempt_span.set_status(Status(StatusCode.OK))
            return None

    async def _interrupt(
        self, delivery: Delivery, span: trace.Span, next_attempt: int
    ) -> ProcessingOutcome:
        span.set_status(Status(StatusCode.ERROR, "terminated; requeue"))
        logger.info(
            "shutdown in progress, requeueing message before attempt %d/%d",
            next_attempt,
            self._retry_policy.max_attempts,
        )
        await self._reject(delivery.requeue, span, "requeue")
        return ProcessingOutcome.INTERRUPTED

    async def _reject(
        self,
        action: Callable[[], Awaitable[None]],
        span: trace.Span,
        label: str,
    ) -> None:
        try:
            await action()
        except Exception as e:  # noqa: BLE001
            span.record_exception(e)
            logger.error("failed to %s message: %s", label, e)


def _identity_attributes(identity: CorrelationIdentity) -> dict[str, Any]:
    return {
        "messaging.message_id": identity.message_id,
        "messaging.correlation_id": identity.correlation_id,
    }
