"""Pytest fixtures for notifications worker tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

# Ensure the package is importable when running pytest from the repo root
# (e.g. without pip install -e .)
_src = Path(__file__).resolve().parent.parent / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from hireflow_notifications.correlation import WorkerIdentity  # noqa: E402
from hireflow_notifications.envelope import Delivery, DeliveryProperties  # noqa: E402
from hireflow_notifications.exceptions import HandlerError  # noqa: E402
from hireflow_notifications.retry import RetryPolicy  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import Callable

    from opentelemetry.context import Context
    from opentelemetry.trace import Tracer

    from hireflow_notifications.command import SendEmailCommand

VALID_PAYLOAD = (
    b'{"type":"email","to":"a@x.com","subject":"hi",'
    b'"applicationId":"APP1","jobId":7}'
)


class ScriptedHandler:
    """Handler double failing the first ``fail_first`` calls, then succeeding."""

    def __init__(self, fail_first: int = 0) -> None:
        self.fail_first = fail_first
        self.calls: list[tuple[SendEmailCommand, int]] = []
        self.contexts: list[Context] = []

    async def __call__(
        self,
        context: Context,
        worker: WorkerIdentity,  # noqa: ARG002
        command: SendEmailCommand,
        attempt: int,
    ) -> None:
        self.calls.append((command, attempt))
        self.contexts.append(context)
        if len(self.calls) <= self.fail_first:
            raise HandlerError(f"simulated transient failure #{len(self.calls)}")

    @property
    def attempts(self) -> list[int]:
        return [attempt for _, attempt in self.calls]


class RecordingRetryPolicy(RetryPolicy):
    """RetryPolicy that records requested waits instead of sleeping.

    ``on_wait`` runs at the start of each wait, e.g. to fire cancellation.
    """

    def __init__(
        self,
        *,
        on_wait: Callable[[int], None] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.waits: list[float] = []
        self._on_wait = on_wait

    async def wait_before_retry(self, attempt: int, cancelled: asyncio.Event) -> bool:
        if self._on_wait is not None:
            self._on_wait(attempt)
        if cancelled.is_set():
            return False
        self.waits.append(self.delay_for_attempt(attempt))
        return True


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter: InMemorySpanExporter) -> Tracer:
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("tests")


@pytest.fixture
def worker_identity() -> WorkerIdentity:
    return WorkerIdentity(worker_id="deadbeef", pod_name="pod-1")


@pytest.fixture
def make_delivery() -> Callable[..., Delivery]:
    """Factory for Deliveries whose broker callbacks are AsyncMocks."""

    def _make(
        body: bytes = VALID_PAYLOAD,
        *,
        headers: dict[str, Any] | None = None,
        message_id: str | None = None,
        correlation_id: str | None = None,
        on_ack: AsyncMock | None = None,
        on_reject: AsyncMock | None = None,
    ) -> Delivery:
        return Delivery(
            body,
            headers=headers,
            properties=DeliveryProperties(
                message_id=message_id,
                correlation_id=correlation_id,
                exchange="",
                routing_key="notifications.commands",
                consumer_tag="notifications-deadbeef",
                delivery_tag=1,
            ),
            on_ack=on_ack or AsyncMock(),
            on_reject=on_reject or AsyncMock(),
        )

    return _make
