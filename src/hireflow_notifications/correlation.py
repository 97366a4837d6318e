"""Worker identity and per-delivery correlation IDs."""

from __future__ import annotations

import secrets
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .command import SendEmailCommand
    from .envelope import DeliveryProperties
    from .propagation import HeaderCarrier

MESSAGE_ID_HEADER = "message_id"
CORRELATION_ID_HEADER = "correlation_id"

# ContextVars so every log record emitted while a delivery is processed
# carries its identity without threading it through each call.
_worker_id: ContextVar[str | None] = ContextVar("worker_id", default=None)
_message_id: ContextVar[str | None] = ContextVar("message_id", default=None)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def new_worker_id() -> str:
    """Return a short random id that tells worker instances apart."""
    return secrets.token_hex(4)


def generate_message_id() -> str:
    """Generate a new message ID."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class WorkerIdentity:
    """Who is processing: a per-process id plus where it runs."""

    worker_id: str
    pod_name: str = ""
    pod_namespace: str = ""
    node_name: str = ""

    @classmethod
    def create(
        cls, pod_name: str = "", pod_namespace: str = "", node_name: str = ""
    ) -> WorkerIdentity:
        return cls(
            worker_id=new_worker_id(),
            pod_name=pod_name,
            pod_namespace=pod_namespace,
            node_name=node_name,
        )

    @property
    def consumer_tag(self) -> str:
        return f"notifications-{self.worker_id}"


@dataclass(frozen=True)
class CorrelationIdentity:
    """Message and correlation ID for one delivery. Both are never empty."""

    message_id: str
    correlation_id: str

    @classmethod
    def derive(
        cls,
        properties: DeliveryProperties,
        headers: HeaderCarrier,
        command: SendEmailCommand | None = None,
    ) -> CorrelationIdentity:
        """Resolve IDs from broker properties, then headers, then the command.

        message_id: property -> ``message_id`` header -> fresh token.
        correlation_id: property -> ``correlation_id`` header ->
        command application id -> message_id.
        """
        message_id = (
            properties.message_id
            or headers.get(MESSAGE_ID_HEADER)
            or generate_message_id()
        )
        correlation_id = (
            properties.correlation_id
            or headers.get(CORRELATION_ID_HEADER)
            or (command.application_id if command is not None else None)
            or message_id
        )
        return cls(message_id=message_id, correlation_id=correlation_id)


def get_worker_id() -> str | None:
    """Get current worker ID from context."""
    return _worker_id.get()


def set_worker_id(worker_id: str | None) -> None:
    """Set worker ID in context."""
    _worker_id.set(worker_id)


def get_message_id() -> str | None:
    """Get current message ID from context."""
    return _message_id.get()


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def bind_delivery(identity: CorrelationIdentity | None) -> None:
    """Attach (or clear, with None) the delivery identity in context."""
    if identity is None:
        _message_id.set(None)
        _correlation_id.set(None)
        return
    _message_id.set(identity.message_id)
    _correlation_id.set(identity.correlation_id)


def get_context_vars() -> Mapping[str, str | None]:
    """Get all identity context variables, e.g. for log records."""
    return {
        "worker_id": get_worker_id(),
        "message_id": get_message_id(),
        "correlation_id": get_correlation_id(),
    }
