"""Notifications worker: RabbitMQ command consumption with retry and dead-lettering."""

from __future__ import annotations

from .command import CommandDecoder, SendEmailCommand
from .correlation import CorrelationIdentity, WorkerIdentity
from .envelope import Delivery, DeliveryProperties, Settlement
from .exceptions import (
    CommandDecodeError,
    ConfigurationError,
    DeliveryAlreadySettledError,
    HandlerError,
    MessagingConnectionError,
    MessagingError,
    NotificationsError,
    PoisonMessageError,
)
from .handlers import ICommandHandler, LoggingEmailHandler
from .processor import DeliveryProcessor, ProcessingOutcome
from .propagation import HeaderCarrier, extract_context, inject_context
from .retry import RetryPolicy
from .worker import IDeliveryStream, NotificationsWorker

__all__ = [
    "CommandDecodeError",
    "CommandDecoder",
    "ConfigurationError",
    "CorrelationIdentity",
    "Delivery",
    "DeliveryAlreadySettledError",
    "DeliveryProcessor",
    "DeliveryProperties",
    "HandlerError",
    "HeaderCarrier",
    "ICommandHandler",
    "IDeliveryStream",
    "LoggingEmailHandler",
    "MessagingConnectionError",
    "MessagingError",
    "NotificationsError",
    "NotificationsWorker",
    "PoisonMessageError",
    "ProcessingOutcome",
    "RetryPolicy",
    "Settlement",
    "WorkerIdentity",
    "extract_context",
    "inject_context",
]
