"""Exceptions for hireflow-notifications."""

from __future__ import annotations


class NotificationsError(Exception):
    """Root exception for the notifications worker."""


class ConfigurationError(NotificationsError):
    """Raised when worker configuration is inconsistent."""


class CommandDecodeError(NotificationsError):
    """Raised when a payload cannot be decoded into a command.

    Carries the raw payload so it can be logged for diagnosis.
    """

    def __init__(self, message: str, raw: bytes = b"") -> None:
        self.raw = raw
        super().__init__(message)


class PoisonMessageError(CommandDecodeError):
    """A structurally invalid payload. Never retried; always dead-lettered."""


class HandlerError(NotificationsError):
    """Raised by a command handler for a failure worth retrying."""


class DeliveryAlreadySettledError(NotificationsError):
    """Raised when a second terminal action is attempted on one delivery."""

    def __init__(self, action: str, settled_with: str) -> None:
        self.action = action
        self.settled_with = settled_with
        super().__init__(
            f"Cannot {action}: delivery already settled with {settled_with}"
        )


class MessagingError(NotificationsError):
    """Base class for all broker-related errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the message broker fails."""
