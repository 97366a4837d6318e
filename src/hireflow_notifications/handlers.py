"""Command handler port and the default email handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.context import Context

    from .command import SendEmailCommand
    from .correlation import WorkerIdentity

logger = logging.getLogger(__name__)


@runtime_checkable
class ICommandHandler(Protocol):
    """
    Port for the side-effecting work done per command.

    Return normally on success; raise any ``Exception`` (typically
    ``HandlerError``) for a failure worth retrying. Once started, a handler
    always runs to completion.
    """

    async def __call__(
        self,
        context: Context,
        worker: WorkerIdentity,
        command: SendEmailCommand,
        attempt: int,
    ) -> None:
        """
        Handle *command*.

        Args:
            context: Trace context of the current attempt span.
            worker: Identity of the processing worker.
            command: The decoded command.
            attempt: 1-based attempt number.
        """
        ...


class LoggingEmailHandler:
    """Stand-in email sender that logs the notification and succeeds."""

    async def __call__(
        self,
        context: Context,  # noqa: ARG002
        worker: WorkerIdentity,
        command: SendEmailCommand,
        attempt: int,
    ) -> None:
        logger.info(
            "NOTIFY SendEmail to=%s subject=%r applicationId=%s "
            "(attempt %d, worker %s)",
            command.to,
            command.subject,
            command.application_id,
            attempt,
            worker.worker_id,
        )
