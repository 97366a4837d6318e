"""Process bootstrap: settings, logging, tracing, broker, signals, run."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

from aio_pika.exceptions import AMQPError

from .correlation import WorkerIdentity, set_worker_id
from .exceptions import MessagingError
from .handlers import LoggingEmailHandler
from .processor import DeliveryProcessor
from .rabbitmq import RabbitMQConnectionManager, RabbitMQDeliveryStream
from .settings import WorkerSettings, get_settings
from .structured_logging import configure_logging
from .telemetry import init_tracer
from .worker import NotificationsWorker

if TYPE_CHECKING:
    from .handlers import ICommandHandler

logger = logging.getLogger("hireflow_notifications")


def install_signal_handlers(cancelled: asyncio.Event) -> None:
    """Set *cancelled* on SIGTERM/SIGINT (scale-down, rollout, Ctrl-C)."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, cancelled.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("signal %s not supported on this platform", sig.name)


async def run(
    settings: WorkerSettings,
    handler: ICommandHandler | None = None,
    cancelled: asyncio.Event | None = None,
) -> int:
    """Run the worker until shutdown. Returns the process exit status."""
    worker = WorkerIdentity.create(
        pod_name=settings.pod_name,
        pod_namespace=settings.pod_namespace,
        node_name=settings.node_name,
    )
    set_worker_id(worker.worker_id)
    if cancelled is None:
        cancelled = asyncio.Event()
        install_signal_handlers(cancelled)

    logger.info(
        "starting notifications worker (queue=%s, pod=%s, ns=%s, node=%s)",
        settings.worker_queue,
        worker.pod_name,
        worker.pod_namespace,
        worker.node_name,
    )
    shutdown_tracer = init_tracer(settings, worker)

    connection = RabbitMQConnectionManager(settings.rabbitmq_connection_string)
    stream = RabbitMQDeliveryStream(
        connection,
        settings.worker_queue,
        consumer_tag=worker.consumer_tag,
        declare_queue=settings.declare_queue,
        dead_letter_exchange=settings.dead_letter_exchange,
    )
    try:
        try:
            await stream.open()
        except (MessagingError, AMQPError) as e:
            logger.critical("failed to start consumer on %s: %s", settings.worker_queue, e)
            return 1

        processor = DeliveryProcessor(
            handler or LoggingEmailHandler(),
            worker,
            cancelled,
            queue_name=settings.worker_queue,
        )
        notifications = NotificationsWorker(
            stream,
            processor,
            shutdown_grace_period=settings.shutdown_grace_period,
        )
        await notifications.run_until_stopped(cancelled)
    finally:
        try:
            await connection.close()
            logger.info("RabbitMQ connection closed")
        except Exception as e:  # noqa: BLE001
            logger.warning("error closing RabbitMQ connection: %s", e)
        if shutdown_tracer is not None:
            shutdown_tracer()

    logger.info("notifications worker shutdown complete")
    return 0


def main() -> int:
    """Console entry point."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    return asyncio.run(run(settings))
