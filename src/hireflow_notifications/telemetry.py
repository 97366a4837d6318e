"""OpenTelemetry tracer provider and propagator setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

if TYPE_CHECKING:
    from collections.abc import Callable

    from .correlation import WorkerIdentity
    from .settings import WorkerSettings

logger = logging.getLogger(__name__)


def configure_propagation() -> None:
    """Use W3C trace context plus baggage for header propagation."""
    set_global_textmap(
        CompositePropagator(
            [TraceContextTextMapPropagator(), W3CBaggagePropagator()]
        )
    )


def build_resource(settings: WorkerSettings, worker: WorkerIdentity) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: settings.otel_service_name,
            "hireflow.worker_id": worker.worker_id,
            "k8s.pod.name": worker.pod_name,
            "k8s.namespace.name": worker.pod_namespace,
            "k8s.node.name": worker.node_name,
        }
    )


def init_tracer(
    settings: WorkerSettings, worker: WorkerIdentity
) -> Callable[[], None] | None:
    """Install a batching OTLP/gRPC tracer provider globally.

    Best effort: returns a flush-and-shutdown callable, or None when tracing
    is disabled or setup failed (the worker then runs without export).
    """
    configure_propagation()
    if not settings.tracing_enabled:
        logger.info("tracing disabled")
        return None
    try:
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider = TracerProvider(resource=build_resource(settings, worker))
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as e:  # noqa: BLE001
        logger.warning("otel init failed (continuing without tracing): %s", e)
        return None

    trace.set_tracer_provider(provider)
    logger.info(
        "tracing to %s as %s",
        settings.otel_exporter_otlp_endpoint,
        settings.otel_service_name,
    )

    def shutdown() -> None:
        try:
            provider.shutdown()
        except Exception as e:  # noqa: BLE001
            logger.warning("otel shutdown error: %s", e)

    return shutdown
