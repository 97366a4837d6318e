"""Header access and trace-context propagation through AMQP headers.

Publishers inject W3C ``traceparent``/``tracestate`` (and ``baggage``) into
the message headers; the worker extracts them so the trace started upstream
continues through delivery handling. Tracing must never block processing:
anything malformed yields an empty context instead of an error.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from opentelemetry import propagate
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import Getter

logger = logging.getLogger(__name__)


class HeaderCarrier:
    """Read-only, typed view over a string-keyed header map.

    AMQP header values arrive as ``str`` or raw ``bytes``; both decode to
    ``str``. Missing, ``None``, empty and any other value type all read as
    absent.
    """

    def __init__(self, headers: Mapping[str, Any] | None = None) -> None:
        self._headers: Mapping[str, Any] = headers or {}

    def get(self, key: str) -> str | None:
        value = self._headers.get(key)
        if isinstance(value, (bytes, bytearray)):
            try:
                value = bytes(value).decode("utf-8")
            except UnicodeDecodeError:
                return None
        if not isinstance(value, str) or not value:
            return None
        return value

    def keys(self) -> list[str]:
        return [str(k) for k in self._headers]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


class _HeaderGetter(Getter[HeaderCarrier]):
    """Adapts HeaderCarrier to the OpenTelemetry propagator getter protocol."""

    def get(self, carrier: HeaderCarrier, key: str) -> list[str] | None:
        value = carrier.get(key)
        return [value] if value is not None else None

    def keys(self, carrier: HeaderCarrier) -> list[str]:
        return carrier.keys()


_getter = _HeaderGetter()


def extract_context(headers: HeaderCarrier | Mapping[str, Any] | None) -> Context:
    """Return the upstream trace context found in *headers*.

    Falls back to an empty root context when there is nothing valid to
    continue from.
    """
    carrier = headers if isinstance(headers, HeaderCarrier) else HeaderCarrier(headers)
    try:
        return propagate.extract(carrier, context=Context(), getter=_getter)
    except Exception as exc:  # noqa: BLE001
        # Trace propagation must never block message processing.
        logger.debug("Ignoring unreadable trace headers: %s", exc, exc_info=exc)
        return Context()


def inject_context(
    headers: MutableMapping[str, Any], context: Context | None = None
) -> MutableMapping[str, Any]:
    """Write the current (or given) trace context into *headers*."""
    propagate.inject(headers, context=context)
    return headers
