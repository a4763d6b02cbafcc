"""OpenTelemetry tracing for spancanvas.

Tracing is optional and off by default. When enabled, labeling dispatches
and highlight projections are wrapped in spans carrying lengths, counts and
signatures.

Environment Variables:
    SPANCANVAS_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    SPANCANVAS_OTEL_SERVICE_NAME: Service name for spans (default: "spancanvas")
    SPANCANVAS_OTEL_EXPORTER: Exporter type, only "console" is built in (default: "console")
    SPANCANVAS_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Privacy:
    - Never export prompt text, span quotes or context windows
    - Text is identified by signature and length only
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider

logger = logging.getLogger(__name__)

TRACER_NAME = "spancanvas"

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None  # InMemorySpanExporter when test capture is on


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip() or default


def is_tracing_enabled() -> bool:
    """Return True if SPANCANVAS_OTEL_ENABLED is set."""
    return _get_env_bool("SPANCANVAS_OTEL_ENABLED", False)


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for spancanvas.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = is_tracing_enabled()
    test_capture = _get_env_bool("SPANCANVAS_OTEL_TEST_CAPTURE", False)

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (SPANCANVAS_OTEL_ENABLED not set)")
        return False

    # The global provider can only be installed once per process
    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

        service_name = _get_env_str("SPANCANVAS_OTEL_SERVICE_NAME", "spancanvas")
        exporter_type = _get_env_str("SPANCANVAS_OTEL_EXPORTER", "console")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        else:
            if exporter_type != "console":
                logger.warning("Unknown exporter %r; falling back to console", exporter_type)
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            "in-memory" if test_capture else "console",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        return False


@contextmanager
def traced_operation(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    """Wrap a block in an OpenTelemetry span when tracing is enabled.

    Args:
        name: Span name, e.g. "spancanvas.labeling.dispatch".
        attributes: Span attributes; None values are skipped.

    Yields:
        The active span, or None when tracing is disabled.
    """
    if not is_tracing_enabled():
        yield None
        return

    from opentelemetry import trace

    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            raise


def set_span_attributes(span: Any, attributes: dict[str, Any]) -> None:
    """Set attributes on a span returned by traced_operation.

    Args:
        span: Span yielded by traced_operation (None is ignored).
        attributes: Dictionary of attribute key-value pairs.
    """
    if span is None or not span.is_recording():
        return
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            span.set_attribute(key, ",".join(str(v) for v in value))
        else:
            span.set_attribute(key, value)


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from in-memory exporter (for testing).

    Returns:
        List of captured spans if SPANCANVAS_OTEL_TEST_CAPTURE=1, else empty list.
    """
    if _test_exporter is not None and hasattr(_test_exporter, "get_finished_spans"):
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None and hasattr(_test_exporter, "clear"):
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The OpenTelemetry TracerProvider cannot be replaced once set, so the
    test exporter is kept and only its spans are cleared.
    """
    global _is_configured

    clear_test_spans()
    _is_configured = False
