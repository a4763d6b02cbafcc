"""spancanvas observability helpers."""

from spancanvas.observability.tracing import (
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    reset_tracing,
    set_span_attributes,
    traced_operation,
)

__all__ = [
    "clear_test_spans",
    "configure_tracing",
    "get_test_spans",
    "reset_tracing",
    "set_span_attributes",
    "traced_operation",
]
