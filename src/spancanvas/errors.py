"""spancanvas error types.

Data-shape errors (InvalidSpanError, DomProjectionFailure) are raised by
per-span helpers and caught per span by the pipeline, so a single bad span
never blanks the editor. LabelingBackendError is surfaced as labeling status,
never raised into the render path.
"""

from __future__ import annotations


class SpanCanvasError(Exception):
    """Base exception for spancanvas operations.

    Attributes:
        message: Human-readable error message.
        span_id: Span associated with the failure (if applicable).
    """

    def __init__(self, message: str, *, span_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.span_id = span_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.span_id:
            parts.append(f"span_id={self.span_id}")
        return " ".join(parts)


class NormalizationError(SpanCanvasError):
    """Raised when text cannot be NFC-normalized.

    Should not occur for well-formed Unicode input. Callers treat it as
    fatal for that call and fall back to the raw text.
    """

    def __init__(
        self,
        message: str = "Text normalization failed",
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause


class LabelingBackendError(SpanCanvasError):
    """Raised by a labeling backend on network or model failure.

    Recoverable: the labeling client converts it into ``status='error'``
    and keeps the previous spans on screen.
    """

    def __init__(
        self,
        message: str = "Labeling backend failed",
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status_code={self.status_code}")
        return " ".join(parts)


class InvalidSpanError(SpanCanvasError):
    """Raised when a span has malformed offsets.

    Recovered locally by dropping the offending span, never by clamping
    to guessed bounds.
    """

    def __init__(self, reason: str, *, span_id: str | None = None) -> None:
        super().__init__(f"Invalid span: {reason}", span_id=span_id)
        self.reason = reason


class DomProjectionFailure(SpanCanvasError):
    """Raised when a span cannot be mapped onto the editor tree.

    Typical cause: editor content diverged from the expected display text.
    The projector skips that span (or the whole pass) and renders plain text.
    """

    def __init__(self, reason: str, *, span_id: str | None = None) -> None:
        super().__init__(f"Projection failed: {reason}", span_id=span_id)
        self.reason = reason


class VersionNotFoundError(SpanCanvasError):
    """Raised when a version id is not present in the version history."""

    def __init__(self, version_id: str) -> None:
        super().__init__(f"Version '{version_id}' does not exist")
        self.version_id = version_id
