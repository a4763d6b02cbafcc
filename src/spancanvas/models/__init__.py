"""spancanvas domain models."""

from spancanvas.models.snapshot import (
    HighlightSnapshot,
    Version,
    VersionEdit,
    VersionPanelEntry,
    is_highlight_snapshot,
)
from spancanvas.models.span import LockedSpan, ParseResult, Span, default_span_id

__all__ = [
    "HighlightSnapshot",
    "LockedSpan",
    "ParseResult",
    "Span",
    "Version",
    "VersionEdit",
    "VersionPanelEntry",
    "default_span_id",
    "is_highlight_snapshot",
]
