"""spancanvas: keeps machine-labeled spans aligned with freely edited text."""

from spancanvas.config import LabelingSettings
from spancanvas.errors import (
    DomProjectionFailure,
    InvalidSpanError,
    LabelingBackendError,
    NormalizationError,
    SpanCanvasError,
    VersionNotFoundError,
)
from spancanvas.highlighting import (
    EditorSurface,
    HighlightProjector,
    OverlapPrecedence,
    ProjectionReport,
    build_parse_result,
    fingerprint,
)
from spancanvas.interaction import PromptCanvasState, SpanInteractionController
from spancanvas.labeling import (
    HttpLabelingBackend,
    KeywordLabelingBackend,
    LabelingStatus,
    SpanLabelingCache,
    SpanLabelingClient,
)
from spancanvas.models import HighlightSnapshot, LockedSpan, ParseResult, Span, Version
from spancanvas.pipeline import HighlightPipeline
from spancanvas.text import normalize, signature
from spancanvas.versioning import VersionStore

__version__ = "0.1.0"

__all__ = [
    "DomProjectionFailure",
    "EditorSurface",
    "HighlightPipeline",
    "HighlightProjector",
    "HighlightSnapshot",
    "HttpLabelingBackend",
    "InvalidSpanError",
    "KeywordLabelingBackend",
    "LabelingBackendError",
    "LabelingSettings",
    "LabelingStatus",
    "LockedSpan",
    "NormalizationError",
    "OverlapPrecedence",
    "ParseResult",
    "ProjectionReport",
    "PromptCanvasState",
    "Span",
    "SpanCanvasError",
    "SpanInteractionController",
    "SpanLabelingCache",
    "SpanLabelingClient",
    "Version",
    "VersionNotFoundError",
    "VersionStore",
    "build_parse_result",
    "fingerprint",
    "normalize",
    "signature",
]
