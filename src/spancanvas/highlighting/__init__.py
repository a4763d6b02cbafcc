"""Highlighting: parse result building, fingerprinting and tree projection."""

from spancanvas.highlighting.fingerprint import DISABLED_FINGERPRINT, fingerprint
from spancanvas.highlighting.parse_result import (
    OverlapPrecedence,
    build_parse_result,
    validate_span,
)
from spancanvas.highlighting.projector import (
    EditorSurface,
    HighlightProjector,
    ProjectionReport,
    SelectionPoint,
    SurfaceSelection,
)
from spancanvas.highlighting.text_runs import (
    TextRun,
    TextRunIndex,
    build_text_run_index,
    map_offset,
    unwrap_marker,
    wrap_range_segments,
)

__all__ = [
    "DISABLED_FINGERPRINT",
    "EditorSurface",
    "HighlightProjector",
    "OverlapPrecedence",
    "ProjectionReport",
    "SelectionPoint",
    "SurfaceSelection",
    "TextRun",
    "TextRunIndex",
    "build_parse_result",
    "build_text_run_index",
    "fingerprint",
    "map_offset",
    "unwrap_marker",
    "validate_span",
    "wrap_range_segments",
]
