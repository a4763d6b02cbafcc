"""Span interaction: canvas state, locks, suggestions and the controller."""

from spancanvas.interaction.controller import SpanInteractionController
from spancanvas.interaction.locks import build_locked_policy, find_lock, locked_span_ids
from spancanvas.interaction.state import CanvasStateChange, PromptCanvasState
from spancanvas.interaction.suggestions import (
    SuggestionMetadata,
    SuggestionOffsets,
    SuggestionRequest,
    build_suggestion_request,
)

__all__ = [
    "CanvasStateChange",
    "PromptCanvasState",
    "SpanInteractionController",
    "SuggestionMetadata",
    "SuggestionOffsets",
    "SuggestionRequest",
    "build_locked_policy",
    "build_suggestion_request",
    "find_lock",
    "locked_span_ids",
]
