"""Suggestion-fetch request emitted when a span becomes selected.

Generating suggestions is the host's job; this module only fixes the
request shape.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from spancanvas.models.span import ParseResult, Span

DEFAULT_TRIGGER = "highlight"

_CAMEL = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class SuggestionOffsets(BaseModel):
    model_config = _CAMEL

    start: int
    end: int


class SuggestionMetadata(BaseModel):
    """Span metadata forwarded to the suggestion backend."""

    model_config = _CAMEL

    category: str | None = None
    source: str | None = None
    span_id: str
    start: int
    end: int
    start_grapheme: int | None = None
    end_grapheme: int | None = None
    validator_pass: bool | None = None
    confidence: float | None = None
    quote: str
    left_ctx: str = ""
    right_ctx: str = ""
    idempotency_key: str | None = None
    span: Span


class SuggestionRequest(BaseModel):
    """Request passed to ``on_fetch_suggestions``."""

    model_config = _CAMEL

    highlighted_text: str
    original_text: str
    displayed_prompt: str
    offsets: SuggestionOffsets
    metadata: SuggestionMetadata
    trigger: str = DEFAULT_TRIGGER
    all_labeled_spans: tuple[Span, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        """camelCase JSON-ready dict."""
        return self.model_dump(by_alias=True, mode="json")


def build_suggestion_request(
    span: Span,
    parse_result: ParseResult,
    displayed_prompt: str | None = None,
    *,
    trigger: str = DEFAULT_TRIGGER,
) -> SuggestionRequest:
    """Build the suggestion request for ``span``.

    The quote falls back to the live text slice when the span carries none.
    """
    text = displayed_prompt if displayed_prompt is not None else parse_result.display_text
    quote = span.quote if span.quote.strip() else text[span.start : span.end]
    return SuggestionRequest(
        highlighted_text=quote,
        original_text=quote,
        displayed_prompt=text,
        offsets=SuggestionOffsets(start=span.start, end=span.end),
        metadata=SuggestionMetadata(
            category=span.category,
            source=span.source,
            span_id=span.id,
            start=span.start,
            end=span.end,
            start_grapheme=span.start_grapheme,
            end_grapheme=span.end_grapheme,
            validator_pass=span.validator_pass,
            confidence=span.confidence,
            quote=quote,
            left_ctx=span.left_ctx,
            right_ctx=span.right_ctx,
            idempotency_key=span.idempotency_key,
            span=span,
        ),
        trigger=trigger,
        all_labeled_spans=parse_result.spans,
    )
