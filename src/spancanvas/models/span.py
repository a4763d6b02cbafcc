"""Span models: labeled ranges over a normalized text snapshot.

A Span is a half-open ``[start, end)`` range of string indices into the
``display_text`` of the ParseResult that carries it. Backends speak
camelCase JSON; every model here accepts both spellings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def default_span_id(start: Any, end: Any) -> str:
    """Deterministic id for spans the source never named."""
    return f"span_{start}_{end}"


class Span(BaseModel):
    """A labeled character range with provenance metadata.

    Attributes:
        id: Stable identifier; ``span_<start>_<end>`` when not supplied.
        start: Inclusive start index into display text.
        end: Exclusive end index into display text.
        start_grapheme: Optional grapheme-cluster start offset.
        end_grapheme: Optional grapheme-cluster end offset.
        quote: Exact substring ``display_text[start:end]`` at labeling time.
        category: Taxonomy category assigned by the labeler.
        confidence: Labeler confidence.
        source: Labeler or strategy that produced the span.
        validator_pass: Whether the backend validator accepted the span.
        left_ctx: Short context window before the span.
        right_ctx: Short context window after the span.
        idempotency_key: Opaque key for deduplicating suggestion requests.
        stale: Set by the parse builder when ``quote`` no longer matches text.
        rank: Render precedence set by the parse builder; higher is innermost.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    id: str
    start: Annotated[int, Field(ge=0)]
    end: Annotated[int, Field(ge=0)]
    start_grapheme: int | None = None
    end_grapheme: int | None = None
    quote: str = ""
    category: str | None = None
    confidence: float | None = None
    source: str | None = None
    validator_pass: bool | None = None
    left_ctx: str = ""
    right_ctx: str = ""
    idempotency_key: str | None = None
    stale: bool = False
    rank: int = 0

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("quote") and isinstance(data.get("text"), str):
            data["quote"] = data["text"]
        if data.get("category") is None and isinstance(data.get("role"), str):
            data["category"] = data["role"]
        if not data.get("id"):
            data["id"] = default_span_id(data.get("start"), data.get("end"))
        return data

    @model_validator(mode="after")
    def _check_range(self) -> Span:
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be greater than start ({self.start})")
        return self

    @property
    def length(self) -> int:
        """Number of characters covered."""
        return self.end - self.start

    def overlaps(self, other: Span) -> bool:
        """Return True if the two ranges share at least one character."""
        return self.start < other.end and other.start < self.end

    def to_payload(self) -> dict[str, Any]:
        """Serialize to camelCase JSON-ready dict, omitting unset values."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"stale", "rank"})


class ParseResult(BaseModel):
    """Render-ready spans plus the text they index into.

    The only structure the rendering and interaction layers consume.
    ``display_text`` is always the normalized text on screen.
    """

    model_config = ConfigDict(frozen=True)

    spans: tuple[Span, ...] = ()
    display_text: str = ""

    def find(self, span_id: str | None) -> Span | None:
        """Return the span with ``span_id``, if present."""
        if not span_id:
            return None
        for span in self.spans:
            if span.id == span_id:
                return span
        return None

    def renderable_spans(self) -> tuple[Span, ...]:
        """Spans whose quote still matches the display text."""
        return tuple(span for span in self.spans if not span.stale)


@dataclass(frozen=True)
class LockedSpan:
    """Durable, offset-free reference to a span pinned by the user.

    Offsets shift across edits and relabelings, so locks are matched by
    content: two locks are equal when ``(quote, category)`` are equal.
    """

    quote: str
    category: str | None = None
    idempotency_key: str | None = field(default=None, compare=False)

    @classmethod
    def from_span(cls, span: Span) -> LockedSpan:
        return cls(quote=span.quote, category=span.category, idempotency_key=span.idempotency_key)

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.quote, self.category)

    def matches(self, span: Span) -> bool:
        """Return True if ``span`` is the same conceptual span."""
        return span.quote == self.quote and span.category == self.category

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"quote": self.quote, "category": self.category}
        if self.idempotency_key:
            payload["idempotencyKey"] = self.idempotency_key
        return payload
