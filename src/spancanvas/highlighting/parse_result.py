"""Parse result builder: raw labeled spans -> render-ready ParseResult.

Malformed spans are dropped one by one (never clamped); spans whose quote
no longer matches the text are kept but flagged ``stale``. Quotes are never
searched for elsewhere in the text.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from spancanvas.errors import InvalidSpanError
from spancanvas.models.span import ParseResult, Span, default_span_id
from spancanvas.text.normalize import normalize_or_raw
from spancanvas.text.signature import signature as text_signature

logger = logging.getLogger(__name__)


class OverlapPrecedence(StrEnum):
    """Which span wins on exact range collision and nests innermost on overlap."""

    ARRAY_ORDER = "array-order"
    CONFIDENCE = "confidence"


def coerce_offset(value: Any, name: str) -> int:
    """Return ``value`` as an int offset or raise InvalidSpanError.

    Accepts ints and integral floats; rejects None, bools, NaN, infinities
    and fractional values.
    """
    if value is None:
        raise InvalidSpanError(f"missing {name}")
    if isinstance(value, bool):
        raise InvalidSpanError(f"{name} is not a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise InvalidSpanError(f"{name} is not finite")
        if not value.is_integer():
            raise InvalidSpanError(f"{name} is not an integer")
        return int(value)
    raise InvalidSpanError(f"{name} is not a number")


def validate_span(raw: Span | Mapping[str, Any], display_text: str) -> Span:
    """Validate one span against ``display_text``.

    Args:
        raw: A Span or a raw mapping (snake_case or camelCase keys).
        display_text: Normalized text the offsets index into.

    Returns:
        The span, with ``quote`` filled from the text when missing and
        ``stale`` set when the quote does not match.

    Raises:
        InvalidSpanError: On missing, non-numeric or out-of-bounds offsets.
    """
    if isinstance(raw, Span):
        span = raw
        start, end = span.start, span.end
    elif isinstance(raw, Mapping):
        span_id = raw.get("id") if isinstance(raw.get("id"), str) else None
        try:
            start = coerce_offset(raw.get("start"), "start")
            end = coerce_offset(raw.get("end"), "end")
        except InvalidSpanError as exc:
            exc.span_id = span_id
            raise
        if start < 0 or end <= start or end > len(display_text):
            raise InvalidSpanError(
                f"range [{start}, {end}) outside text of length {len(display_text)}",
                span_id=span_id,
            )
        try:
            span = Span.model_validate({**raw, "start": start, "end": end})
        except ValidationError as exc:
            raise InvalidSpanError(exc.errors()[0]["msg"], span_id=span_id) from exc
    else:
        raise InvalidSpanError(f"unsupported span type {type(raw).__name__}")

    if start < 0 or end <= start or end > len(display_text):
        raise InvalidSpanError(
            f"range [{start}, {end}) outside text of length {len(display_text)}",
            span_id=span.id,
        )

    actual = display_text[start:end]
    if not span.quote:
        return span.model_copy(update={"quote": actual, "stale": False})
    quote = normalize_or_raw(span.quote) or ""
    return span.model_copy(update={"stale": quote != actual})


def build_parse_result(
    labeled_spans: Iterable[Span | Mapping[str, Any]] | None,
    labeled_meta: Mapping[str, Any] | None,
    signature: str | None,
    status: str | None,
    error: str | None,
    enabled: bool,
    displayed_prompt: str | None,
    *,
    precedence: OverlapPrecedence = OverlapPrecedence.ARRAY_ORDER,
) -> ParseResult:
    """Build the ParseResult the projector and controller consume.

    Args:
        labeled_spans: Spans from the labeling client (Span or raw mappings).
        labeled_meta: Labeling metadata (logged only).
        signature: Signature of the text the spans were computed for.
        status: Labeling status (logged only).
        error: Labeling error message (logged only).
        enabled: When False the result has no spans.
        displayed_prompt: Text currently on screen.
        precedence: Collision/nesting policy.

    Returns:
        ParseResult sorted by ``(start, end)``. Every span satisfies
        ``0 <= start < end <= len(display_text)``; ``rank`` orders precedence.
    """
    if not enabled or not displayed_prompt:
        return ParseResult(spans=(), display_text=displayed_prompt or "")

    display_text = normalize_or_raw(displayed_prompt) or ""
    if signature and signature != text_signature(display_text):
        logger.debug(
            "Labeled spans belong to another text (status=%s, error=%s); quotes decide staleness",
            status,
            error,
        )

    candidates: list[tuple[tuple[float, int], Span]] = []
    for position, raw in enumerate(labeled_spans or ()):
        try:
            span = validate_span(raw, display_text)
        except InvalidSpanError as exc:
            logger.debug("Dropping span: %s", exc)
            continue
        candidates.append((_precedence_key(span, position, precedence), span))

    candidates.sort(key=lambda item: item[0])

    by_range: dict[tuple[int, int], Span] = {}
    for _, span in candidates:
        # later precedence wins exact collisions
        by_range.pop((span.start, span.end), None)
        by_range[(span.start, span.end)] = span

    ranked = _unique_ids(
        [span.model_copy(update={"rank": rank}) for rank, span in enumerate(by_range.values())]
    )
    ranked.sort(key=lambda s: (s.start, s.end))

    if labeled_meta and logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Built parse result: %d/%d spans kept (template=%s)",
            len(ranked),
            len(candidates),
            labeled_meta.get("version"),
        )
    return ParseResult(spans=tuple(ranked), display_text=display_text)


def _unique_ids(ranked: list[Span]) -> list[Span]:
    """Give every span a distinct id; the higher rank keeps a contested id.

    A loser is renamed to its range id, or dropped if that is taken too.
    """
    taken: set[str] = set()
    unique: list[Span] = []
    for span in sorted(ranked, key=lambda s: s.rank, reverse=True):
        if span.id in taken:
            fallback = default_span_id(span.start, span.end)
            if fallback in taken:
                logger.debug("Dropping span with duplicate id %s", span.id)
                continue
            logger.debug("Renaming duplicate span id %s to %s", span.id, fallback)
            span = span.model_copy(update={"id": fallback})
        taken.add(span.id)
        unique.append(span)
    return unique


def _precedence_key(
    span: Span,
    position: int,
    precedence: OverlapPrecedence,
) -> tuple[float, int]:
    if precedence == OverlapPrecedence.CONFIDENCE:
        confidence = span.confidence if span.confidence is not None else 0.0
        return (confidence, position)
    return (0.0, position)
