"""Labeling backend contract + deterministic keyword backend.

LabelingBackend: Protocol every labeler implements (remote or local).
KeywordLabelingBackend: Labels a fixed phrase vocabulary. No external calls.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Annotated, Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from spancanvas.config import (
    DEFAULT_MAX_SPANS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_NON_TECHNICAL_WORD_LIMIT,
    DEFAULT_TEMPLATE_VERSION,
    MAX_SPANS_LIMIT,
)
from spancanvas.models.span import Span
from spancanvas.text.signature import signature

logger = logging.getLogger(__name__)

DEFAULT_POLICY: dict[str, Any] = {
    "non_technical_word_limit": DEFAULT_NON_TECHNICAL_WORD_LIMIT,
    "allow_overlap": False,
}

CONTEXT_WINDOW_CHARS = 20

DEFAULT_VOCABULARY: dict[str, tuple[str, ...]] = {
    "lighting": ("golden hour", "soft light", "backlit", "neon glow", "harsh shadows"),
    "camera": ("close-up", "wide shot", "tracking shot", "dolly zoom", "aerial view"),
    "subject": ("woman", "man", "child", "dog", "city skyline"),
    "environment": ("beach", "forest", "street", "rooftop", "desert"),
    "style": ("cinematic", "film grain", "watercolor", "noir", "35mm"),
}


def merge_policy(policy: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge a caller policy over DEFAULT_POLICY.

    ``allow_overlap`` is only True when the caller passed exactly ``True``.
    """
    merged = dict(DEFAULT_POLICY)
    if policy:
        merged.update(policy)
    merged["allow_overlap"] = merged.get("allow_overlap") is True
    return merged


class LabelingRequest(BaseModel):
    """One labeling call for one exact (normalized) text.

    Attributes:
        text: Normalized text to label.
        policy: Merged labeling policy (JSON-ready).
        max_spans: Upper bound on returned spans.
        min_confidence: Spans below this confidence are dropped.
        template_version: Labeling template version.
        cache_key: Host-side cache/prompt identifier.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    policy: dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_POLICY))
    max_spans: Annotated[int, Field(ge=1, le=MAX_SPANS_LIMIT)] = DEFAULT_MAX_SPANS
    min_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = DEFAULT_MIN_CONFIDENCE
    template_version: str = DEFAULT_TEMPLATE_VERSION
    cache_key: str | None = None

    @property
    def signature(self) -> str:
        return signature(self.text)

    @property
    def locked_spans(self) -> list[dict[str, Any]]:
        locked = self.policy.get("locked_spans") or []
        return [item for item in locked if isinstance(item, Mapping)]


class LabelingResponse(BaseModel):
    """Spans and metadata returned by a backend."""

    model_config = ConfigDict(frozen=True)

    spans: tuple[Span, ...] = ()
    meta: dict[str, Any] | None = None
    signature: str | None = None


class LabelingBackend(Protocol):
    """Interface for span labelers."""

    async def label(self, request: LabelingRequest) -> LabelingResponse:
        """Label ``request.text``.

        Args:
            request: The labeling request.

        Returns:
            LabelingResponse with spans indexed into ``request.text``.

        Raises:
            LabelingBackendError: On network or model failure.
        """
        ...


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)", re.IGNORECASE)


def _idempotency_key(category: str | None, quote: str, start: int) -> str:
    raw = f"{category}:{quote}:{start}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class KeywordLabelingBackend:
    """Deterministic labeler for tests and local development.

    Matches a fixed vocabulary of phrases (case-insensitive, whole words).
    Locked spans from the policy are re-emitted first with confidence 1.0.
    Without ``allow_overlap`` the longest leftmost match wins.
    """

    def __init__(
        self,
        vocabulary: Mapping[str, Sequence[str]] | None = None,
        *,
        confidence: float = 0.9,
    ) -> None:
        """Initialize the backend.

        Args:
            vocabulary: Mapping of category to phrases. Defaults to DEFAULT_VOCABULARY.
            confidence: Confidence assigned to vocabulary matches.
        """
        self._vocabulary = {
            category: tuple(phrases)
            for category, phrases in (vocabulary or DEFAULT_VOCABULARY).items()
        }
        self._confidence = confidence
        self.calls: list[LabelingRequest] = []

    async def label(self, request: LabelingRequest) -> LabelingResponse:
        self.calls.append(request)
        spans = self.label_text(request)
        logger.debug("Keyword backend labeled %d spans (len=%d)", len(spans), len(request.text))
        return LabelingResponse(
            spans=tuple(spans),
            meta={"version": request.template_version, "source": "keyword", "notes": ""},
            signature=request.signature,
        )

    def label_text(self, request: LabelingRequest) -> list[Span]:
        """Synchronous labeling core."""
        text = request.text
        allow_overlap = request.policy.get("allow_overlap") is True

        accepted: list[Span] = []
        for locked in request.locked_spans:
            span = self._locked_span(text, locked)
            if span is not None and not any(span.overlaps(other) for other in accepted):
                accepted.append(span)

        candidates: list[Span] = []
        if self._confidence >= request.min_confidence:
            for category, phrases in self._vocabulary.items():
                for phrase in phrases:
                    for match in _phrase_pattern(phrase).finditer(text):
                        candidates.append(
                            self._make_span(text, match.start(), match.end(), category)
                        )
        candidates.sort(key=lambda s: (s.start, -s.length))

        for candidate in candidates:
            if len(accepted) >= request.max_spans:
                break
            if any(c.start == candidate.start and c.end == candidate.end for c in accepted):
                continue
            if not allow_overlap and any(candidate.overlaps(other) for other in accepted):
                continue
            accepted.append(candidate)

        accepted.sort(key=lambda s: (s.start, s.end))
        return accepted[: request.max_spans]

    def _locked_span(self, text: str, locked: Mapping[str, Any]) -> Span | None:
        quote = locked.get("quote")
        if not isinstance(quote, str) or not quote:
            return None
        start = text.find(quote)
        if start < 0:
            return None
        span = self._make_span(text, start, start + len(quote), locked.get("category"))
        return span.model_copy(update={"confidence": 1.0, "source": "locked"})

    def _make_span(self, text: str, start: int, end: int, category: str | None) -> Span:
        quote = text[start:end]
        return Span(
            start=start,
            end=end,
            quote=quote,
            category=category,
            confidence=self._confidence,
            source="keyword",
            validator_pass=True,
            left_ctx=text[max(0, start - CONTEXT_WINDOW_CHARS) : start],
            right_ctx=text[end : end + CONTEXT_WINDOW_CHARS],
            idempotency_key=_idempotency_key(category, quote, start),
        )
