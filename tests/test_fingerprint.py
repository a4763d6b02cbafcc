"""Tests for parse result fingerprints."""

from __future__ import annotations

from spancanvas.highlighting.fingerprint import DISABLED_FINGERPRINT, fingerprint
from spancanvas.models.span import ParseResult, Span

TEXT = "golden hour at the beach"


def _result(*spans: Span, text: str = TEXT) -> ParseResult:
    return ParseResult(spans=spans, display_text=text)


class TestFingerprint:
    """Tests for fingerprint()."""

    def test_disabled_is_constant(self) -> None:
        assert fingerprint(False, _result(Span(start=0, end=6))) == DISABLED_FINGERPRINT
        assert fingerprint(False, None) == DISABLED_FINGERPRINT

    def test_structurally_equal_results_match(self) -> None:
        first = _result(Span(start=0, end=6, category="lighting"))
        second = _result(Span(start=0, end=6, category="lighting"))
        assert fingerprint(True, first) == fingerprint(True, second)

    def test_ignores_metadata_the_projection_does_not_use(self) -> None:
        first = _result(Span(start=0, end=6, left_ctx="x"))
        second = _result(Span(start=0, end=6, left_ctx="y"))
        assert fingerprint(True, first) == fingerprint(True, second)

    def test_sensitive_to_rendered_fields(self) -> None:
        base = Span(start=0, end=6, category="lighting")
        reference = fingerprint(True, _result(base))
        variants = [
            _result(base.model_copy(update={"end": 5})),
            _result(base.model_copy(update={"category": "time"})),
            _result(base.model_copy(update={"stale": True})),
            _result(base.model_copy(update={"rank": 1})),
            _result(base.model_copy(update={"id": "other"})),
            _result(base, text=TEXT + "!"),
        ]
        assert all(fingerprint(True, variant) != reference for variant in variants)

    def test_empty_result(self) -> None:
        assert fingerprint(True, None) == fingerprint(True, ParseResult())
