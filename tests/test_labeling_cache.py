"""Tests for the deterministic labeling result cache.

Covers:
- Deterministic, parameter-sensitive keys
- Text verification on lookup
- TTL expiry and disabled caching
- LRU eviction
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from spancanvas.labeling.backend import LabelingRequest, LabelingResponse
from spancanvas.labeling.cache import SpanLabelingCache, compute_cache_key
from spancanvas.models.span import Span


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _request(text: str = "golden hour", **overrides: object) -> LabelingRequest:
    return LabelingRequest(text=text, **overrides)


def _response(text: str = "golden hour") -> LabelingResponse:
    return LabelingResponse(
        spans=(Span(start=0, end=len(text), quote=text, category="lighting"),),
        meta={"version": "v1"},
    )


class TestComputeCacheKey:
    """Tests for compute_cache_key()."""

    def test_deterministic(self) -> None:
        assert compute_cache_key(_request()) == compute_cache_key(_request())

    def test_anonymous_key_matches_explicit_anon(self) -> None:
        assert compute_cache_key(_request()) == compute_cache_key(_request(cache_key="anon"))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_spans": 10},
            {"min_confidence": 0.8},
            {"template_version": "v2"},
            {"cache_key": "prompt-1"},
            {"policy": {"allow_overlap": True, "non_technical_word_limit": 6}},
        ],
    )
    def test_sensitive_to_request_parameters(self, overrides: dict[str, object]) -> None:
        assert compute_cache_key(_request()) != compute_cache_key(_request(**overrides))

    def test_sensitive_to_text(self) -> None:
        assert compute_cache_key(_request("a")) != compute_cache_key(_request("b"))


class TestSpanLabelingCache:
    """Tests for SpanLabelingCache."""

    def test_put_then_get(self) -> None:
        cache = SpanLabelingCache()
        cache.put(_request(), _response())
        cached = cache.get(_request())
        assert cached is not None
        assert cached.spans[0].category == "lighting"
        assert cache.size == 1

    def test_miss_for_other_parameters(self) -> None:
        cache = SpanLabelingCache()
        cache.put(_request(), _response())
        assert cache.get(_request(max_spans=5)) is None

    def test_text_mismatch_is_a_miss(self) -> None:
        cache = SpanLabelingCache()
        request = _request()
        cache.put(request, _response())
        key = compute_cache_key(request)
        cache._store[key] = cache._store[key].model_copy(update={"text": "tampered"})
        assert cache.get(request) is None

    def test_expired_entries_are_evicted(self) -> None:
        clock = FakeClock()
        cache = SpanLabelingCache(ttl_seconds=60, clock=clock)
        cache.put(_request(), _response())
        clock.advance(59)
        assert cache.get(_request()) is not None
        clock.advance(2)
        assert cache.get(_request()) is None
        assert cache.size == 0

    def test_age_uses_injected_clock(self) -> None:
        clock = FakeClock()
        cache = SpanLabelingCache(ttl_seconds=60, clock=clock)
        cache.put(_request(), _response())
        clock.advance(2.5)
        entry = cache.get_entry(_request())
        assert entry is not None
        assert cache.age_ms(entry) == 2500

    def test_zero_ttl_disables_caching(self) -> None:
        cache = SpanLabelingCache(ttl_seconds=0)
        cache.put(_request(), _response())
        assert cache.size == 0
        assert cache.get(_request()) is None

    def test_lru_eviction(self) -> None:
        cache = SpanLabelingCache(limit=2)
        cache.put(_request("a"), _response("a"))
        cache.put(_request("b"), _response("b"))
        assert cache.get(_request("a")) is not None
        cache.put(_request("c"), _response("c"))

        assert cache.size == 2
        assert cache.get(_request("b")) is None
        assert cache.get(_request("a")) is not None
        assert cache.get(_request("c")) is not None

    def test_invalid_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            SpanLabelingCache(limit=0)

    def test_clear(self) -> None:
        cache = SpanLabelingCache()
        cache.put(_request(), _response())
        cache.clear()
        assert cache.size == 0

    def test_snapshot_is_json_ready(self) -> None:
        cache = SpanLabelingCache()
        cache.put(_request(), _response())
        dumped = json.dumps(cache.snapshot())
        assert "golden hour" in dumped
