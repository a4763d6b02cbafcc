"""Tests for the debounced, cached labeling client.

Covers:
- Debounce coalescing and cancellation of superseded calls
- Cache hits and result-source reporting
- Error handling (last good spans kept) and cache fallback (STALE)
- Seeding persisted snapshots
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from spancanvas.config import LabelingSettings
from spancanvas.errors import LabelingBackendError
from spancanvas.labeling.backend import (
    KeywordLabelingBackend,
    LabelingRequest,
    LabelingResponse,
)
from spancanvas.labeling.cache import SpanLabelingCache
from spancanvas.labeling.client import (
    LabelingResult,
    LabelingState,
    LabelingStatus,
    ResultSource,
    SpanLabelingClient,
)
from spancanvas.models.snapshot import HighlightSnapshot
from spancanvas.models.span import Span
from spancanvas.text.signature import signature


class ScriptedBackend(KeywordLabelingBackend):
    """Keyword backend that can be paused or made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.gate: asyncio.Event | None = None
        self.fail_with: Exception | None = None

    async def label(self, request: LabelingRequest) -> LabelingResponse:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return LabelingResponse(
            spans=tuple(self.label_text(request)),
            meta={"version": request.template_version},
            signature=request.signature,
        )

    @property
    def texts(self) -> list[str]:
        return [call.text for call in self.calls]


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _settings(**overrides: object) -> LabelingSettings:
    values: dict[str, object] = {"smart_debounce": False, "debounce_ms": 20}
    values.update(overrides)
    return LabelingSettings(**values)


def _client(
    backend: ScriptedBackend,
    results: list[LabelingResult] | None = None,
    **settings: object,
) -> SpanLabelingClient:
    on_result = results.append if results is not None else None
    return SpanLabelingClient(backend, _settings(**settings), on_result=on_result)


def _snapshot(text: str, version: str = "v1") -> HighlightSnapshot:
    return HighlightSnapshot(
        spans=(Span(start=0, end=11, quote="golden hour", category="lighting"),),
        meta={"version": version},
        signature=signature(text),
        updated_at=datetime.now(UTC),
    )


class TestDebounce:
    """Tests for debounce coalescing and stale-result discarding."""

    def test_rapid_edits_coalesce_into_one_call(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> SpanLabelingClient:
            client = _client(backend)
            client.update("golden hour a")
            client.update("golden hour ab")
            state = client.update("golden hour abc")
            assert state.status == LabelingStatus.DEBOUNCING
            await client.drain()
            return client

        client = asyncio.run(scenario())

        assert backend.texts == ["golden hour abc"]
        assert client.state.status == LabelingStatus.SUCCESS
        assert [s.quote for s in client.state.spans] == ["golden hour"]
        assert client.state.signature == signature("golden hour abc")

    def test_superseded_call_is_never_applied(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> SpanLabelingClient:
            gate = asyncio.Event()
            backend.gate = gate
            client = _client(backend)
            client.update("golden hour", immediate=True)
            await asyncio.sleep(0)
            client.update("beach", immediate=True)
            await asyncio.sleep(0)
            gate.set()
            await client.drain()
            return client

        client = asyncio.run(scenario())

        assert backend.texts == ["golden hour", "beach"]
        assert [s.quote for s in client.state.spans] == ["beach"]
        assert client.state.signature == signature("beach")

    def test_immediate_skips_debounce(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> SpanLabelingClient:
            client = _client(backend, debounce_ms=10_000)
            state = client.update("beach", immediate=True)
            assert state.status == LabelingStatus.LOADING
            await client.drain()
            return client

        assert asyncio.run(scenario()).state.status == LabelingStatus.SUCCESS

    def test_disable_cancels_pending_call(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> LabelingState:
            client = _client(backend)
            client.update("golden hour")
            state = client.update("golden hour", enabled=False)
            await client.drain()
            return state

        state = asyncio.run(scenario())

        assert state == LabelingState()
        assert backend.texts == []

    def test_blank_text_is_idle(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> SpanLabelingClient:
            client = _client(backend)
            client.update("   ")
            await client.drain()
            return client

        client = asyncio.run(scenario())
        assert client.state.status == LabelingStatus.IDLE
        assert client.last_request is None
        assert backend.texts == []

    def test_text_is_normalized_before_labeling(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> None:
            client = _client(backend)
            client.update("cafe\u0301 at the beach", immediate=True)
            await client.drain()

        asyncio.run(scenario())
        assert backend.texts == ["caf\u00e9 at the beach"]


class TestCache:
    """Tests for cache hits and result sources."""

    def test_cache_hit_skips_backend(self) -> None:
        backend = ScriptedBackend()
        results: list[LabelingResult] = []

        async def scenario() -> SpanLabelingClient:
            client = _client(backend, results)
            client.update("golden hour", immediate=True)
            await client.drain()
            client.update("beach", immediate=True)
            await client.drain()
            state = client.update("golden hour")
            assert state.status == LabelingStatus.SUCCESS
            client.update("golden hour")
            await client.drain()
            return client

        client = asyncio.run(scenario())

        assert backend.texts == ["golden hour", "beach"]
        assert [r.source for r in results] == [
            ResultSource.NETWORK,
            ResultSource.NETWORK,
            ResultSource.CACHE,
        ]
        assert client.state.signature == signature("golden hour")

    def test_immediate_cache_hit_reports_refresh_cache(self) -> None:
        backend = ScriptedBackend()
        results: list[LabelingResult] = []

        async def scenario() -> None:
            client = _client(backend, results)
            client.update("beach", immediate=True)
            await client.drain()
            client.update("golden hour", immediate=True)
            await client.drain()
            client.update("beach", immediate=True)

        asyncio.run(scenario())
        assert results[-1].source == ResultSource.REFRESH_CACHE

    def test_empty_results_are_not_published(self) -> None:
        backend = ScriptedBackend()
        results: list[LabelingResult] = []

        async def scenario() -> SpanLabelingClient:
            client = _client(backend, results)
            client.update("nothing to see", immediate=True)
            await client.drain()
            return client

        client = asyncio.run(scenario())
        assert client.state.status == LabelingStatus.SUCCESS
        assert results == []

    def test_result_converts_to_snapshot(self) -> None:
        backend = ScriptedBackend()
        results: list[LabelingResult] = []

        async def scenario() -> None:
            client = _client(backend, results)
            client.update("golden hour", immediate=True, cache_key="prompt-1")
            await client.drain()

        asyncio.run(scenario())
        snapshot = results[0].to_snapshot()
        assert snapshot.signature == signature("golden hour")
        assert snapshot.cache_id == "prompt-1"
        assert snapshot.spans == results[0].spans


class TestFailures:
    """Tests for backend failures."""

    def test_error_keeps_last_good_spans(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> SpanLabelingClient:
            client = _client(backend, cache_ttl_seconds=0)
            client.update("golden hour", immediate=True)
            await client.drain()
            backend.fail_with = LabelingBackendError("boom")
            client.refresh()
            assert client.state.status == LabelingStatus.REFRESHING
            await client.drain()
            return client

        client = asyncio.run(scenario())

        assert client.state.status == LabelingStatus.ERROR
        assert client.state.error == "boom"
        assert [s.quote for s in client.state.spans] == ["golden hour"]

    def test_unexpected_exception_becomes_error(self) -> None:
        backend = ScriptedBackend()
        backend.fail_with = RuntimeError("kaput")

        async def scenario() -> SpanLabelingClient:
            client = _client(backend)
            client.update("beach", immediate=True)
            await client.drain()
            return client

        client = asyncio.run(scenario())

        assert client.state.status == LabelingStatus.ERROR
        assert client.state.error == "kaput"
        assert client.state.spans == ()

    def test_failure_falls_back_to_cached_result(self) -> None:
        backend = ScriptedBackend()
        results: list[LabelingResult] = []

        async def scenario() -> SpanLabelingClient:
            client = _client(backend, results)
            client.update("golden hour", immediate=True)
            await client.drain()
            backend.fail_with = LabelingBackendError("boom")
            client.refresh()
            await client.drain()
            return client

        client = asyncio.run(scenario())

        state = client.state
        assert state.status == LabelingStatus.STALE
        assert state.error is None
        assert state.meta is not None
        assert state.meta["source"] == "cache-fallback"
        assert state.meta["error"] == "boom"
        assert state.meta["cacheAge"] >= 0
        assert [s.quote for s in state.spans] == ["golden hour"]
        assert [r.source for r in results] == [ResultSource.NETWORK, ResultSource.CACHE_FALLBACK]

    def test_next_edit_after_error_clears_message(self) -> None:
        backend = ScriptedBackend()
        backend.fail_with = LabelingBackendError("boom")
        seen: list[LabelingState] = []

        async def scenario() -> SpanLabelingClient:
            client = _client(backend, cache_ttl_seconds=0)
            client.subscribe(seen.append)
            client.update("golden hour", immediate=True)
            await client.drain()
            assert client.state.status == LabelingStatus.ERROR
            client.update("golden hour at the beach")
            assert client.state.status == LabelingStatus.DEBOUNCING
            assert client.state.error is None
            await client.close()
            return client

        asyncio.run(scenario())

        assert all(s.error is None for s in seen if s.status != LabelingStatus.ERROR)

    def test_cache_age_uses_cache_clock(self) -> None:
        backend = ScriptedBackend()
        clock = FakeClock()
        cache = SpanLabelingCache(clock=clock)

        async def scenario() -> SpanLabelingClient:
            client = SpanLabelingClient(backend, _settings(), cache=cache)
            client.update("golden hour", immediate=True)
            await client.drain()
            clock.advance(90)
            backend.fail_with = LabelingBackendError("boom")
            client.refresh()
            await client.drain()
            return client

        client = asyncio.run(scenario())

        assert client.state.status == LabelingStatus.STALE
        assert client.state.meta is not None
        assert client.state.meta["cacheAge"] == 90_000


class TestApplyInitial:
    """Tests for seeding persisted snapshots."""

    def test_matching_snapshot_is_applied_without_backend_call(self) -> None:
        backend = ScriptedBackend()
        results: list[LabelingResult] = []

        async def scenario() -> tuple[bool, SpanLabelingClient]:
            client = _client(backend, results)
            client.update("golden hour", debounce_ms=1000)
            applied = client.apply_initial(_snapshot("golden hour"))
            await client.drain()
            return applied, client

        applied, client = asyncio.run(scenario())

        assert applied is True
        assert backend.texts == []
        assert client.state.status == LabelingStatus.SUCCESS
        assert [r.source for r in results] == [ResultSource.INITIAL]

    def test_signature_mismatch_is_ignored(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> bool:
            client = _client(backend)
            client.update("golden hour", debounce_ms=1000)
            applied = client.apply_initial(_snapshot("golden hour!"))
            await client.close()
            return applied

        assert asyncio.run(scenario()) is False

    def test_template_version_mismatch(self) -> None:
        backend = ScriptedBackend()

        async def scenario() -> tuple[bool, bool]:
            client = _client(backend)
            client.update("golden hour", debounce_ms=1000)
            checked = client.apply_initial(_snapshot("golden hour", version="v0"))
            unchecked = client.apply_initial(
                _snapshot("golden hour", version="v0"), check_version=False
            )
            await client.close()
            return checked, unchecked

        assert asyncio.run(scenario()) == (False, True)

    def test_without_current_text(self) -> None:
        client = SpanLabelingClient(ScriptedBackend())
        assert client.apply_initial(_snapshot("golden hour")) is False


class TestListeners:
    """Tests for state subscriptions."""

    def test_listener_sees_each_transition(self) -> None:
        backend = ScriptedBackend()
        statuses: list[LabelingStatus] = []

        async def scenario() -> None:
            client = _client(backend)
            unsubscribe = client.subscribe(lambda state: statuses.append(state.status))
            client.update("beach", immediate=True)
            await client.drain()
            unsubscribe()
            client.update("golden hour", immediate=True)
            await client.drain()

        asyncio.run(scenario())
        assert statuses == [LabelingStatus.LOADING, LabelingStatus.SUCCESS]
