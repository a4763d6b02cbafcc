"""Debounced, cached span labeling client.

Turns a stream of text edits into at most one backend call per quiet
period and publishes the latest labeling state. Every dispatch carries a
monotonically increasing token; a resolved call is applied only if its
token is still the latest and its text signature still matches the
current text. Suspension happens only at the backend call.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from spancanvas.config import LabelingSettings, smart_debounce_ms
from spancanvas.errors import LabelingBackendError
from spancanvas.labeling.backend import (
    LabelingBackend,
    LabelingRequest,
    LabelingResponse,
    merge_policy,
)
from spancanvas.labeling.cache import SpanLabelingCache
from spancanvas.models.snapshot import HighlightSnapshot
from spancanvas.models.span import Span
from spancanvas.observability.tracing import set_span_attributes, traced_operation
from spancanvas.text.normalize import normalize_or_raw

logger = logging.getLogger(__name__)


class LabelingStatus(StrEnum):
    """Labeling client status."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    LOADING = "loading"
    REFRESHING = "refreshing"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


class ResultSource(StrEnum):
    """Where a published labeling result came from."""

    NETWORK = "network"
    CACHE = "cache"
    INITIAL = "initial"
    REFRESH_CACHE = "refresh-cache"
    CACHE_FALLBACK = "cache-fallback"


class LabelingState(BaseModel):
    """Latest labeling state for the current text.

    Attributes:
        spans: Spans on screen. Kept while loading and after errors.
        meta: Backend metadata of the result the spans came from.
        status: Client status.
        error: Message of the last backend failure, when status is ERROR.
        signature: Signature of the text the spans were computed for.
    """

    model_config = ConfigDict(frozen=True)

    spans: tuple[Span, ...] = ()
    meta: dict[str, Any] | None = None
    status: LabelingStatus = LabelingStatus.IDLE
    error: str | None = None
    signature: str | None = None


class LabelingResult(BaseModel):
    """Published once per (signature, source) for non-empty results."""

    model_config = ConfigDict(frozen=True)

    spans: tuple[Span, ...]
    meta: dict[str, Any] | None = None
    text: str
    signature: str
    cache_key: str | None = None
    source: ResultSource

    def to_snapshot(self) -> HighlightSnapshot:
        """Convert into a persistable HighlightSnapshot."""
        return HighlightSnapshot(
            spans=self.spans,
            meta=self.meta,
            signature=self.signature,
            cache_id=self.cache_key,
            updated_at=datetime.now(UTC),
        )


ResultCallback = Callable[[LabelingResult], None]
StateListener = Callable[[LabelingState], None]


class SpanLabelingClient:
    """Debounce + cache front for a LabelingBackend.

    Must be driven from a running asyncio event loop: ``update()`` is
    synchronous but schedules the debounce timer as a task.
    """

    def __init__(
        self,
        backend: LabelingBackend,
        settings: LabelingSettings | None = None,
        on_result: ResultCallback | None = None,
        cache: SpanLabelingCache | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            backend: Backend performing the actual labeling.
            settings: Tunables; defaults when omitted.
            on_result: Called with each new non-empty result.
            cache: Result cache; a private one is created from settings when omitted.
        """
        self._backend = backend
        self._settings = settings or LabelingSettings()
        self._on_result = on_result
        self._cache = (
            cache
            if cache is not None
            else SpanLabelingCache(
                limit=self._settings.cache_limit,
                ttl_seconds=self._settings.cache_ttl_seconds,
            )
        )
        self._state = LabelingState()
        self._listeners: list[StateListener] = []
        self._token = 0
        self._task: asyncio.Task | None = None
        self._last_request: LabelingRequest | None = None
        self._last_emit_key: str | None = None

    @property
    def state(self) -> LabelingState:
        return self._state

    @property
    def cache(self) -> SpanLabelingCache:
        return self._cache

    @property
    def last_request(self) -> LabelingRequest | None:
        """Request for the current text, or None when idle."""
        return self._last_request

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(
        self,
        text: str | None,
        *,
        enabled: bool = True,
        immediate: bool = False,
        cache_key: str | None = None,
        max_spans: int | None = None,
        min_confidence: float | None = None,
        policy: Mapping[str, Any] | None = None,
        template_version: str | None = None,
        debounce_ms: int | None = None,
    ) -> LabelingState:
        """Accept a new text snapshot.

        Args:
            text: Current editor text (normalized here).
            enabled: When False the client goes idle with no spans.
            immediate: Skip the debounce window.
            cache_key: Host-side cache/prompt identifier.
            max_spans: Overrides ``settings.max_spans``.
            min_confidence: Overrides ``settings.min_confidence``.
            policy: Labeling policy merged over the default policy.
            template_version: Overrides ``settings.template_version``.
            debounce_ms: Fixed debounce window; 0 dispatches immediately.

        Returns:
            The state after the update.
        """
        normalized = normalize_or_raw(text) or ""
        if not enabled or not normalized.strip():
            self._cancel_pending()
            self._last_request = None
            self._set_state(LabelingState())
            return self._state

        request = LabelingRequest(
            text=normalized,
            policy=merge_policy(policy),
            max_spans=max_spans if max_spans is not None else self._settings.max_spans,
            min_confidence=(
                min_confidence if min_confidence is not None else self._settings.min_confidence
            ),
            template_version=template_version or self._settings.template_version,
            cache_key=cache_key,
        )
        self._last_request = request
        self._cancel_pending()

        cached = self._cache.get(request)
        if cached is not None:
            logger.debug("Labeling cache hit (len=%d)", len(normalized))
            self._apply_response(request, cached)
            self._emit(
                request,
                cached,
                ResultSource.REFRESH_CACHE if immediate else ResultSource.CACHE,
            )
            return self._state

        delay_ms = 0 if immediate else self._debounce_delay(normalized, debounce_ms)
        self._schedule(request, delay_ms)
        return self._state

    def apply_initial(
        self,
        snapshot: HighlightSnapshot | None,
        template_version: str | None = None,
        *,
        check_version: bool = True,
    ) -> bool:
        """Seed a previously persisted snapshot for the current text.

        The snapshot is applied only if it has spans, its signature matches
        the current text and its ``meta.version`` matches the template
        version (unless ``check_version`` is False, e.g. when restoring a
        saved version). Pending work is cancelled; no backend call is made.

        Returns:
            True if the snapshot was applied.
        """
        request = self._last_request
        if request is None or snapshot is None or not snapshot.spans:
            return False
        expected_version = template_version or request.template_version
        snapshot_version = (snapshot.meta or {}).get("version")
        version_mismatch = check_version and snapshot_version != expected_version
        if snapshot.signature != request.signature or version_mismatch:
            logger.debug("Ignoring initial snapshot: signature or template version differs")
            return False

        self._cancel_pending()
        response = LabelingResponse(
            spans=snapshot.spans,
            meta=snapshot.meta,
            signature=snapshot.signature,
        )
        self._cache.put(request, response)
        self._apply_response(request, response)
        self._emit(request, response, ResultSource.INITIAL)
        return True

    def refresh(self) -> None:
        """Re-dispatch the current request immediately, bypassing the cache."""
        request = self._last_request
        if request is None:
            return
        self._cancel_pending()
        self._schedule(request, 0)

    async def drain(self) -> None:
        """Wait until no debounce timer or backend call is pending."""
        while self._task is not None and not self._task.done():
            task = self._task
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        """Cancel pending work and wait for it to unwind."""
        task = self._task
        self._cancel_pending()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _debounce_delay(self, text: str, debounce_ms: int | None) -> int:
        if debounce_ms is not None:
            return max(0, debounce_ms)
        if self._settings.smart_debounce:
            return smart_debounce_ms(text)
        return self._settings.debounce_ms

    def _cancel_pending(self) -> None:
        self._token += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _schedule(self, request: LabelingRequest, delay_ms: int) -> None:
        self._token += 1
        token = self._token
        if delay_ms > 0:
            self._set_state(
                self._state.model_copy(update={"status": LabelingStatus.DEBOUNCING, "error": None})
            )
        else:
            self._mark_loading()
        self._task = asyncio.get_running_loop().create_task(self._run(token, request, delay_ms))

    def _mark_loading(self) -> None:
        status = LabelingStatus.REFRESHING if self._state.spans else LabelingStatus.LOADING
        self._set_state(self._state.model_copy(update={"status": status, "error": None}))

    def _is_current(self, token: int, request: LabelingRequest) -> bool:
        current = self._last_request
        return (
            token == self._token
            and current is not None
            and current.signature == request.signature
        )

    async def _run(self, token: int, request: LabelingRequest, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
            if token != self._token:
                return
            self._mark_loading()

        try:
            with traced_operation(
                "spancanvas.labeling.dispatch",
                {
                    "spancanvas.text_length": len(request.text),
                    "spancanvas.signature": request.signature,
                    "spancanvas.max_spans": request.max_spans,
                },
            ) as span:
                response = await self._backend.label(request)
                set_span_attributes(span, {"spancanvas.span_count": len(response.spans)})
        except LabelingBackendError as exc:
            self._handle_failure(token, request, exc)
            return
        except Exception as exc:
            logger.exception("Labeling backend raised an unexpected error")
            self._handle_failure(token, request, LabelingBackendError(str(exc), cause=exc))
            return

        if not self._is_current(token, request):
            logger.debug("Discarding labeling result for superseded text")
            return

        self._cache.put(request, response)
        self._apply_response(request, response)
        self._emit(request, response, ResultSource.NETWORK)

    def _handle_failure(
        self,
        token: int,
        request: LabelingRequest,
        exc: LabelingBackendError,
    ) -> None:
        if not self._is_current(token, request):
            return

        entry = self._cache.get_entry(request) if self._cache.enabled else None
        if entry is not None:
            cache_age_ms = self._cache.age_ms(entry)
            meta = {
                **(entry.response.meta or {}),
                "source": ResultSource.CACHE_FALLBACK.value,
                "cacheAge": cache_age_ms,
                "error": exc.message,
            }
            logger.warning(
                "Span labeling failed, serving cached result (age=%dms): %s",
                cache_age_ms,
                exc,
            )
            fallback = entry.response.model_copy(update={"meta": meta})
            self._set_state(
                LabelingState(
                    spans=fallback.spans,
                    meta=meta,
                    status=LabelingStatus.STALE,
                    signature=request.signature,
                )
            )
            self._emit(request, fallback, ResultSource.CACHE_FALLBACK)
            return

        logger.warning("Span labeling failed: %s", exc)
        self._set_state(
            self._state.model_copy(update={"status": LabelingStatus.ERROR, "error": str(exc)})
        )

    def _apply_response(self, request: LabelingRequest, response: LabelingResponse) -> None:
        self._set_state(
            LabelingState(
                spans=response.spans,
                meta=response.meta,
                status=LabelingStatus.SUCCESS,
                signature=request.signature,
            )
        )

    def _emit(
        self,
        request: LabelingRequest,
        response: LabelingResponse,
        source: ResultSource,
    ) -> None:
        if self._on_result is None or not response.spans:
            return
        key = f"{request.signature}::{source.value}"
        if key == self._last_emit_key:
            return
        self._last_emit_key = key
        self._on_result(
            LabelingResult(
                spans=response.spans,
                meta=response.meta,
                text=request.text,
                signature=request.signature,
                cache_key=request.cache_key,
                source=source,
            )
        )

    def _set_state(self, state: LabelingState) -> None:
        if state == self._state:
            return
        if state.status != self._state.status:
            logger.debug("Labeling status %s -> %s", self._state.status, state.status)
        self._state = state
        for listener in list(self._listeners):
            listener(state)
