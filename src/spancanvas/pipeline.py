"""Wires the highlighting stages together for one text surface.

normalize -> labeling client -> parse result -> fingerprint -> projector,
with the interaction controller and version store fed from the same
results.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from spancanvas.config import LabelingSettings
from spancanvas.highlighting.fingerprint import fingerprint
from spancanvas.highlighting.parse_result import OverlapPrecedence, build_parse_result
from spancanvas.highlighting.projector import EditorSurface, HighlightProjector, ProjectionReport
from spancanvas.interaction.controller import SpanInteractionController, SuggestionCallback
from spancanvas.interaction.state import PromptCanvasState
from spancanvas.labeling.backend import LabelingBackend
from spancanvas.labeling.client import LabelingResult, LabelingState, SpanLabelingClient
from spancanvas.models.snapshot import HighlightSnapshot, Version
from spancanvas.models.span import ParseResult
from spancanvas.text.normalize import normalize_or_raw
from spancanvas.versioning.store import VersionSelection, VersionStore

logger = logging.getLogger(__name__)

PersistCallback = Callable[[HighlightSnapshot], None]


class HighlightPipeline:
    """Keeps labeled highlights aligned with one editable text."""

    def __init__(
        self,
        backend: LabelingBackend,
        *,
        settings: LabelingSettings | None = None,
        surface: EditorSurface | None = None,
        state: PromptCanvasState | None = None,
        version_store: VersionStore | None = None,
        on_highlights_persist: PersistCallback | None = None,
        on_fetch_suggestions: SuggestionCallback | None = None,
        precedence: OverlapPrecedence = OverlapPrecedence.ARRAY_ORDER,
        cache_key: str | None = None,
        policy: Mapping[str, Any] | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            backend: Labeling backend.
            settings: Labeling settings.
            surface: Default surface for render().
            state: Shared canvas state.
            version_store: Version history; a fresh one when omitted.
            on_highlights_persist: Called with the snapshot of each successful
                non-empty result.
            on_fetch_suggestions: Called when a span becomes selected.
            precedence: Overlap precedence for the parse result builder.
            cache_key: Host-side cache/prompt identifier.
            policy: Base labeling policy; locks are added automatically.
            enabled: Whether highlighting is on.
        """
        self.client = SpanLabelingClient(backend, settings, on_result=self._handle_result)
        self.controller = SpanInteractionController(state, on_fetch_suggestions)
        self.projector = HighlightProjector()
        self.versions = version_store or VersionStore()
        self.surface = surface
        self._on_highlights_persist = on_highlights_persist
        self._precedence = precedence
        self._cache_key = cache_key
        self._policy = dict(policy or {})
        self._enabled = enabled
        self._text = ""

    @property
    def text(self) -> str:
        """Normalized text currently on screen."""
        return self._text

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def labeling_state(self) -> LabelingState:
        return self.client.state

    def set_enabled(self, enabled: bool) -> LabelingState:
        self._enabled = enabled
        return self._update(immediate=False)

    def set_text(self, text: str | None, *, immediate: bool = False) -> LabelingState:
        """Accept an edit from the host editor."""
        normalized = normalize_or_raw(text) or ""
        if normalized != self._text:
            self.versions.record_edit("edit", len(normalized) - len(self._text))
        self._text = normalized
        return self._update(immediate=immediate)

    def relabel(self) -> LabelingState:
        """Re-dispatch labeling with the current locks in the policy."""
        return self._update(immediate=True)

    def parse_result(self) -> ParseResult:
        """ParseResult for the current labeling state and text."""
        state = self.client.state
        return build_parse_result(
            state.spans,
            state.meta,
            state.signature,
            state.status,
            state.error,
            self._enabled,
            self._text,
            precedence=self._precedence,
        )

    def render(self, surface: EditorSurface | None = None) -> ProjectionReport:
        """Project the current result onto ``surface`` (or the default surface)."""
        target = surface or self.surface
        if target is None:
            raise ValueError("no editor surface to render into")
        result = self.parse_result()
        self.controller.update_parse_result(result, self._text)
        report = self.projector.project(
            target,
            result,
            self._enabled,
            fingerprint(self._enabled, result),
            self._text,
        )
        self.controller.sync_lock_markers(target.root)
        return report

    def create_version(self) -> Version | None:
        """Save the current text as a version if it changed."""
        return self.versions.create_version_if_needed(self._text)

    def select_version(self, version_id: str) -> VersionSelection:
        """Restore a saved version's text and highlights without relabeling.

        Raises:
            VersionNotFoundError: If ``version_id`` is unknown.
        """
        selection = self.versions.handle_select_version(version_id)
        self._text = normalize_or_raw(selection.prompt) or ""
        self._update(immediate=False)
        if selection.highlights is not None:
            self.client.apply_initial(selection.highlights, check_version=False)
        self.versions.reset_edits()
        return selection

    async def drain(self) -> None:
        await self.client.drain()

    async def close(self) -> None:
        await self.client.close()

    def _update(self, *, immediate: bool) -> LabelingState:
        return self.client.update(
            self._text,
            enabled=self._enabled,
            immediate=immediate,
            cache_key=self._cache_key,
            policy=self.controller.build_policy(self._policy),
        )

    def _handle_result(self, result: LabelingResult) -> None:
        snapshot = result.to_snapshot()
        self.versions.set_latest_highlights(snapshot)
        self.versions.sync_version_highlights(snapshot, self._text)
        if self._on_highlights_persist is not None:
            self._on_highlights_persist(snapshot)
