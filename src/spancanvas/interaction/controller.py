"""Span interaction controller: selection, hover, locks and navigation.

Maps editor nodes to span ids (nearest marker ancestor) and span ids to
marker elements, and turns clicks into selection toggles and
suggestion-fetch requests. Hover never triggers fetches.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from bs4 import Tag
from bs4.element import PageElement

from spancanvas.highlighting.projector import LOCKED_ATTR, MARKER_TAG, SPAN_ID_ATTR
from spancanvas.interaction.locks import build_locked_policy, find_lock, locked_span_ids
from spancanvas.interaction.state import PromptCanvasState
from spancanvas.interaction.suggestions import SuggestionRequest, build_suggestion_request
from spancanvas.models.span import LockedSpan, ParseResult, Span

logger = logging.getLogger(__name__)

SuggestionCallback = Callable[[SuggestionRequest], None]


class SpanInteractionController:
    """User interaction with projected spans on one text surface."""

    def __init__(
        self,
        state: PromptCanvasState | None = None,
        on_fetch_suggestions: SuggestionCallback | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            state: Shared canvas state; a fresh one when omitted.
            on_fetch_suggestions: Called when a span becomes selected.
        """
        self.state = state or PromptCanvasState()
        self._on_fetch_suggestions = on_fetch_suggestions
        self._parse_result = ParseResult()
        self._displayed_prompt = ""

    @property
    def parse_result(self) -> ParseResult:
        return self._parse_result

    @staticmethod
    def span_id_from_node(node: PageElement | None, root: Tag | None = None) -> str | None:
        """Return the ``data-span-id`` of the nearest marker at or above ``node``.

        The walk stops at ``root`` when given.
        """
        current: PageElement | None = node
        while current is not None:
            if isinstance(current, Tag):
                value = current.get(SPAN_ID_ATTR)
                if isinstance(value, str) and value:
                    return value
            if root is not None and current is root:
                return None
            current = current.parent
        return None

    @staticmethod
    def find_marker(root: Tag, span_id: str) -> Tag | None:
        """Return the first marker element for ``span_id`` under ``root``."""
        if not span_id:
            return None
        return root.find(MARKER_TAG, attrs={SPAN_ID_ATTR: span_id})

    def update_parse_result(
        self,
        parse_result: ParseResult,
        displayed_prompt: str | None = None,
    ) -> frozenset[str]:
        """Adopt a new ParseResult.

        Returns:
            Ids of spans in the new result that match a lock.
        """
        self._parse_result = parse_result
        self._displayed_prompt = (
            displayed_prompt if displayed_prompt is not None else parse_result.display_text
        )
        return self.locked_span_ids()

    def select_span(self, span_id: str | None) -> SuggestionRequest | None:
        """Toggle selection of ``span_id``.

        Selecting the already-selected span clears the selection. Selecting
        a different span replaces it and emits a suggestion request.

        Returns:
            The emitted request, or None.
        """
        if span_id is None or span_id == self.state.selected_span_id:
            self.state.set_selected_span_id(None)
            return None
        return self._focus(span_id)

    def handle_click(
        self,
        node: PageElement | None,
        root: Tag | None = None,
    ) -> SuggestionRequest | None:
        """Click on an editor node. Clicks outside markers are ignored."""
        span_id = self.span_id_from_node(node, root)
        if span_id is None:
            return None
        return self.select_span(span_id)

    def handle_hover(self, node: PageElement | None, root: Tag | None = None) -> bool:
        """Pointer moved over ``node``. Returns True if the hovered span changed."""
        return self.hover_span(self.span_id_from_node(node, root))

    def hover_span(self, span_id: str | None) -> bool:
        """Set the hovered span. Returns True if it changed."""
        return self.state.set_hovered_span_id(span_id)

    def toggle_lock(self, span_id: str) -> bool | None:
        """Lock or unlock the span with ``span_id``.

        Returns:
            True if now locked, False if now unlocked, None if the span is unknown.
        """
        span = self._parse_result.find(span_id)
        if span is None:
            logger.debug("Cannot toggle lock for unknown span %s", span_id)
            return None
        existing = find_lock(self.state.locked_spans, span)
        if existing is not None:
            self.state.remove_locked_span(existing)
            return False
        self.state.add_locked_span(LockedSpan.from_span(span))
        return True

    def is_locked(self, span_id: str) -> bool:
        return span_id in self.locked_span_ids()

    def locked_span_ids(self) -> frozenset[str]:
        """Ids of spans in the current result matching a lock."""
        return locked_span_ids(self._parse_result, self.state.locked_spans)

    def build_policy(self, base_policy: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Labeling policy carrying the current locks."""
        return build_locked_policy(base_policy, self.state.locked_spans)

    def sync_lock_markers(self, root: Tag) -> int:
        """Set ``data-locked`` on markers of locked spans and remove it elsewhere.

        Returns:
            Number of markers whose attribute changed.
        """
        locked = self.locked_span_ids()
        changed = 0
        for marker in root.find_all(MARKER_TAG, attrs={SPAN_ID_ATTR: True}):
            is_locked = marker.get(SPAN_ID_ATTR) in locked
            if is_locked and marker.get(LOCKED_ATTR) != "true":
                marker[LOCKED_ATTR] = "true"
                changed += 1
            elif not is_locked and marker.has_attr(LOCKED_ATTR):
                del marker[LOCKED_ATTR]
                changed += 1
        return changed

    def on_suggestions_closed(self) -> None:
        """The suggestion panel closed; drop the selection it depended on."""
        self.clear_selection()

    def clear_selection(self) -> None:
        self.state.set_selected_span_id(None)

    def select_next(self) -> SuggestionRequest | None:
        """Select the next span in document order, wrapping around."""
        return self._step(1)

    def select_previous(self) -> SuggestionRequest | None:
        """Select the previous span in document order, wrapping around."""
        return self._step(-1)

    def _step(self, direction: int) -> SuggestionRequest | None:
        spans = self._parse_result.renderable_spans()
        if not spans:
            return None
        ids = [span.id for span in spans]
        current = self.state.selected_span_id
        if current in ids:
            position = (ids.index(current) + direction) % len(ids)
        else:
            position = 0 if direction > 0 else len(ids) - 1
        return self._focus(ids[position])

    def _focus(self, span_id: str) -> SuggestionRequest | None:
        self.state.set_selected_span_id(span_id)
        span = self._parse_result.find(span_id)
        if span is None or self._on_fetch_suggestions is None:
            return None
        request = self._suggestion_request(span)
        self._on_fetch_suggestions(request)
        return request

    def _suggestion_request(self, span: Span) -> SuggestionRequest:
        return build_suggestion_request(span, self._parse_result, self._displayed_prompt)
