"""Prompt-canvas interaction state.

The only state shared between the labeling pipeline and the interaction
controller. All mutation goes through the setters, which apply synchronously
and notify listeners only when a value actually changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from spancanvas.models.span import LockedSpan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanvasStateChange:
    """One applied state change."""

    field: str
    previous: Any
    current: Any


StateChangeListener = Callable[[CanvasStateChange], None]


class PromptCanvasState:
    """Selected, hovered and locked spans for one text surface."""

    def __init__(self) -> None:
        self._selected_span_id: str | None = None
        self._hovered_span_id: str | None = None
        self._locked_spans: tuple[LockedSpan, ...] = ()
        self._listeners: list[StateChangeListener] = []

    @property
    def selected_span_id(self) -> str | None:
        return self._selected_span_id

    @property
    def hovered_span_id(self) -> str | None:
        return self._hovered_span_id

    @property
    def locked_spans(self) -> tuple[LockedSpan, ...]:
        """Locked spans in the order they were locked."""
        return self._locked_spans

    def subscribe(self, listener: StateChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_selected_span_id(self, span_id: str | None) -> bool:
        """Set the selected span. Returns True if the value changed."""
        if span_id == self._selected_span_id:
            return False
        previous = self._selected_span_id
        self._selected_span_id = span_id
        self._notify("selected_span_id", previous, span_id)
        return True

    def set_hovered_span_id(self, span_id: str | None) -> bool:
        """Set the hovered span. Returns True if the value changed."""
        if span_id == self._hovered_span_id:
            return False
        previous = self._hovered_span_id
        self._hovered_span_id = span_id
        self._notify("hovered_span_id", previous, span_id)
        return True

    def add_locked_span(self, locked: LockedSpan) -> bool:
        """Lock a span. Returns False if an equal lock already exists."""
        if locked in self._locked_spans:
            return False
        previous = self._locked_spans
        self._locked_spans = (*previous, locked)
        self._notify("locked_spans", previous, self._locked_spans)
        return True

    def remove_locked_span(self, locked: LockedSpan) -> bool:
        """Unlock a span. Returns False if it was not locked."""
        if locked not in self._locked_spans:
            return False
        previous = self._locked_spans
        self._locked_spans = tuple(item for item in previous if item != locked)
        self._notify("locked_spans", previous, self._locked_spans)
        return True

    def _notify(self, field: str, previous: Any, current: Any) -> None:
        logger.debug("Canvas state %s changed", field)
        change = CanvasStateChange(field=field, previous=previous, current=current)
        for listener in list(self._listeners):
            listener(change)
