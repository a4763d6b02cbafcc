"""Highlight projector: ParseResult -> marker elements in the editor tree.

Rendering is diff-based. Markers of removed or changed spans are unwrapped,
only new or changed spans are wrapped, and untouched text nodes keep their
identity. Overlapping spans nest by rank (highest rank innermost). The
editor selection is carried across mutations as global text offsets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from bs4 import NavigableString, Tag

from spancanvas.errors import DomProjectionFailure
from spancanvas.highlighting.text_runs import (
    TextRunIndex,
    build_text_run_index,
    is_descendant,
    map_offset,
    offset_of,
    soup_of,
    unwrap_marker,
    wrap_range_segments,
)
from spancanvas.models.span import ParseResult, Span
from spancanvas.observability.tracing import set_span_attributes, traced_operation

logger = logging.getLogger(__name__)

MARKER_TAG = "span"
MARKER_CLASS = "value-word"
SPAN_ID_ATTR = "data-span-id"
LOCKED_ATTR = "data-locked"


@dataclass
class SelectionPoint:
    """A position inside a text node."""

    node: NavigableString
    offset: int


@dataclass
class SurfaceSelection:
    """Active selection (collapsed when anchor equals focus)."""

    anchor: SelectionPoint
    focus: SelectionPoint

    @property
    def is_collapsed(self) -> bool:
        return self.anchor.node is self.focus.node and self.anchor.offset == self.focus.offset


@dataclass
class _RenderedSpan:
    span: Span
    markers: list[Tag]


@dataclass
class ProjectionState:
    """What was last committed to a surface."""

    fingerprint: str | None = None
    span_map: dict[str, _RenderedSpan] = field(default_factory=dict)


class EditorSurface:
    """An editable text surface backed by a BeautifulSoup element.

    Attributes:
        root: Element whose text content is the editor text.
        selection: Current selection, or None when the editor is unfocused.
        projection: Projection bookkeeping for this surface.
    """

    def __init__(self, root: Tag, selection: SurfaceSelection | None = None) -> None:
        self.root = root
        self.selection = selection
        self.projection = ProjectionState()

    @property
    def text(self) -> str:
        return build_text_run_index(self.root).text

    def markers(self) -> list[Tag]:
        """All marker elements in document order."""
        return self.root.find_all(MARKER_TAG, attrs={SPAN_ID_ATTR: True})

    def select(self, start: int, end: int | None = None) -> None:
        """Set the selection from global text offsets (caret when ``end`` is None)."""
        index = build_text_run_index(self.root)
        self.selection = _selection_from_offsets(index, start, start if end is None else end)

    def selection_offsets(self) -> tuple[int, int] | None:
        """Current selection as global ``(anchor, focus)`` offsets."""
        if self.selection is None:
            return None
        return _selection_to_offsets(build_text_run_index(self.root), self.selection)


@dataclass
class ProjectionReport:
    """Outcome of one projection pass.

    Attributes:
        skipped: True if the pass made no rendering decision (disabled,
            unchanged fingerprint or text mismatch).
        reason: Why the pass was skipped.
        rendered: Spans wrapped in this pass.
        removed: Spans unwrapped because they left the result.
        mutations: Tree mutations performed.
        skipped_spans: Ids of spans not rendered (stale, out of bounds or unmappable).
        failures: Projection failures recorded instead of raised.
    """

    skipped: bool = False
    reason: str | None = None
    rendered: int = 0
    removed: int = 0
    mutations: int = 0
    skipped_spans: list[str] = field(default_factory=list)
    failures: list[DomProjectionFailure] = field(default_factory=list)


def _selection_to_offsets(
    index: TextRunIndex,
    selection: SurfaceSelection,
) -> tuple[int, int] | None:
    anchor = offset_of(index, selection.anchor.node, selection.anchor.offset)
    focus = offset_of(index, selection.focus.node, selection.focus.offset)
    if anchor is None or focus is None:
        return None
    return anchor, focus


def _selection_from_offsets(
    index: TextRunIndex,
    anchor: int,
    focus: int,
) -> SurfaceSelection | None:
    anchor_point = map_offset(index, anchor)
    focus_point = map_offset(index, focus, "end" if focus > anchor else "start")
    if anchor_point is None or focus_point is None:
        return None
    return SurfaceSelection(
        anchor=SelectionPoint(*anchor_point),
        focus=SelectionPoint(*focus_point),
    )


def _span_changed(previous: Span, current: Span) -> bool:
    return (
        previous.start != current.start
        or previous.end != current.end
        or previous.quote != current.quote
        or previous.category != current.category
        or previous.confidence != current.confidence
        or previous.source != current.source
    )


class HighlightProjector:
    """Projects ParseResults onto EditorSurfaces."""

    def project(
        self,
        surface: EditorSurface,
        parse_result: ParseResult,
        enabled: bool,
        fingerprint: str | None,
        text: str | None = None,
    ) -> ProjectionReport:
        """Render ``parse_result`` into ``surface``.

        Never raises for data problems: out-of-bounds or stale spans are
        skipped and a root/display text mismatch renders plain text.

        Args:
            surface: Target editor surface.
            parse_result: Spans and display text.
            enabled: When False existing markers are removed.
            fingerprint: Fingerprint of ``parse_result``; unchanged means no-op.
            text: Fallback display text when the parse result carries none.

        Returns:
            ProjectionReport describing what changed.
        """
        state = surface.projection

        if not enabled:
            mutations = self.clear(surface)
            return ProjectionReport(skipped=True, reason="disabled", mutations=mutations)

        if fingerprint and fingerprint == state.fingerprint:
            return ProjectionReport(skipped=True, reason="unchanged")

        display_text = parse_result.display_text or text or ""
        with traced_operation(
            "spancanvas.highlight.project",
            {
                "spancanvas.text_length": len(display_text),
                "spancanvas.span_count": len(parse_result.spans),
            },
        ) as trace_span:
            report = self._project(surface, parse_result, display_text, fingerprint)
            set_span_attributes(
                trace_span,
                {
                    "spancanvas.rendered": report.rendered,
                    "spancanvas.removed": report.removed,
                    "spancanvas.mutations": report.mutations,
                },
            )
        return report

    def clear(self, surface: EditorSurface) -> int:
        """Unwrap every marker on ``surface`` and forget its projection.

        Returns:
            Number of tree mutations performed.
        """
        saved = surface.selection_offsets()
        mutations = 0
        for marker in list(surface.markers()):
            mutations += unwrap_marker(marker)
        surface.projection = ProjectionState()
        self._restore_selection(surface, saved)
        return mutations

    def _project(
        self,
        surface: EditorSurface,
        parse_result: ParseResult,
        display_text: str,
        fingerprint: str | None,
    ) -> ProjectionReport:
        state = surface.projection
        report = ProjectionReport()

        if not parse_result.spans or not display_text:
            if state.span_map:
                report.removed = len(state.span_map)
                report.mutations = self.clear(surface)
            surface.projection.fingerprint = fingerprint
            return report

        root_text = surface.text
        if root_text != display_text:
            failure = DomProjectionFailure(
                f"editor text (len={len(root_text)}) does not match display text "
                f"(len={len(display_text)})"
            )
            logger.debug("%s", failure)
            mutations = self.clear(surface) if state.span_map else 0
            surface.projection.fingerprint = None
            return ProjectionReport(
                skipped=True,
                reason="text-mismatch",
                mutations=mutations,
                failures=[failure],
            )

        saved = surface.selection_offsets()

        wanted: dict[str, Span] = {}
        for span in parse_result.spans:
            if span.stale:
                report.skipped_spans.append(span.id)
                continue
            if span.start < 0 or span.end > len(display_text) or span.start >= span.end:
                report.skipped_spans.append(span.id)
                report.failures.append(
                    DomProjectionFailure("span outside display text", span_id=span.id)
                )
                continue
            if span.id in wanted:
                report.skipped_spans.append(span.id)
                report.failures.append(DomProjectionFailure("duplicate span id", span_id=span.id))
                continue
            wanted[span.id] = span

        for span_id in list(state.span_map):
            if span_id not in wanted:
                for marker in state.span_map.pop(span_id).markers:
                    report.mutations += unwrap_marker(marker)
                report.removed += 1

        to_render = self._spans_to_render(surface, wanted)

        for span_id in to_render:
            previous = state.span_map.pop(span_id, None)
            if previous is not None:
                for marker in previous.markers:
                    report.mutations += unwrap_marker(marker)

        for span in sorted((wanted[i] for i in to_render), key=lambda s: (s.rank, s.start)):
            index = build_text_run_index(surface.root)
            markers, mutations = wrap_range_segments(
                index,
                span.start,
                span.end,
                lambda span=span: self._make_marker(surface.root, span),
            )
            report.mutations += mutations
            if not markers:
                report.skipped_spans.append(span.id)
                report.failures.append(
                    DomProjectionFailure("no text nodes in span range", span_id=span.id)
                )
                continue
            state.span_map[span.id] = _RenderedSpan(span=span, markers=markers)
            report.rendered += 1

        for span_id, rendered in state.span_map.items():
            # keep rank/metadata current for spans that were not re-wrapped
            if span_id not in to_render:
                rendered.span = wanted[span_id]

        state.fingerprint = fingerprint
        if report.mutations:
            self._restore_selection(surface, saved)
        logger.debug(
            "Projected %d spans (removed=%d, mutations=%d, skipped=%d)",
            report.rendered,
            report.removed,
            report.mutations,
            len(report.skipped_spans),
        )
        return report

    def _spans_to_render(self, surface: EditorSurface, wanted: dict[str, Span]) -> list[str]:
        state = surface.projection
        index = build_text_run_index(surface.root)
        to_render: set[str] = set()

        for span_id, span in wanted.items():
            previous = state.span_map.get(span_id)
            if previous is None or _span_changed(previous.span, span):
                to_render.add(span_id)
            elif not self._markers_cover(surface.root, index, previous.markers, span):
                to_render.add(span_id)

        kept = [span_id for span_id in wanted if span_id not in to_render]
        for i, first_id in enumerate(kept):
            for second_id in kept[i + 1 :]:
                old_first = state.span_map[first_id].span
                old_second = state.span_map[second_id].span
                if not wanted[first_id].overlaps(wanted[second_id]):
                    continue
                was_first_inner = old_first.rank > old_second.rank
                is_first_inner = wanted[first_id].rank > wanted[second_id].rank
                if was_first_inner != is_first_inner:
                    to_render.update((first_id, second_id))

        # anything nested inside a re-rendered span must be re-wrapped after it
        changed = True
        while changed:
            changed = False
            for span_id, span in wanted.items():
                if span_id in to_render:
                    continue
                if any(
                    span.overlaps(wanted[other]) and span.rank > wanted[other].rank
                    for other in to_render
                ):
                    to_render.add(span_id)
                    changed = True

        return sorted(to_render, key=lambda i: (wanted[i].rank, wanted[i].start))

    @staticmethod
    def _markers_cover(root: Tag, index: TextRunIndex, markers: list[Tag], span: Span) -> bool:
        if not markers or any(not is_descendant(marker, root) for marker in markers):
            return False
        runs = [run for marker in markers for run in index.runs_within(marker)]
        if not runs:
            return False
        return min(r.start for r in runs) == span.start and max(r.end for r in runs) == span.end

    @staticmethod
    def _make_marker(root: Tag, span: Span) -> Tag:
        classes = [MARKER_CLASS]
        if span.category:
            classes.append(f"{MARKER_CLASS}-{span.category}")
        attrs = {
            "class": " ".join(classes),
            SPAN_ID_ATTR: span.id,
            "data-category": span.category or "",
            "data-start": str(span.start),
            "data-end": str(span.end),
        }
        if span.confidence is not None:
            attrs["data-confidence"] = f"{span.confidence:g}"
        if span.source:
            attrs["data-source"] = span.source
        return soup_of(root).new_tag(MARKER_TAG, attrs=attrs)

    @staticmethod
    def _restore_selection(surface: EditorSurface, saved: tuple[int, int] | None) -> None:
        if saved is None or surface.selection is None:
            return
        index = build_text_run_index(surface.root)
        if _selection_to_offsets(index, surface.selection) == saved:
            return
        surface.selection = _selection_from_offsets(index, *saved)
