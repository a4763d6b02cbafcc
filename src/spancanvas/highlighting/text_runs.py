"""Flat text-run index over a BeautifulSoup editor tree.

The editor's text is the concatenation of all text nodes in document
order. A TextRunIndex records, for each text node, the global offset range
it covers, so span offsets can be mapped onto (node, local offset) pairs
and back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement, PreformattedString

from spancanvas.errors import DomProjectionFailure

logger = logging.getLogger(__name__)

Affinity = Literal["start", "end"]


@dataclass(frozen=True)
class TextRun:
    """One text node and the global ``[start, end)`` range it covers."""

    node: NavigableString
    start: int
    end: int


@dataclass
class TextRunIndex:
    """Ordered text runs of an editor root."""

    runs: list[TextRun] = field(default_factory=list)
    text: str = ""

    def run_for_node(self, node: PageElement) -> TextRun | None:
        for run in self.runs:
            if run.node is node:
                return run
        return None

    def runs_within(self, element: Tag) -> list[TextRun]:
        """Runs whose text node is a descendant of ``element``."""
        return [run for run in self.runs if is_descendant(run.node, element)]


def is_text_node(node: PageElement) -> bool:
    """True for editable text; comments, CDATA and doctypes are excluded."""
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def is_descendant(node: PageElement, ancestor: Tag) -> bool:
    return node is ancestor or any(parent is ancestor for parent in node.parents)


def build_text_run_index(root: Tag) -> TextRunIndex:
    """Walk ``root`` in document order and index its non-empty text nodes."""
    runs: list[TextRun] = []
    parts: list[str] = []
    offset = 0
    for node in list(root.descendants):
        if not is_text_node(node):
            continue
        value = str(node)
        if not value:
            continue
        runs.append(TextRun(node=node, start=offset, end=offset + len(value)))
        parts.append(value)
        offset += len(value)
    return TextRunIndex(runs=runs, text="".join(parts))


def map_offset(
    index: TextRunIndex,
    offset: int,
    affinity: Affinity = "start",
) -> tuple[NavigableString, int] | None:
    """Map a global offset onto ``(text node, local offset)``.

    At a boundary between two runs, ``affinity="start"`` picks the run that
    begins there and ``affinity="end"`` the run that ends there.

    Returns:
        The node and local offset, or None if the offset is out of range.
    """
    if not index.runs or offset < 0 or offset > len(index.text):
        return None
    if affinity == "end":
        for run in index.runs:
            if run.start < offset <= run.end:
                return run.node, offset - run.start
        first = index.runs[0]
        return first.node, 0
    for run in index.runs:
        if run.start <= offset < run.end:
            return run.node, offset - run.start
    last = index.runs[-1]
    return last.node, last.end - last.start


def offset_of(index: TextRunIndex, node: PageElement, local_offset: int) -> int | None:
    """Inverse of map_offset: global offset for a point in a text node."""
    run = index.run_for_node(node)
    if run is None:
        return None
    return run.start + max(0, min(local_offset, run.end - run.start))


def soup_of(node: PageElement) -> BeautifulSoup:
    """Return the BeautifulSoup document owning ``node``."""
    if isinstance(node, BeautifulSoup):
        return node
    for parent in node.parents:
        if isinstance(parent, BeautifulSoup):
            return parent
    raise DomProjectionFailure("editor root is not attached to a document")


def wrap_range_segments(
    index: TextRunIndex,
    start: int,
    end: int,
    create_marker: Callable[[], Tag],
) -> tuple[list[Tag], int]:
    """Wrap every text-node segment of ``[start, end)`` in its own marker.

    Text nodes straddling a boundary are split first. Nodes fully inside the
    range are wrapped as-is so their identity survives.

    Returns:
        ``(markers, mutations)``: created markers in document order and the
        number of tree mutations performed.
    """
    markers: list[Tag] = []
    mutations = 0
    for run in index.runs:
        if run.end <= start or run.start >= end:
            continue
        local_start = max(start, run.start) - run.start
        local_end = min(end, run.end) - run.start
        node = run.node
        value = str(node)
        if local_start > 0 or local_end < len(value):
            before = value[:local_start]
            after = value[local_end:]
            middle = NavigableString(value[local_start:local_end])
            node.replace_with(middle)
            if before:
                middle.insert_before(NavigableString(before))
            if after:
                middle.insert_after(NavigableString(after))
            node = middle
            mutations += 1
        node.wrap(create_marker())
        markers.append(node.parent)
        mutations += 1
    return markers, mutations


def unwrap_marker(marker: Tag) -> int:
    """Replace ``marker`` with its children and merge adjacent text.

    Returns:
        Number of tree mutations (0 if the marker is already detached).
    """
    parent = marker.parent
    if parent is None:
        return 0
    marker.unwrap()
    parent.smooth()
    return 1
