"""Highlight snapshot and version models.

A HighlightSnapshot is the labeling computed for one exact text (identified
by its signature). A Version is a saved text state in an append-only
history, optionally carrying the snapshot that was current when it was saved.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from spancanvas.models.span import Span


class HighlightSnapshot(BaseModel):
    """Labeling result tied to the signature of the text it was computed for.

    Attributes:
        spans: Labeled spans relative to that text.
        meta: Backend metadata (template version, source, notes).
        signature: Signature of the labeled text.
        cache_id: Host-side cache/prompt identifier.
        updated_at: When the labeling succeeded.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    spans: tuple[Span, ...] = ()
    meta: dict[str, Any] | None = None
    signature: str = Field(min_length=1)
    cache_id: str | None = None
    updated_at: datetime


def is_highlight_snapshot(value: Any) -> bool:
    """Return True if ``value`` is (or parses as) a HighlightSnapshot."""
    if isinstance(value, HighlightSnapshot):
        return True
    if not isinstance(value, dict):
        return False
    try:
        HighlightSnapshot.model_validate(value)
    except ValidationError:
        return False
    return True


class VersionEdit(BaseModel):
    """One tracked edit between two versions."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    timestamp: datetime
    kind: str
    delta: int = 0


class Version(BaseModel):
    """Saved text + highlight state in an append-only history."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    version_id: str
    label: str
    signature: str
    prompt: str
    highlights: HighlightSnapshot | None = None
    timestamp: datetime
    edit_count: int | None = None
    edits: tuple[VersionEdit, ...] | None = None


class VersionPanelEntry(Version):
    """Version as shown in a history panel, with its dirty flag."""

    is_dirty: bool = False
