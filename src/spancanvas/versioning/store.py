"""Append-only version history with highlight snapshots.

Each version records a text state, its signature and (when available) the
labeling snapshot computed for exactly that text. Snapshots that arrive for
a text the history has moved past are archived by signature instead of
being attached to the wrong version.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from spancanvas.errors import VersionNotFoundError
from spancanvas.models.snapshot import (
    HighlightSnapshot,
    Version,
    VersionEdit,
    VersionPanelEntry,
)
from spancanvas.text.signature import signature

logger = logging.getLogger(__name__)

VersionsListener = Callable[[tuple[Version, ...]], None]


def _default_version_id() -> str:
    return f"v-{uuid.uuid4().hex[:12]}"


class VersionSelection(BaseModel):
    """What the host must restore after selecting a version."""

    model_config = ConfigDict(frozen=True)

    version: Version
    prompt: str
    highlights: HighlightSnapshot | None = None


class VersionStore:
    """Version history for one prompt.

    Single event loop only. ``on_change`` receives the full version tuple
    after every change to the history so the host can persist it.
    """

    def __init__(
        self,
        on_change: VersionsListener | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        versions: list[Version] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            on_change: Called with all versions after each history change.
            clock: Returns the current UTC time. Injectable for tests.
            id_factory: Returns a new unique version id.
            versions: Previously persisted history, oldest first.
        """
        self._on_change = on_change
        self._clock = clock or (lambda: datetime.now(UTC))
        self._id_factory = id_factory or _default_version_id
        self._versions: list[Version] = list(versions or [])
        self._edits: list[VersionEdit] = []
        self._edit_count = 0
        self._latest_highlights: HighlightSnapshot | None = None
        self._archive: dict[str, HighlightSnapshot] = {}
        self._active_version_id: str | None = None

    @property
    def versions(self) -> tuple[Version, ...]:
        """All versions, oldest first."""
        return tuple(self._versions)

    @property
    def latest_version(self) -> Version | None:
        return self._versions[-1] if self._versions else None

    @property
    def active_version(self) -> Version | None:
        """The selected version, or the latest when none is selected."""
        if self._active_version_id:
            for version in self._versions:
                if version.version_id == self._active_version_id:
                    return version
        return self.latest_version

    @property
    def edit_count(self) -> int:
        return self._edit_count

    @property
    def pending_edits(self) -> tuple[VersionEdit, ...]:
        return tuple(self._edits)

    @property
    def latest_highlights(self) -> HighlightSnapshot | None:
        return self._latest_highlights

    def record_edit(self, kind: str = "edit", delta: int = 0) -> int:
        """Track one edit since the last version. Returns the pending count."""
        self._edit_count += 1
        self._edits.append(VersionEdit(timestamp=self._clock(), kind=kind, delta=delta))
        return self._edit_count

    def reset_edits(self) -> None:
        self._edit_count = 0
        self._edits = []

    def set_latest_highlights(self, snapshot: HighlightSnapshot | None) -> None:
        """Remember the most recent labeling snapshot (also archived)."""
        self._latest_highlights = snapshot
        if snapshot is not None:
            self._archive[snapshot.signature] = snapshot

    def snapshot_for(self, text_signature: str) -> HighlightSnapshot | None:
        """Return the newest known snapshot for ``text_signature``."""
        for version in reversed(self._versions):
            if version.signature == text_signature and version.highlights is not None:
                return version.highlights
        return self._archive.get(text_signature)

    def create_version_if_needed(self, prompt_text: str) -> Version | None:
        """Append a version for ``prompt_text`` unless the latest already matches.

        The latest highlights are attached when they were computed for this
        exact text. Pending edits are moved onto the new version and reset.

        Returns:
            The new or unchanged latest version; None for blank text.
        """
        if not prompt_text or not prompt_text.strip():
            return None

        text_signature = signature(prompt_text)
        latest = self.latest_version
        if latest is not None and latest.signature == text_signature:
            return latest

        highlights = self._matching_highlights(text_signature)
        version = self._new_version(prompt_text, text_signature, highlights)
        self._append(version)
        return version

    def sync_version_highlights(
        self,
        snapshot: HighlightSnapshot,
        prompt_text: str,
    ) -> Version | None:
        """Attach a fresh labeling snapshot to the version it belongs to.

        With an empty history the first version is created. Otherwise the
        snapshot is attached to the latest version only when the latest
        version, ``prompt_text`` and the snapshot share one signature; in
        every other case it is only archived.

        Returns:
            The version created or updated, or None when only archived.
        """
        self._archive[snapshot.signature] = snapshot

        if not prompt_text or not prompt_text.strip():
            return None
        text_signature = signature(prompt_text)

        if not self._versions:
            highlights = snapshot if snapshot.signature == text_signature else None
            version = self._new_version(prompt_text, text_signature, highlights)
            self._append(version)
            return version

        latest = self._versions[-1]
        if latest.signature != text_signature or snapshot.signature != text_signature:
            logger.debug("Snapshot archived; latest version belongs to another text")
            return None

        updated = latest.model_copy(update={"highlights": snapshot})
        self._versions[-1] = updated
        self._changed()
        return updated

    def handle_select_version(self, version_id: str) -> VersionSelection:
        """Select a version to restore its text and highlights.

        Raises:
            VersionNotFoundError: If ``version_id`` is not in the history.
        """
        for version in self._versions:
            if version.version_id == version_id:
                break
        else:
            raise VersionNotFoundError(version_id)

        self._active_version_id = version_id
        self.reset_edits()
        highlights = version.highlights or self._archive.get(version.signature)
        self._latest_highlights = highlights
        logger.debug("Selected version %s (%s)", version.label, version_id)
        return VersionSelection(version=version, prompt=version.prompt, highlights=highlights)

    def is_dirty(self, current_prompt: str | None) -> bool:
        """True if the latest version no longer matches ``current_prompt``."""
        latest = self.latest_version
        if latest is None or not current_prompt:
            return False
        return latest.signature != signature(current_prompt)

    def versions_for_panel(self, current_prompt: str | None) -> list[VersionPanelEntry]:
        """Versions newest first; the newest carries the dirty flag."""
        ordered = sorted(
            enumerate(self._versions),
            key=lambda item: (item[1].timestamp, item[0]),
            reverse=True,
        )
        dirty = self.is_dirty(current_prompt)
        return [
            VersionPanelEntry(**version.model_dump(), is_dirty=(position == 0 and dirty))
            for position, (_, version) in enumerate(ordered)
        ]

    def _matching_highlights(self, text_signature: str) -> HighlightSnapshot | None:
        latest = self._latest_highlights
        if latest is not None and latest.signature == text_signature:
            return latest
        return self._archive.get(text_signature)

    def _new_version(
        self,
        prompt_text: str,
        text_signature: str,
        highlights: HighlightSnapshot | None,
    ) -> Version:
        version = Version(
            version_id=self._id_factory(),
            label=f"v{len(self._versions) + 1}",
            signature=text_signature,
            prompt=prompt_text,
            highlights=highlights,
            timestamp=self._clock(),
            edit_count=self._edit_count or None,
            edits=tuple(self._edits) or None,
        )
        self.reset_edits()
        return version

    def _append(self, version: Version) -> None:
        self._versions.append(version)
        self._active_version_id = version.version_id
        logger.debug("Created version %s", version.label)
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(tuple(self._versions))
