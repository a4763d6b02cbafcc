"""Version history with highlight snapshots."""

from spancanvas.versioning.store import VersionSelection, VersionStore

__all__ = ["VersionSelection", "VersionStore"]
