"""Content signatures of normalized text.

Used as the labeling cache key and as the staleness check between the text
on screen and the text a labeling (or a saved version) was computed for.
"""

from __future__ import annotations

import hashlib

from spancanvas.text.normalize import normalize_or_raw


def signature(text: str | None) -> str:
    """Compute a deterministic SHA-256 signature of ``text``.

    The text is NFC-normalized first, so composed and decomposed spellings
    of the same characters share one signature. ``None`` signs as ``""``.

    Args:
        text: Text to sign.

    Returns:
        Lowercase hex digest.
    """
    normalized = normalize_or_raw(text) or ""
    return hashlib.sha256(normalized.encode("utf-8", "surrogatepass")).hexdigest()


def is_signature_match(text: str | None, expected: str | None) -> bool:
    """Return True if ``text`` signs to ``expected``."""
    if not expected:
        return False
    return signature(text) == expected
