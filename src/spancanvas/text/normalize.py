"""Canonical NFC form for every text entering the system.

All span offsets are defined against normalized text only. Text coming from
an editable surface or an external caller passes through ``normalize``
before it is compared, signed or labeled.
"""

from __future__ import annotations

import logging
import unicodedata

from spancanvas.errors import NormalizationError

logger = logging.getLogger(__name__)

NORMALIZATION_FORM = "NFC"


def normalize(raw: str | None) -> str | None:
    """Return the NFC form of ``raw``.

    Absence is preserved: ``None`` in yields ``None`` out, never ``""``.
    Idempotent: ``normalize(normalize(x)) == normalize(x)``.

    Args:
        raw: Text to normalize, or None.

    Returns:
        Normalized text, or None.

    Raises:
        NormalizationError: If the value cannot be normalized.
    """
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise NormalizationError(f"Expected str, got {type(raw).__name__}")
    if unicodedata.is_normalized(NORMALIZATION_FORM, raw):
        return raw
    try:
        return unicodedata.normalize(NORMALIZATION_FORM, raw)
    except (TypeError, ValueError) as e:
        raise NormalizationError(cause=e) from e


def normalize_or_raw(raw: str | None) -> str | None:
    """Normalize ``raw``, falling back to the raw value on failure."""
    try:
        return normalize(raw)
    except NormalizationError as e:
        logger.warning("Falling back to raw text: %s", e)
        return raw


def utf16_offset_to_index(text: str, offset: int) -> int:
    """Convert a UTF-16 code-unit offset into a Python string index.

    Browser-side labelers count astral characters (emoji, some CJK) as two
    code units; Python counts them as one. Offsets past the end map to
    ``len(text)``; an offset landing inside a surrogate pair maps to the
    index of the character it splits.

    Args:
        text: Normalized text the offset refers to.
        offset: UTF-16 code-unit offset.

    Returns:
        Code-point index into ``text``.
    """
    if offset <= 0:
        return 0
    units = 0
    for index, char in enumerate(text):
        units += 2 if ord(char) > 0xFFFF else 1
        if units > offset:
            return index
        if units == offset:
            return index + 1
    return len(text)
