"""Tests for the text normalizer.

Covers:
- NFC normalization and absence preservation
- Idempotence
- Fallback to raw text on failure
- UTF-16 offset conversion
"""

from __future__ import annotations

import logging

import pytest

from spancanvas.errors import NormalizationError
from spancanvas.text.normalize import normalize, normalize_or_raw, utf16_offset_to_index

SAMPLES = [
    "",
    "plain ascii",
    "cafe\u0301",
    "caf\u00e9",
    "A\u030angstro\u0308m and \u00c5ngstr\u00f6m",
    "emoji \U0001f600 and CJK \u6f22\u5b57",
    "\ufb01 ligature",
]


class TestNormalize:
    """Tests for normalize()."""

    def test_none_is_preserved(self) -> None:
        assert normalize(None) is None

    def test_empty_string_stays_empty(self) -> None:
        assert normalize("") == ""

    def test_composes_decomposed_characters(self) -> None:
        assert normalize("cafe\u0301") == "caf\u00e9"

    def test_already_normalized_text_is_returned_unchanged(self) -> None:
        text = "golden hour at the beach"
        assert normalize(text) is text

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text: str) -> None:
        once = normalize(text)
        assert normalize(once) == once

    def test_non_string_raises(self) -> None:
        with pytest.raises(NormalizationError):
            normalize(42)  # type: ignore[arg-type]


class TestNormalizeOrRaw:
    """Tests for normalize_or_raw() fallback."""

    def test_normalizes_valid_text(self) -> None:
        assert normalize_or_raw("cafe\u0301") == "caf\u00e9"

    def test_falls_back_to_raw_value(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="spancanvas.text.normalize"):
            assert normalize_or_raw(42) == 42  # type: ignore[arg-type]
        assert "Falling back to raw text" in caplog.text


class TestUtf16OffsetToIndex:
    """Tests for UTF-16 code unit -> code point conversion."""

    def test_bmp_text_is_identity(self) -> None:
        assert utf16_offset_to_index("golden hour", 6) == 6

    def test_astral_character_counts_two_units(self) -> None:
        text = "a\U0001f600b"
        assert utf16_offset_to_index(text, 1) == 1
        assert utf16_offset_to_index(text, 3) == 2
        assert utf16_offset_to_index(text, 4) == 3

    def test_offset_inside_surrogate_pair_maps_to_split_character(self) -> None:
        assert utf16_offset_to_index("a\U0001f600b", 2) == 1

    def test_out_of_range_offsets_are_clamped(self) -> None:
        assert utf16_offset_to_index("abc", -5) == 0
        assert utf16_offset_to_index("abc", 99) == 3
