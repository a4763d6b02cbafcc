"""Cheap identity of a ParseResult, used to skip redundant projections."""

from __future__ import annotations

import hashlib
import json

from spancanvas.models.span import ParseResult
from spancanvas.text.signature import signature

DISABLED_FINGERPRINT = "disabled"


def fingerprint(enabled: bool, parse_result: ParseResult | None) -> str:
    """Fingerprint the spans and text a projection would render.

    Structurally identical inputs always produce the same value. When
    highlighting is disabled the constant ``DISABLED_FINGERPRINT`` is returned.
    """
    if not enabled:
        return DISABLED_FINGERPRINT
    parse_result = parse_result or ParseResult()
    canonical = {
        "length": len(parse_result.display_text),
        "signature": signature(parse_result.display_text),
        "spans": [
            [span.start, span.end, span.category, span.id, span.stale, span.rank]
            for span in parse_result.spans
        ],
    }
    canonical_json = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()
