"""Content-based span locks.

Locks are matched by ``(quote, category)``, never by offsets, so a locked
span stays locked across edits and relabelings.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from spancanvas.labeling.backend import merge_policy
from spancanvas.models.span import LockedSpan, ParseResult, Span


def find_lock(locked_spans: Iterable[LockedSpan], span: Span) -> LockedSpan | None:
    """Return the lock matching ``span``, if any."""
    for locked in locked_spans:
        if locked.matches(span):
            return locked
    return None


def locked_span_ids(
    parse_result: ParseResult,
    locked_spans: Iterable[LockedSpan],
) -> frozenset[str]:
    """Ids of spans in ``parse_result`` that match a lock."""
    keys = {locked.key for locked in locked_spans}
    if not keys:
        return frozenset()
    return frozenset(span.id for span in parse_result.spans if (span.quote, span.category) in keys)


def build_locked_policy(
    base_policy: Mapping[str, Any] | None,
    locked_spans: Iterable[LockedSpan],
) -> dict[str, Any]:
    """Merge ``base_policy`` over the default policy and attach the locks.

    Backends must keep every locked span unchanged in their output.
    """
    policy = merge_policy(base_policy)
    locked = [item.to_payload() for item in locked_spans]
    if locked:
        policy["locked_spans"] = locked
    else:
        policy.pop("locked_spans", None)
    return policy
