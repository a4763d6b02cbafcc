"""Span labeling: backends, result cache and the debounced client."""

from spancanvas.labeling.backend import (
    DEFAULT_POLICY,
    KeywordLabelingBackend,
    LabelingBackend,
    LabelingRequest,
    LabelingResponse,
    merge_policy,
)
from spancanvas.labeling.cache import CacheEntry, SpanLabelingCache, compute_cache_key
from spancanvas.labeling.client import (
    LabelingResult,
    LabelingState,
    LabelingStatus,
    ResultSource,
    SpanLabelingClient,
)
from spancanvas.labeling.http_backend import HttpLabelingBackend

__all__ = [
    "DEFAULT_POLICY",
    "CacheEntry",
    "HttpLabelingBackend",
    "KeywordLabelingBackend",
    "LabelingBackend",
    "LabelingRequest",
    "LabelingResponse",
    "LabelingResult",
    "LabelingState",
    "LabelingStatus",
    "ResultSource",
    "SpanLabelingCache",
    "SpanLabelingClient",
    "compute_cache_key",
    "merge_policy",
]
