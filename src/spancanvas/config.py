"""Labeling settings loaded from the environment.

Environment Variables:
    SPANCANVAS_DEBOUNCE_MS: Fixed debounce window in milliseconds (default: 500)
    SPANCANVAS_SMART_DEBOUNCE: "1" to derive the window from text length (default: 1)
    SPANCANVAS_MAX_SPANS: Maximum spans requested per call, 1..200 (default: 60)
    SPANCANVAS_MIN_CONFIDENCE: Minimum span confidence, 0..1 (default: 0.5)
    SPANCANVAS_TEMPLATE_VERSION: Labeling template version (default: "v1")
    SPANCANVAS_CACHE_LIMIT: Maximum cached labeling results (default: 200)
    SPANCANVAS_CACHE_TTL_SECONDS: Cache entry lifetime; 0 disables caching (default: 3600)
    SPANCANVAS_LABEL_ENDPOINT: URL of the remote label-spans endpoint
    SPANCANVAS_HTTP_TIMEOUT_SECONDS: Timeout for remote labeling calls (default: 10.0)

Invalid values fall back to defaults with a warning; configuration never
fails the caller.
"""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 500
DEFAULT_MAX_SPANS = 60
MAX_SPANS_LIMIT = 200
DEFAULT_MIN_CONFIDENCE = 0.5
DEFAULT_TEMPLATE_VERSION = "v1"
DEFAULT_CACHE_LIMIT = 200
DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_LABEL_ENDPOINT = "http://localhost:3001/llm/label-spans"
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
DEFAULT_NON_TECHNICAL_WORD_LIMIT = 6

# (upper bound on text length, debounce ms); longer texts get longer windows
SMART_DEBOUNCE_STEPS: tuple[tuple[int, int], ...] = (
    (100, 50),
    (500, 150),
    (2000, 300),
)
SMART_DEBOUNCE_MAX_MS = 450


class LabelingSettings(BaseModel):
    """Tunables for the labeling client, cache and HTTP backend."""

    model_config = ConfigDict(frozen=True)

    debounce_ms: int = Field(default=DEFAULT_DEBOUNCE_MS, ge=0)
    smart_debounce: bool = True
    max_spans: int = Field(default=DEFAULT_MAX_SPANS, ge=1, le=MAX_SPANS_LIMIT)
    min_confidence: float = Field(default=DEFAULT_MIN_CONFIDENCE, ge=0.0, le=1.0)
    template_version: str = DEFAULT_TEMPLATE_VERSION
    cache_limit: int = Field(default=DEFAULT_CACHE_LIMIT, ge=1)
    cache_ttl_seconds: int = Field(default=DEFAULT_CACHE_TTL_SECONDS, ge=0)
    label_endpoint: str = DEFAULT_LABEL_ENDPOINT
    http_timeout_seconds: float = Field(default=DEFAULT_HTTP_TIMEOUT_SECONDS, gt=0)

    @classmethod
    def from_env(cls) -> LabelingSettings:
        """Build settings from SPANCANVAS_* environment variables."""
        return cls(
            debounce_ms=_get_env_int("SPANCANVAS_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS, minimum=0),
            smart_debounce=_get_env_bool("SPANCANVAS_SMART_DEBOUNCE", True),
            max_spans=_get_env_int(
                "SPANCANVAS_MAX_SPANS",
                DEFAULT_MAX_SPANS,
                minimum=1,
                maximum=MAX_SPANS_LIMIT,
            ),
            min_confidence=_get_env_float(
                "SPANCANVAS_MIN_CONFIDENCE",
                DEFAULT_MIN_CONFIDENCE,
                minimum=0.0,
                maximum=1.0,
            ),
            template_version=_get_env_str(
                "SPANCANVAS_TEMPLATE_VERSION", DEFAULT_TEMPLATE_VERSION
            ),
            cache_limit=_get_env_int("SPANCANVAS_CACHE_LIMIT", DEFAULT_CACHE_LIMIT, minimum=1),
            cache_ttl_seconds=_get_env_int(
                "SPANCANVAS_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS, minimum=0
            ),
            label_endpoint=_get_env_str("SPANCANVAS_LABEL_ENDPOINT", DEFAULT_LABEL_ENDPOINT),
            http_timeout_seconds=_get_env_float(
                "SPANCANVAS_HTTP_TIMEOUT_SECONDS",
                DEFAULT_HTTP_TIMEOUT_SECONDS,
                minimum=0.001,
            ),
        )


def smart_debounce_ms(text: str | None) -> int:
    """Pick a debounce window from text length.

    Short snippets are labeled almost instantly; long texts wait longer to
    coalesce more keystrokes into one backend call.
    """
    if not text:
        return SMART_DEBOUNCE_STEPS[0][1]
    length = len(text)
    for upper, delay in SMART_DEBOUNCE_STEPS:
        if length < upper:
            return delay
    return SMART_DEBOUNCE_MAX_MS


def _get_env_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    value = os.environ.get(key, "").strip()
    return value or default


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_int(
    key: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """Get bounded integer from environment variable."""
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", key, raw, default)
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        logger.warning("Ignoring out-of-range %s=%s; using %s", key, value, default)
        return default
    return value


def _get_env_float(
    key: str,
    default: float,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Get bounded float from environment variable."""
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", key, raw, default)
        return default
    if value != value:
        logger.warning("Ignoring NaN %s; using %s", key, default)
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        logger.warning("Ignoring out-of-range %s=%s; using %s", key, value, default)
        return default
    return value
