"""Remote labeling backend over HTTP.

POSTs camelCase JSON to a ``/llm/label-spans`` style endpoint and maps the
response into Span models. Offsets are converted from UTF-16 code units when
the response meta declares ``offsetUnit: "utf16"``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from spancanvas.config import LabelingSettings
from spancanvas.errors import LabelingBackendError
from spancanvas.labeling.backend import LabelingRequest, LabelingResponse
from spancanvas.models.span import Span
from spancanvas.text.normalize import utf16_offset_to_index
from spancanvas.text.signature import signature

logger = logging.getLogger(__name__)

OFFSET_UNIT_UTF16 = "utf16"


def build_request_body(request: LabelingRequest) -> dict[str, Any]:
    """Build the camelCase JSON body for a labeling request."""
    policy: dict[str, Any] = {}
    for key, value in request.policy.items():
        policy[to_camel(key)] = value
    body: dict[str, Any] = {
        "text": request.text,
        "maxSpans": request.max_spans,
        "minConfidence": request.min_confidence,
        "policy": policy,
        "templateVersion": request.template_version,
    }
    if request.cache_key:
        body["cacheId"] = request.cache_key
    return body


def parse_response(data: Any, text: str) -> LabelingResponse:
    """Map a decoded JSON payload onto a LabelingResponse.

    Spans that fail model validation are dropped here; bounds and quote
    checks are left to the parse result builder.

    Raises:
        LabelingBackendError: If the payload is not a JSON object.
    """
    if not isinstance(data, dict):
        raise LabelingBackendError("Labeling response is not a JSON object")

    meta = data.get("meta") if isinstance(data.get("meta"), dict) else None
    utf16 = bool(meta) and meta.get("offsetUnit") == OFFSET_UNIT_UTF16

    raw_spans = data.get("spans")
    if not isinstance(raw_spans, list):
        raw_spans = []

    spans: list[Span] = []
    for raw in raw_spans:
        if not isinstance(raw, dict):
            continue
        if utf16:
            raw = _convert_utf16_offsets(raw, text)
        try:
            spans.append(Span.model_validate(raw))
        except ValidationError as exc:
            logger.debug("Dropping malformed span from backend: %s", exc.errors()[0]["msg"])

    response_signature = data.get("signature")
    return LabelingResponse(
        spans=tuple(spans),
        meta=meta,
        signature=response_signature if isinstance(response_signature, str) else signature(text),
    )


def _convert_utf16_offsets(raw: dict[str, Any], text: str) -> dict[str, Any]:
    converted = dict(raw)
    for key in ("start", "end"):
        value = raw.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            converted[key] = utf16_offset_to_index(text, value)
    return converted


class HttpLabelingBackend:
    """Labeling backend calling a remote label-spans endpoint.

    The endpoint receives ``{text, maxSpans, minConfidence, policy,
    templateVersion, cacheId?}`` and answers ``{spans, meta, signature?}``.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        timeout_seconds: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: LabelingSettings | None = None,
    ) -> None:
        """Initialize the HTTP backend.

        Args:
            endpoint: Endpoint URL. Defaults to ``settings.label_endpoint``.
            timeout_seconds: Request timeout. Defaults to ``settings.http_timeout_seconds``.
            http_client: Optional httpx.AsyncClient for dependency injection (testing).
            settings: Labeling settings; loaded from the environment when omitted.
        """
        settings = settings or LabelingSettings.from_env()
        self._endpoint = endpoint or settings.label_endpoint
        self._timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def label(self, request: LabelingRequest) -> LabelingResponse:
        """POST the request and parse the response.

        Raises:
            LabelingBackendError: On transport errors, non-2xx status or invalid JSON.
        """
        body = build_request_body(request)
        headers = {"Accept": "application/json"}

        client = self._http_client
        should_close = False
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout_seconds)
            should_close = True
        try:
            response = await client.post(self._endpoint, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Labeling request to %s failed: %s", self._endpoint, exc)
            raise LabelingBackendError(f"Labeling request failed: {exc}", cause=exc) from exc
        finally:
            if should_close:
                await client.aclose()

        if response.status_code >= 400:
            logger.warning(
                "Labeling endpoint %s returned HTTP %d", self._endpoint, response.status_code
            )
            raise LabelingBackendError(
                f"Labeling endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise LabelingBackendError(
                "Labeling response is not valid JSON",
                status_code=response.status_code,
                cause=exc,
            ) from exc

        return parse_response(data, request.text)
