"""Tests for the HTTP labeling backend.

All tests use httpx.MockTransport; no network access.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from spancanvas.config import LabelingSettings
from spancanvas.errors import LabelingBackendError
from spancanvas.labeling.backend import LabelingRequest, merge_policy
from spancanvas.labeling.http_backend import (
    HttpLabelingBackend,
    build_request_body,
    parse_response,
)
from spancanvas.text.signature import signature

ENDPOINT = "http://labeler.test/llm/label-spans"


def _backend(handler: Callable[[httpx.Request], httpx.Response]) -> HttpLabelingBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpLabelingBackend(ENDPOINT, http_client=client, settings=LabelingSettings())


def _label(backend: HttpLabelingBackend, request: LabelingRequest) -> Any:
    return asyncio.run(backend.label(request))


class TestBuildRequestBody:
    """Tests for build_request_body()."""

    def test_camel_case_body(self) -> None:
        request = LabelingRequest(
            text="golden hour",
            policy=merge_policy({"allow_overlap": True}),
            max_spans=10,
            min_confidence=0.7,
            template_version="v2",
            cache_key="prompt-1",
        )
        assert build_request_body(request) == {
            "text": "golden hour",
            "maxSpans": 10,
            "minConfidence": 0.7,
            "policy": {"nonTechnicalWordLimit": 6, "allowOverlap": True},
            "templateVersion": "v2",
            "cacheId": "prompt-1",
        }

    def test_cache_id_omitted_when_absent(self) -> None:
        assert "cacheId" not in build_request_body(LabelingRequest(text="x"))


class TestParseResponse:
    """Tests for parse_response()."""

    def test_non_object_payload(self) -> None:
        with pytest.raises(LabelingBackendError):
            parse_response([{"start": 0, "end": 1}], "x")

    def test_malformed_spans_are_dropped(self) -> None:
        response = parse_response(
            {"spans": [{"start": 5, "end": 2}, "junk", {"start": 0, "end": 5}]},
            "beach",
        )
        assert [(s.start, s.end) for s in response.spans] == [(0, 5)]

    def test_signature_computed_when_missing(self) -> None:
        assert parse_response({"spans": []}, "beach").signature == signature("beach")

    def test_signature_from_payload_is_kept(self) -> None:
        assert parse_response({"signature": "abc"}, "beach").signature == "abc"

    def test_utf16_offsets_are_converted(self) -> None:
        text = "\U0001f600 golden hour"
        response = parse_response(
            {
                "spans": [{"start": 3, "end": 14, "quote": "golden hour"}],
                "meta": {"offsetUnit": "utf16"},
            },
            text,
        )
        span = response.spans[0]
        assert (span.start, span.end) == (2, 13)
        assert text[span.start : span.end] == "golden hour"

    def test_code_point_offsets_untouched_by_default(self) -> None:
        response = parse_response({"spans": [{"start": 2, "end": 13}]}, "\U0001f600 golden hour")
        assert (response.spans[0].start, response.spans[0].end) == (2, 13)


class TestHttpLabelingBackend:
    """Tests for HttpLabelingBackend.label()."""

    def test_posts_json_and_parses_spans(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "spans": [
                        {
                            "id": "s1",
                            "start": 0,
                            "end": 11,
                            "quote": "golden hour",
                            "category": "lighting",
                            "confidence": 0.92,
                        }
                    ],
                    "meta": {"version": "v1", "notes": ""},
                },
            )

        response = _label(_backend(handler), LabelingRequest(text="golden hour"))

        assert seen["url"] == ENDPOINT
        assert seen["body"]["text"] == "golden hour"
        assert seen["body"]["maxSpans"] == 60
        assert response.spans[0].id == "s1"
        assert response.spans[0].category == "lighting"
        assert response.meta == {"version": "v1", "notes": ""}
        assert response.signature == signature("golden hour")

    def test_http_error_status(self) -> None:
        backend = _backend(lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(LabelingBackendError) as exc_info:
            _label(backend, LabelingRequest(text="golden hour"))
        assert exc_info.value.status_code == 500
        assert "status_code=500" in str(exc_info.value)

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LabelingBackendError) as exc_info:
            _label(_backend(handler), LabelingRequest(text="golden hour"))
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert exc_info.value.status_code is None

    def test_invalid_json(self) -> None:
        backend = _backend(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(LabelingBackendError, match="not valid JSON"):
            _label(backend, LabelingRequest(text="golden hour"))

    def test_endpoint_defaults_to_settings(self) -> None:
        settings = LabelingSettings(label_endpoint="http://other.test/label")
        assert HttpLabelingBackend(settings=settings).endpoint == "http://other.test/label"

    def test_endpoint_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPANCANVAS_LABEL_ENDPOINT", "http://env.test/label")
        assert HttpLabelingBackend().endpoint == "http://env.test/label"
