"""Tests for the model server client."""

from __future__ import annotations

import base64
import json
from typing import Callable, List

import httpx
import pytest

from panoptes.config.models import InferenceSettings
from panoptes.inference import InferenceClient, InferenceUnavailable, normalize_base_url


def _client(
    handler: Callable[[httpx.Request], httpx.Response], **settings: object
) -> InferenceClient:
    values: dict = {"url": "http://models.test:11434", "retries": 2, "backoff_seconds": 0.0}
    values.update(settings)
    return InferenceClient(
        InferenceSettings(**values),
        transport=httpx.MockTransport(handler),
        sleep=lambda seconds: None,
    )


def test_generate_sends_non_streaming_request_with_image() -> None:
    seen: List[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/generate"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "  sunset_over_lake \n"})

    with _client(_handler) as client:
        answer = client.generate("moondream", "Describe", image=b"\x89PNG")

    assert answer == "sunset_over_lake"
    assert seen[0]["model"] == "moondream"
    assert seen[0]["stream"] is False
    assert seen[0]["images"] == [base64.b64encode(b"\x89PNG").decode("ascii")]


def test_text_prompt_has_no_images_field() -> None:
    seen: List[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "meeting_notes"})

    with _client(_handler) as client:
        assert client.generate("llama3.2:3b", "Name this") == "meeting_notes"

    assert "images" not in seen[0]


def test_transient_failures_are_retried() -> None:
    calls: List[int] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503, json={"error": "loading model"})
        return httpx.Response(200, json={"response": "ok"})

    with _client(_handler) as client:
        assert client.generate("m", "p") == "ok"

    assert len(calls) == 3


def test_connection_errors_exhaust_into_inference_unavailable() -> None:
    calls: List[int] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with _client(_handler, retries=1) as client:
        with pytest.raises(InferenceUnavailable):
            client.generate("m", "p")

    assert len(calls) == 2


def test_client_errors_are_not_retried() -> None:
    calls: List[int] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(404, json={"error": "model not found"})

    with _client(_handler) as client:
        with pytest.raises(InferenceUnavailable):
            client.generate("missing", "p")

    assert len(calls) == 1


def test_reply_without_response_text_is_unavailable() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"done": True})

    with _client(_handler) as client:
        with pytest.raises(InferenceUnavailable):
            client.generate("m", "p")


def test_list_models_and_availability() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(
            200,
            json={"models": [{"name": "moondream:latest"}, {"name": "llama3.2:3b"}, {}]},
        )

    with _client(_handler) as client:
        installed = client.list_models()

        assert installed == ["moondream:latest", "llama3.2:3b"]
        assert client.model_available("moondream", installed)
        assert client.model_available("llama3.2:3b", installed)
        assert not client.model_available("deepseek-coder:1.3b", installed)
        assert client.model_available("moondream")


def test_model_available_is_false_when_server_is_down() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with _client(_handler, retries=0) as client:
        assert client.model_available("moondream") is False
        with pytest.raises(InferenceUnavailable):
            client.health_check()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("http://localhost:11434", "http://localhost:11434"),
        ("http://localhost:11434/", "http://localhost:11434"),
        ("http://localhost:11434/api/generate", "http://localhost:11434"),
        (" http://gpu-box:11434/api/chat/ ", "http://gpu-box:11434"),
    ],
)
def test_normalize_base_url(raw: str, expected: str) -> None:
    assert normalize_base_url(raw) == expected
