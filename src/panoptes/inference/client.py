"""HTTP client for an Ollama-compatible local model server."""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, List, Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from panoptes.config.models import InferenceSettings

LOGGER = logging.getLogger(__name__)

_ENDPOINT_SUFFIXES = ("/api/generate", "/api/chat")


class InferenceUnavailable(Exception):
    """Raised when the model server cannot produce an answer."""


def normalize_base_url(url: str) -> str:
    """Strip endpoint paths and trailing slashes from a configured server URL."""
    base = url.strip().rstrip("/")
    for suffix in _ENDPOINT_SUFFIXES:
        if base.endswith(suffix):
            base = base[: -len(suffix)]
    return base.rstrip("/")


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return isinstance(exc, httpx.TransportError)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    LOGGER.warning(
        "Model server request failed (attempt %d): %s", state.attempt_number, exc
    )


class InferenceClient:
    """Send prompts (optionally with an image) to the model server.

    The client is safe to share between worker threads.
    """

    def __init__(
        self,
        settings: InferenceSettings,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Inference section of the configuration.
            transport: Optional httpx transport, used by tests.
            sleep: Optional sleep function used between retries.
        """
        self._settings = settings
        self._base_url = normalize_base_url(settings.url)
        self._http = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(settings.timeout_seconds),
            transport=transport,
        )
        self._retry_kwargs: dict[str, Any] = {
            "stop": stop_after_attempt(settings.retries + 1),
            "wait": wait_exponential(
                multiplier=settings.backoff_seconds, max=settings.max_backoff_seconds
            ),
            "retry": retry_if_exception(_is_transient),
            "before_sleep": _log_retry,
            "reraise": True,
        }
        if sleep is not None:
            self._retry_kwargs["sleep"] = sleep

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def settings(self) -> InferenceSettings:
        return self._settings

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "InferenceClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def generate(self, model: str, prompt: str, *, image: Optional[bytes] = None) -> str:
        """Return the model's answer to `prompt`.

        Args:
            model: Model name known to the server.
            prompt: Prompt text.
            image: Optional raw image bytes attached to the request.

        Returns:
            str: The trimmed `response` field.

        Raises:
            InferenceUnavailable: If every attempt fails or the reply is malformed.
        """
        payload: dict[str, Any] = {"model": model, "prompt": prompt, "stream": False}
        if image is not None:
            payload["images"] = [base64.b64encode(image).decode("ascii")]

        data = self._request("POST", "/api/generate", json=payload)
        answer = data.get("response") if isinstance(data, dict) else None
        if not isinstance(answer, str):
            raise InferenceUnavailable(f"Model {model} returned no response text")
        return answer.strip()

    def list_models(self, *, timeout: Optional[float] = None) -> List[str]:
        """Return the names of models installed on the server.

        Raises:
            InferenceUnavailable: If the server cannot be reached.
        """
        data = self._request("GET", "/api/tags", timeout=timeout)
        models = data.get("models", []) if isinstance(data, dict) else []
        return [entry["name"] for entry in models if isinstance(entry, dict) and "name" in entry]

    def health_check(self) -> List[str]:
        """Verify the server answers within the health timeout.

        Returns:
            List[str]: Installed model names.

        Raises:
            InferenceUnavailable: If the server is unreachable.
        """
        return self.list_models(timeout=self._settings.health_timeout_seconds)

    def model_available(self, model: str, installed: Optional[List[str]] = None) -> bool:
        """Return whether `model` (or `model:latest`) is installed.

        Args:
            model: Model name from the configuration.
            installed: Names already fetched with `list_models`; fetched when omitted.
        """
        names = installed
        if names is None:
            try:
                names = self.health_check()
            except InferenceUnavailable:
                return False
        return any(name.startswith(model) or name == f"{model}:latest" for name in names)

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        def _send() -> httpx.Response:
            kwargs: dict[str, Any] = {"json": json}
            if timeout is not None:
                kwargs["timeout"] = timeout
            response = self._http.request(method, path, **kwargs)
            response.raise_for_status()
            return response

        try:
            response = Retrying(**self._retry_kwargs)(_send)
        except httpx.HTTPError as exc:
            raise InferenceUnavailable(f"{method} {self._base_url}{path} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise InferenceUnavailable(f"Malformed reply from {self._base_url}{path}") from exc


__all__ = ["InferenceClient", "InferenceUnavailable", "normalize_base_url"]
