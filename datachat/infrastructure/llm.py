"""Language-model completion clients.

The pipeline only needs one operation, a chat completion from a system
instruction and a user message.  :class:`OpenAIChatClient` talks to any
OpenAI-compatible ``/chat/completions`` endpoint; tests install their own
client through :func:`configure_llm_client`.
"""
from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import urlparse

import httpx


class LLMError(RuntimeError):
    """Raised when the completion service fails or answers malformed data."""


class LLMClient(Protocol):
    """Contract for completion providers."""

    def complete(self, system: str, user: str, *, max_tokens: int) -> str:
        """Return the text of a single chat completion."""


class UnconfiguredLLMClient:
    """Fallback client used when no API key is configured."""

    def complete(self, system: str, user: str, *, max_tokens: int) -> str:
        raise LLMError("language model is not configured; set OPENAI_API_KEY")


class OpenAIChatClient:
    """Client for OpenAI-compatible chat completion APIs."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-5-nano",
        api_base: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._api_key = api_key
        self._model = model
        self._request_url = f"{api_base.rstrip('/')}/chat/completions"
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def model(self) -> str:
        return self._model

    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_completion_tokens": max_tokens,
        }

    def complete(self, system: str, user: str, *, max_tokens: int) -> str:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            response = self._client.post(
                self._request_url,
                headers=headers,
                json=self._build_payload(system, user, max_tokens),
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise LLMError(f"completion request failed: {exc}") from exc
        except ValueError as exc:
            raise LLMError("completion response is not JSON") from exc

        choices = body.get("choices") if isinstance(body, dict) else None
        if not isinstance(choices, list) or not choices:
            raise LLMError("completion response carries no choices")
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise LLMError("completion response carries a malformed message")
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError("completion response carries no text content")
        return content

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


_client: LLMClient = UnconfiguredLLMClient()


def configure_llm_client(client: LLMClient) -> None:
    """Install the completion client used by the analysis pipeline."""

    global _client
    _client = client


def get_llm_client() -> LLMClient:
    return _client


__all__ = [
    "LLMClient",
    "LLMError",
    "OpenAIChatClient",
    "UnconfiguredLLMClient",
    "configure_llm_client",
    "get_llm_client",
]
