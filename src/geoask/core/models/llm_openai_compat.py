from __future__ import annotations

from typing import Any

from geoask.core.http.client import request_with_retry

JSON_OBJECT_FORMAT = {"type": "json_object"}


def _content_text(content: Any) -> str:
    """Flatten a message content that is either a string or a list of text parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [part.get("text") for part in content if isinstance(part, dict)]
        return "".join(part for part in parts if isinstance(part, str))
    return ""


class OpenAICompatClient:
    """Chat-completions client for any endpoint speaking the OpenAI wire format."""

    def __init__(self, url: str, model: str, timeout_s: float = 45.0, api_key: str | None = None) -> None:
        self.url = url
        self.model = model
        self.timeout_s = timeout_s
        self.api_key = api_key

    def _headers(self) -> dict[str, str] | None:
        if not self.api_key:
            return None
        return {"Authorization": f"Bearer {self.api_key}"}

    def chat_completion(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        response_format: dict[str, str] | None = JSON_OBJECT_FORMAT,
    ) -> str:
        body: dict[str, object] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format is not None:
            body["response_format"] = response_format

        response = request_with_retry(
            "POST",
            self.url,
            json=body,
            headers=self._headers(),
            timeout_override=self.timeout_s,
        )
        data = response.json()
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message") or {}
        return _content_text(message.get("content"))
