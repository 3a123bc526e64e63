from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass

from geoask.core.http.errors import GeoAskHTTPError

from .llm_openai_compat import JSON_OBJECT_FORMAT, OpenAICompatClient


class LLMUnavailable(RuntimeError):
    pass


class LLMOutputError(RuntimeError):
    pass


@dataclass
class LLMConfig:
    provider: str
    model: str
    timeout_s: float
    temperature: float
    max_tokens: int


class GeoAskLLM:
    def __init__(self, client: OpenAICompatClient | None = None) -> None:
        self.config = LLMConfig(
            provider=os.getenv("GEOASK_LLM_PROVIDER", "off").casefold(),
            model=os.getenv("GEOASK_LLM_MODEL", "gpt-4o-mini"),
            timeout_s=float(os.getenv("GEOASK_LLM_TIMEOUT_S", "45")),
            temperature=float(os.getenv("GEOASK_LLM_TEMPERATURE", "0.0")),
            max_tokens=int(os.getenv("GEOASK_LLM_MAX_TOKENS", "1200")),
        )
        self._compat = client or OpenAICompatClient(
            url=os.getenv("GEOASK_LLM_URL", "https://api.openai.com/v1/chat/completions"),
            model=self.config.model,
            timeout_s=self.config.timeout_s,
            api_key=os.getenv("GEOASK_LLM_API_KEY") or None,
        )
        self.logger = logging.getLogger("geoask.llm")

    @property
    def enabled(self) -> bool:
        return self.config.provider != "off"

    def complete(self, messages: list[dict[str, str]]) -> str:
        """Send a chat transcript and return the raw text of the first answer."""
        if not self.enabled:
            raise LLMUnavailable("LLM provider is off")

        start = time.perf_counter()
        try:
            output = self._compat.chat_completion(
                messages=messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format=JSON_OBJECT_FORMAT,
            )
        except (GeoAskHTTPError, ValueError) as exc:
            self._log_call(start, messages, ok=False)
            raise LLMUnavailable(f"LLM request failed: {exc}") from exc
        self._log_call(start, messages, ok=True)
        return output

    def _log_call(self, start: float, messages: list[dict[str, str]], ok: bool) -> None:
        self.logger.info(
            "llm_call",
            extra={
                "extra_fields": {
                    "provider": self.config.provider,
                    "model": self.config.model,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                    "ok": ok,
                    "message_count": len(messages),
                }
            },
        )


def parse_json_object(raw: str) -> dict:
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.startswith("json"):
            cleaned = cleaned[4:].strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise LLMOutputError("Could not find a JSON object in the response")
    try:
        parsed = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as exc:
        raise LLMOutputError(f"Could not parse JSON response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise LLMOutputError("JSON response is not an object")
    return parsed
