from typing import Any, Optional

import httpx

from relay.models import Turn
from relay.services.errors import ProviderError
from relay.services.llm.base import DEFAULT_TIMEOUT_SECONDS, LLMProvider, LLMResponse

OPENAI_BASE_URL = "https://api.openai.com/v1/"


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions, also the wire shape of the compatible backends."""

    name = "gpt"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = OPENAI_BASE_URL,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model=model, timeout_seconds=timeout_seconds, transport=transport)
        self.api_key = api_key
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens

    def endpoint(self) -> str:
        return self.base_url.rstrip("/") + "/chat/completions"

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def to_provider_format(self, turns: list[Turn]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": turn.role.value, "content": turn.text} for turn in turns],
            "temperature": self.temperature,
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        return payload

    def from_provider_format(self, data: dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.name, "response has no choices")
        message = choices[0].get("message") or {}
        return LLMResponse(
            content=message.get("content") or "",
            model=data.get("model", self.model),
            usage=data.get("usage"),
        )


class QwenProvider(OpenAIProvider):
    """Alibaba DashScope in OpenAI-compatible mode."""

    name = "qwen"


class SparkProvider(OpenAIProvider):
    """iFlytek Spark HTTP API (OpenAI-compatible, authenticated with the APIPassword)."""

    name = "spark"

    def from_provider_format(self, data: dict[str, Any]) -> LLMResponse:
        # Spark reports business errors with HTTP 200 and a non-zero code.
        code = data.get("code", 0)
        if code:
            raise ProviderError(self.name, f"{data.get('message') or 'error'} (code {code})")
        return super().from_provider_format(data)
