from typing import Any, Optional

import httpx

from relay.models import Role, Turn
from relay.services.errors import ProviderError
from relay.services.llm.base import DEFAULT_TIMEOUT_SECONDS, LLMProvider, LLMResponse

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/"


class GeminiProvider(LLMProvider):
    """Google Gemini ``generateContent`` REST endpoint."""

    name = "gemini"
    supports_system_prompt = False

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = GEMINI_BASE_URL,
        model: str = "gemini-1.5-flash",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model=model, timeout_seconds=timeout_seconds, transport=transport)
        self.api_key = api_key
        self.base_url = base_url

    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent"

    def headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    def to_provider_format(self, turns: list[Turn]) -> dict[str, Any]:
        contents = []
        for turn in turns:
            if turn.role == Role.SYSTEM:
                continue
            role = "model" if turn.role == Role.ASSISTANT else "user"
            contents.append({"role": role, "parts": [{"text": turn.text}]})
        return {"contents": contents}

    def from_provider_format(self, data: dict[str, Any]) -> LLMResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason") or "response has no candidates"
            raise ProviderError(self.name, str(reason))
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        return LLMResponse(content=text, model=data.get("modelVersion", self.model), usage=data.get("usageMetadata"))
