from typing import Any

from relay.models import Role, Turn
from relay.services.llm.base import LLMProvider, LLMResponse


class EchoProvider(LLMProvider):
    """Credential-free backend that answers with the latest user text."""

    name = "echo"
    supports_system_prompt = False

    def __init__(self):
        super().__init__(model="echo")

    def endpoint(self) -> str:
        return ""

    def to_provider_format(self, turns: list[Turn]) -> dict[str, Any]:
        last_user = next((turn.text for turn in reversed(turns) if turn.role == Role.USER), "")
        return {"text": last_user}

    def from_provider_format(self, data: dict[str, Any]) -> LLMResponse:
        return LLMResponse(content=data.get("text", ""), model=self.model)

    async def complete(self, turns: list[Turn]) -> LLMResponse:
        return self.from_provider_format(self.to_provider_format(turns))
