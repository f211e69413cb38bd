from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from relay.logging_config import get_logger
from relay.models import Turn
from relay.services.errors import ProviderError

logger = get_logger("llm")

DEFAULT_TIMEOUT_SECONDS = 60.0


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """A completion backend.

    Subclasses translate the provider-neutral ``Turn`` sequence into their
    request payload (``to_provider_format``) and the provider response back
    into an ``LLMResponse`` (``from_provider_format``). ``complete`` owns the
    HTTP exchange and maps every failure to ``ProviderError``.
    """

    name: str = "llm"
    supports_system_prompt: bool = True

    def __init__(
        self,
        *,
        model: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @abstractmethod
    def endpoint(self) -> str:
        """URL the completion request is posted to."""

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    @abstractmethod
    def to_provider_format(self, turns: list[Turn]) -> dict[str, Any]:
        """Build the request body for ``turns``."""

    @abstractmethod
    def from_provider_format(self, data: dict[str, Any]) -> LLMResponse:
        """Extract the assistant reply; raise ProviderError when there is none."""

    async def complete(self, turns: list[Turn]) -> LLMResponse:
        payload = self.to_provider_format(turns)
        logger.debug(f"{self.name} request: model={self.model}, turns={len(turns)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.endpoint(), headers=self.headers(), json=payload)
        except httpx.HTTPError as exc:
            logger.error(f"{self.name} transport error: {exc}")
            raise ProviderError(self.name, f"transport error: {exc}") from exc

        logger.debug(f"{self.name} response status: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"{self.name} error: {response.text}")
            raise ProviderError(self.name, _error_detail(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "response is not JSON") from exc
        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape")

        result = self.from_provider_format(data)
        if not result.content.strip():
            raise ProviderError(self.name, "empty completion")
        return result


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or "no body"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text[:200]
