from relay.services.llm.base import LLMProvider, LLMResponse
from relay.services.llm.echo_provider import EchoProvider
from relay.services.llm.gemini_provider import GeminiProvider
from relay.services.llm.openai_provider import OpenAIProvider, QwenProvider, SparkProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "EchoProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "QwenProvider",
    "SparkProvider",
]
