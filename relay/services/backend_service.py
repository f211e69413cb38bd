"""Backend registry and per-user backend selection."""

from typing import Mapping, Optional

from relay.config import Settings
from relay.logging_config import get_logger
from relay.services.errors import ConfigurationError
from relay.services.kv_store import KeyValueStore
from relay.services.llm import (
    EchoProvider,
    GeminiProvider,
    LLMProvider,
    OpenAIProvider,
    QwenProvider,
    SparkProvider,
)

logger = get_logger("backend_service")

BOT_TYPE_KEY = "botType"

BACKEND_GPT = "gpt"
BACKEND_QWEN = "qwen"
BACKEND_SPARK = "spark"
BACKEND_GEMINI = "gemini"
BACKEND_ECHO = "echo"

KNOWN_BACKENDS = (BACKEND_GPT, BACKEND_SPARK, BACKEND_QWEN, BACKEND_GEMINI, BACKEND_ECHO)


def assignment_key(user_id: str) -> str:
    return f"{BOT_TYPE_KEY}:{user_id}"


class BackendRegistry:
    """Configured providers by name, plus why the other known backends are off."""

    def __init__(
        self,
        providers: Mapping[str, LLMProvider],
        *,
        default_backend: str,
        unavailable: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._providers = {name.lower(): provider for name, provider in providers.items()}
        self._unavailable = {name.lower(): reason for name, reason in (unavailable or {}).items()}
        self.default_backend = default_backend.lower()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendRegistry":
        providers: dict[str, LLMProvider] = {BACKEND_ECHO: EchoProvider()}
        unavailable: dict[str, str] = {}
        timeout = settings.provider_timeout_seconds

        if settings.gpt_token:
            providers[BACKEND_GPT] = OpenAIProvider(
                settings.gpt_token.get_secret_value(),
                base_url=settings.gpt_url,
                model=settings.gpt_model,
                timeout_seconds=timeout,
            )
        else:
            unavailable[BACKEND_GPT] = "set GPT_TOKEN"

        if settings.qwen_api_key:
            providers[BACKEND_QWEN] = QwenProvider(
                settings.qwen_api_key.get_secret_value(),
                base_url=settings.qwen_url,
                model=settings.qwen_model,
                timeout_seconds=timeout,
            )
        else:
            unavailable[BACKEND_QWEN] = "set QWEN_API_KEY"

        if settings.spark_api_password:
            providers[BACKEND_SPARK] = SparkProvider(
                settings.spark_api_password.get_secret_value(),
                base_url=settings.spark_url,
                model=settings.spark_model,
                timeout_seconds=timeout,
            )
        else:
            unavailable[BACKEND_SPARK] = "set SPARK_API_PASSWORD"

        if settings.gemini_api_key:
            providers[BACKEND_GEMINI] = GeminiProvider(
                settings.gemini_api_key.get_secret_value(),
                base_url=settings.gemini_url,
                model=settings.gemini_model,
                timeout_seconds=timeout,
            )
        else:
            unavailable[BACKEND_GEMINI] = "set GEMINI_API_KEY"

        registry = cls(providers, default_backend=settings.bot_type, unavailable=unavailable)
        logger.info(
            "Backends configured",
            extra={
                "context": {
                    "enabled": sorted(providers),
                    "disabled": sorted(unavailable),
                    "default": registry.default_backend,
                }
            },
        )
        return registry

    def names(self) -> list[str]:
        """Every backend a user may ask for, configured or not."""
        ordered = [name for name in KNOWN_BACKENDS if name in self._providers or name in self._unavailable]
        extra = sorted((set(self._providers) | set(self._unavailable)) - set(ordered))
        return ordered + extra

    def check(self, name: str) -> str:
        """Return the normalized name or raise ConfigurationError."""
        key = (name or "").lower()
        if key in self._providers:
            return key
        if key in self._unavailable:
            raise ConfigurationError(key, self._unavailable[key])
        raise ConfigurationError(key or "backend", "unknown backend")

    def get_provider(self, name: str) -> LLMProvider:
        return self._providers[self.check(name)]

    def supports_system_prompt(self, name: str) -> bool:
        provider = self._providers.get((name or "").lower())
        return bool(provider and provider.supports_system_prompt)


class BackendSelector:
    """Which backend each user is talking to."""

    def __init__(
        self,
        store: KeyValueStore,
        registry: BackendRegistry,
        *,
        welcome_reply: str = "{backend} is ready, let's chat!",
        ttl_seconds: int = 0,
    ) -> None:
        self.store = store
        self.registry = registry
        self.welcome_reply = welcome_reply
        self.ttl_seconds = ttl_seconds

    async def switch_backend(self, user_id: str, backend: str) -> str:
        try:
            name = self.registry.check(backend)
        except ConfigurationError as exc:
            logger.info(
                "Backend switch refused",
                extra={"context": {"backend": exc.backend, "reason": exc.reason}},
            )
            return str(exc)

        await self.store.set(assignment_key(user_id), name, self.ttl_seconds)
        logger.info(f"Backend switched to {name}")
        return self.welcome_reply.replace("{backend}", name)

    async def resolve_backend(self, user_id: str) -> str:
        stored = await self.store.get(assignment_key(user_id))
        return stored or self.registry.default_backend
