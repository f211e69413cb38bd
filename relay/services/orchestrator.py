from relay.logging_config import get_logger
from relay.models import Role, Turn
from relay.services.backend_service import BackendRegistry, BackendSelector
from relay.services.command_service import CommandDispatcher
from relay.services.errors import ConfigurationError, ProviderError
from relay.services.history_service import ConversationHistoryStore
from relay.services.llm import LLMProvider
from relay.services.result import Result
from relay.services.timeout_bridge import TimeoutBridge, fingerprint

logger = get_logger("orchestrator")

PLACEHOLDER_REPLY = ""
DEFAULT_REPLY_DEADLINE_SECONDS = 4.5


class ConversationOrchestrator:
    """Commands first, otherwise one bridged completion with stored history."""

    def __init__(
        self,
        *,
        dispatcher: CommandDispatcher,
        selector: BackendSelector,
        registry: BackendRegistry,
        history: ConversationHistoryStore,
        bridge: TimeoutBridge,
        reply_deadline_seconds: float = DEFAULT_REPLY_DEADLINE_SECONDS,
    ) -> None:
        self.dispatcher = dispatcher
        self.selector = selector
        self.registry = registry
        self.history = history
        self.bridge = bridge
        self.reply_deadline_seconds = reply_deadline_seconds

    async def handle(self, user_id: str, raw_message: str) -> str:
        handled, reply = await self.dispatcher.dispatch(user_id, raw_message)
        if handled:
            return reply

        backend = await self.selector.resolve_backend(user_id)
        try:
            provider = self.registry.get_provider(backend)
        except ConfigurationError as exc:
            logger.warning("Resolved backend unavailable", extra={"context": {"backend": backend}})
            return str(exc)

        turns = await self.history.load(backend, user_id, provider.supports_system_prompt)
        turns.append(Turn(Role.USER, raw_message))
        request_turns = list(turns)

        async def work() -> Result[str]:
            return await self._complete(provider, request_turns)

        result = await self.bridge.call_with_deadline(
            fingerprint(user_id, raw_message),
            self.reply_deadline_seconds,
            work,
        )
        if result is None:
            return PLACEHOLDER_REPLY

        if not result.ok:
            logger.warning(
                "Completion failed",
                extra={"context": {"backend": backend, "error": result.error, "code": result.error_code}},
            )
            return result.error or f"{backend} request failed"

        answer = result.value or ""
        turns.append(Turn(Role.ASSISTANT, answer))
        self.history.save(backend, user_id, turns)
        return answer

    async def _complete(self, provider: LLMProvider, turns: list[Turn]) -> Result[str]:
        try:
            response = await provider.complete(turns)
        except ProviderError as exc:
            return Result.failure(str(exc), "provider_error")
        return Result.success(response.content)
