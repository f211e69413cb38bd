import json
from typing import Optional

from relay.logging_config import get_logger
from relay.models import Role, Turn
from relay.services.background import BackgroundWriter
from relay.services.errors import UnsupportedOperationError
from relay.services.kv_store import KeyValueStore

logger = get_logger("history_service")

MSG_KEY = "msg"
PROMPT_KEY = "prompt"

DEFAULT_HISTORY_TTL_SECONDS = 600
DEFAULT_MAX_TURNS = 20


def history_key(backend: str, user_id: str) -> str:
    return f"{MSG_KEY}:{backend}:{user_id}"


def prompt_key(user_id: str, backend: str) -> str:
    return f"{PROMPT_KEY}:{user_id}:{backend}"


def encode_turns(turns: list[Turn]) -> str:
    return json.dumps([turn.to_dict() for turn in turns], ensure_ascii=False)


def decode_turns(payload: str) -> list[Turn]:
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError("stored history is not a list")
    return [Turn.from_dict(item) for item in data]


class ConversationHistoryStore:
    """Per (backend, user) turn history plus the per-user system prompt."""

    def __init__(
        self,
        store: KeyValueStore,
        writer: BackgroundWriter,
        *,
        ttl_seconds: int = DEFAULT_HISTORY_TTL_SECONDS,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self.store = store
        self.writer = writer
        self.ttl_seconds = ttl_seconds
        self.max_turns = max_turns

    async def load(self, backend: str, user_id: str, supports_system_prompt: bool) -> list[Turn]:
        """Return the prompt turn (if any) followed by stored turns, oldest first."""
        turns: list[Turn] = []
        if supports_system_prompt:
            prompt = await self.get_prompt(user_id, backend)
            if prompt is not None:
                turns.append(Turn(Role.SYSTEM, prompt))

        payload = await self.store.get(history_key(backend, user_id))
        if payload:
            try:
                turns.extend(decode_turns(payload))
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning(
                    "Stored history unreadable, starting a fresh session",
                    extra={"context": {"backend": backend, "error": str(exc)}},
                )
        return turns

    def save(self, backend: str, user_id: str, turns: list[Turn]) -> bool:
        """Persist ``turns`` in the background, replacing the stored history."""
        snapshot = list(turns)

        async def _persist() -> None:
            await self._persist(backend, user_id, snapshot)

        return self.writer.submit(_persist, description=f"save history {backend}")

    async def _persist(self, backend: str, user_id: str, turns: list[Turn]) -> None:
        # The prompt lives under its own key and is re-injected on load.
        stored = [turn for turn in turns if turn.role != Role.SYSTEM]
        if self.max_turns > 0:
            stored = stored[-self.max_turns :]
        await self.store.set(history_key(backend, user_id), encode_turns(stored), self.ttl_seconds)
        logger.debug(f"History saved: backend={backend}, turns={len(stored)}")

    async def clear(self, backend: str, user_id: str) -> None:
        await self.store.delete(history_key(backend, user_id))

    async def set_prompt(self, user_id: str, backend: str, prompt: str, *, supports_system_prompt: bool) -> None:
        if not supports_system_prompt:
            raise UnsupportedOperationError(backend, "a system prompt")
        await self.store.set(prompt_key(user_id, backend), prompt)

    async def remove_prompt(self, user_id: str, backend: str) -> None:
        await self.store.delete(prompt_key(user_id, backend))

    async def get_prompt(self, user_id: str, backend: str) -> Optional[str]:
        """Stored prompt, or None when it was never set (an empty prompt is returned as "")."""
        return await self.store.get(prompt_key(user_id, backend))
