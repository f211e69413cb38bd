"""Explicitly constructed service graph shared by the routers."""

from dataclasses import dataclass

from fastapi import Request

from relay.config import Settings
from relay.logging_config import get_logger
from relay.services.backend_service import (
    BACKEND_GEMINI,
    BACKEND_GPT,
    BACKEND_QWEN,
    BACKEND_SPARK,
    BackendRegistry,
    BackendSelector,
)
from relay.services.background import BackgroundWriter
from relay.services.command_service import CommandDispatcher, build_command_table
from relay.services.errors import PersistenceError
from relay.services.event_service import EventHandler
from relay.services.history_service import ConversationHistoryStore
from relay.services.kv_store import KeyValueStore, MemoryCache
from relay.services.orchestrator import ConversationOrchestrator
from relay.services.timeout_bridge import TimeoutBridge

logger = get_logger("context")


@dataclass
class RelayContext:
    settings: Settings
    store: KeyValueStore
    registry: BackendRegistry
    writer: BackgroundWriter
    history: ConversationHistoryStore
    selector: BackendSelector
    dispatcher: CommandDispatcher
    bridge: TimeoutBridge
    orchestrator: ConversationOrchestrator
    events: EventHandler

    async def start(self) -> None:
        await self.writer.start()
        if self.store.durable and not await self.store.ping():
            logger.warning("KV store unreachable at startup, continuing with in-process cache")

    async def stop(self) -> None:
        await self.bridge.aclose()
        await self.writer.stop()
        await self.store.aclose()


def build_store(settings: Settings) -> KeyValueStore:
    memory = MemoryCache(max_entries=settings.memory_cache_max_entries)
    options = {
        "memory": memory,
        "default_ttl_seconds": settings.default_ttl_seconds,
        "mirror_ttl_seconds": settings.memory_mirror_ttl_seconds,
    }
    if not settings.kv_url:
        logger.warning("KV_URL not configured, conversation state lives in process memory only")
        return KeyValueStore(**options)
    try:
        return KeyValueStore.from_url(
            settings.kv_url,
            socket_timeout_seconds=settings.kv_socket_timeout_seconds,
            **options,
        )
    except PersistenceError as exc:
        logger.error(f"KV store disabled: {exc}")
        return KeyValueStore(**options)


def build_context(
    settings: Settings,
    *,
    store: KeyValueStore | None = None,
    registry: BackendRegistry | None = None,
) -> RelayContext:
    store = store if store is not None else build_store(settings)
    registry = registry if registry is not None else BackendRegistry.from_settings(settings)
    writer = BackgroundWriter(
        workers=settings.persist_workers,
        max_pending=settings.persist_queue_size,
        name="history",
    )
    history = ConversationHistoryStore(
        store,
        writer,
        ttl_seconds=settings.history_ttl_seconds,
        max_turns=settings.history_max_turns,
    )
    selector = BackendSelector(store, registry, welcome_reply=settings.bot_welcome_reply)
    table = build_command_table(
        registry=registry,
        selector=selector,
        history=history,
        help_reply=settings.help_reply,
    )
    dispatcher = CommandDispatcher(table)
    bridge = TimeoutBridge(
        store,
        pending_ttl_seconds=settings.pending_result_ttl_seconds,
        background_ceiling_seconds=settings.background_ceiling_seconds,
    )
    orchestrator = ConversationOrchestrator(
        dispatcher=dispatcher,
        selector=selector,
        registry=registry,
        history=history,
        bridge=bridge,
        reply_deadline_seconds=settings.reply_deadline_seconds,
    )
    events = EventHandler(
        selector,
        subscribe_reply=settings.subscribe_reply,
        help_reply=settings.help_reply,
        click_backends={
            settings.event_key_gpt: BACKEND_GPT,
            settings.event_key_spark: BACKEND_SPARK,
            settings.event_key_qwen: BACKEND_QWEN,
            settings.event_key_gemini: BACKEND_GEMINI,
        },
    )
    return RelayContext(
        settings=settings,
        store=store,
        registry=registry,
        writer=writer,
        history=history,
        selector=selector,
        dispatcher=dispatcher,
        bridge=bridge,
        orchestrator=orchestrator,
        events=events,
    )


def get_context(request: Request) -> RelayContext:
    return request.app.state.context
