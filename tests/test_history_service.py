import asyncio
import json

import pytest

from relay.models import Role, Turn
from relay.services.background import BackgroundWriter
from relay.services.errors import UnsupportedOperationError
from relay.services.history_service import (
    ConversationHistoryStore,
    decode_turns,
    encode_turns,
    history_key,
    prompt_key,
)
from relay.services.kv_store import KeyValueStore


@pytest.fixture
def history(memory_store):
    return ConversationHistoryStore(memory_store, BackgroundWriter(workers=1), ttl_seconds=600, max_turns=4)


async def _save_and_flush(history, backend, user_id, turns):
    assert history.save(backend, user_id, turns) is True
    await history.writer.drain()
    await history.writer.stop()


class TestKeys:
    def test_history_key_is_scoped_by_backend_and_user(self):
        assert history_key("gpt", "u1") == "msg:gpt:u1"

    def test_prompt_key_is_scoped_by_user_and_backend(self):
        assert prompt_key("u1", "gpt") == "prompt:u1:gpt"

    def test_turn_encoding_is_plain_json(self):
        payload = encode_turns([Turn(Role.USER, "привет")])
        assert json.loads(payload) == [{"role": "user", "text": "привет"}]
        assert decode_turns(payload) == [Turn(Role.USER, "привет")]


class TestLoad:
    def test_empty_history(self, history):
        assert asyncio.run(history.load("gpt", "u1", True)) == []

    def test_prompt_comes_first(self, history):
        async def scenario():
            await history.store.set(history_key("gpt", "u1"), encode_turns([Turn(Role.USER, "a"), Turn(Role.ASSISTANT, "b")]))
            await history.set_prompt("u1", "gpt", "be brief", supports_system_prompt=True)
            return await history.load("gpt", "u1", True)

        assert asyncio.run(scenario()) == [
            Turn(Role.SYSTEM, "be brief"),
            Turn(Role.USER, "a"),
            Turn(Role.ASSISTANT, "b"),
        ]

    def test_prompt_skipped_when_backend_has_no_support(self, history):
        async def scenario():
            await history.store.set(prompt_key("u1", "gemini"), "be brief")
            return await history.load("gemini", "u1", False)

        assert asyncio.run(scenario()) == []

    def test_corrupt_history_starts_fresh(self, history):
        async def scenario():
            await history.store.set(history_key("gpt", "u1"), "{not json")
            return await history.load("gpt", "u1", True)

        assert asyncio.run(scenario()) == []

    def test_histories_are_isolated_per_backend(self, history):
        async def scenario():
            await history.store.set(history_key("gpt", "u1"), encode_turns([Turn(Role.USER, "a")]))
            return await history.load("qwen", "u1", True)

        assert asyncio.run(scenario()) == []


class TestSave:
    def test_save_strips_system_turns(self, history):
        turns = [Turn(Role.SYSTEM, "p"), Turn(Role.USER, "q"), Turn(Role.ASSISTANT, "a")]

        async def scenario():
            await _save_and_flush(history, "gpt", "u1", turns)
            return await history.store.get(history_key("gpt", "u1"))

        stored = decode_turns(asyncio.run(scenario()))
        assert stored == [Turn(Role.USER, "q"), Turn(Role.ASSISTANT, "a")]

    def test_save_keeps_most_recent_turns(self, history):
        turns = [Turn(Role.USER, str(index)) for index in range(6)]

        async def scenario():
            await _save_and_flush(history, "gpt", "u1", turns)
            return await history.load("gpt", "u1", False)

        assert [turn.text for turn in asyncio.run(scenario())] == ["2", "3", "4", "5"]

    def test_save_snapshot_ignores_later_mutation(self, history):
        turns = [Turn(Role.USER, "q")]

        async def scenario():
            history.save("gpt", "u1", turns)
            turns.append(Turn(Role.ASSISTANT, "late"))
            await history.writer.drain()
            await history.writer.stop()
            return await history.load("gpt", "u1", False)

        assert asyncio.run(scenario()) == [Turn(Role.USER, "q")]

    def test_save_uses_history_ttl(self, fake_redis):
        history = ConversationHistoryStore(KeyValueStore(fake_redis), BackgroundWriter(), ttl_seconds=600)

        asyncio.run(_save_and_flush(history, "gpt", "u1", [Turn(Role.USER, "q")]))
        assert fake_redis.expiry[history_key("gpt", "u1")] == 600

    def test_clear_removes_history(self, history):
        async def scenario():
            await _save_and_flush(history, "gpt", "u1", [Turn(Role.USER, "q")])
            await history.clear("gpt", "u1")
            return await history.load("gpt", "u1", False)

        assert asyncio.run(scenario()) == []


class TestPrompt:
    def test_set_get_remove(self, history):
        async def scenario():
            await history.set_prompt("u1", "gpt", "be brief", supports_system_prompt=True)
            stored = await history.get_prompt("u1", "gpt")
            await history.remove_prompt("u1", "gpt")
            return stored, await history.get_prompt("u1", "gpt")

        assert asyncio.run(scenario()) == ("be brief", None)

    def test_empty_prompt_differs_from_unset(self, history):
        async def scenario():
            unset = await history.get_prompt("u1", "gpt")
            await history.set_prompt("u1", "gpt", "", supports_system_prompt=True)
            return unset, await history.get_prompt("u1", "gpt"), await history.load("gpt", "u1", True)

        unset, empty, turns = asyncio.run(scenario())
        assert unset is None
        assert empty == ""
        assert turns == [Turn(Role.SYSTEM, "")]

    def test_empty_prompt_survives_redis_round_trip(self, fake_redis):
        history = ConversationHistoryStore(KeyValueStore(fake_redis), BackgroundWriter())

        async def scenario():
            await history.set_prompt("u1", "gpt", "", supports_system_prompt=True)
            history.store.memory.clear()
            return await history.get_prompt("u1", "gpt")

        assert asyncio.run(scenario()) == ""

    def test_prompt_is_per_backend(self, history):
        async def scenario():
            await history.set_prompt("u1", "gpt", "be brief", supports_system_prompt=True)
            return await history.get_prompt("u1", "qwen")

        assert asyncio.run(scenario()) is None

    def test_unsupported_backend_rejects_prompt(self, history):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            asyncio.run(history.set_prompt("u1", "gemini", "be brief", supports_system_prompt=False))
        assert str(exc_info.value) == "gemini does not support a system prompt"
