import asyncio
from unittest.mock import AsyncMock

import pytest

from relay.services.backend_service import BackendRegistry, BackendSelector
from relay.services.background import BackgroundWriter
from relay.services.command_service import (
    CommandDispatcher,
    CommandTable,
    build_command_table,
    validate_commands,
)
from relay.services.errors import CommandTableError
from relay.services.history_service import ConversationHistoryStore
from relay.services.llm import EchoProvider, GeminiProvider, OpenAIProvider


@pytest.fixture
def dispatcher(memory_store):
    registry = BackendRegistry(
        {"echo": EchoProvider(), "gpt": OpenAIProvider("key"), "gemini": GeminiProvider("key")},
        default_backend="gpt",
        unavailable={"qwen": "set QWEN_API_KEY"},
    )
    selector = BackendSelector(memory_store, registry, welcome_reply="{backend} is ready")
    history = ConversationHistoryStore(memory_store, BackgroundWriter())
    table = build_command_table(registry=registry, selector=selector, history=history, help_reply="HELP")
    return CommandDispatcher(table)


def run_commands(dispatcher, *messages, user_id="u1"):
    async def scenario():
        return [await dispatcher.dispatch(user_id, message) for message in messages]

    return asyncio.run(scenario())


class TestCommandTableInvariant:
    def test_prefix_overlap_rejected(self):
        with pytest.raises(CommandTableError):
            CommandTable({"/g": AsyncMock(), "/gpt": AsyncMock()})

    def test_empty_command_rejected(self):
        with pytest.raises(CommandTableError):
            validate_commands(["", "/help"])

    def test_disjoint_commands_accepted(self):
        table = CommandTable({"/help": AsyncMock(), "/gpt": AsyncMock()})
        assert table.commands() == ["/gpt", "/help"]
        assert "/gpt" in table

    def test_built_table_is_prefix_free(self, dispatcher):
        validate_commands(dispatcher.table.commands())

    def test_match_splits_parameter(self):
        table = CommandTable({"/prompt": AsyncMock()})
        assert table.match("/prompt   be brief ") == ("/prompt", "be brief")
        assert table.match("hello /prompt") is None


class TestDispatch:
    def test_plain_text_not_handled(self, dispatcher):
        assert run_commands(dispatcher, "hello") == [(False, "")]

    def test_help(self, dispatcher):
        assert run_commands(dispatcher, "/help") == [(True, "HELP")]

    def test_handler_receives_param_and_user(self):
        handler = AsyncMock(return_value="done")
        dispatcher = CommandDispatcher(CommandTable({"/x": handler}))
        assert asyncio.run(dispatcher.dispatch("u9", "/x arg")) == (True, "done")
        handler.assert_awaited_once_with("arg", "u9")

    def test_switch_backend(self, dispatcher):
        assert run_commands(dispatcher, "/echo") == [(True, "echo is ready")]

    def test_switch_to_unconfigured_backend(self, dispatcher):
        replies = run_commands(dispatcher, "/qwen", "/getpmt")
        assert replies[0] == (True, "qwen is not available: set QWEN_API_KEY")
        assert replies[1] == (True, "gpt has no prompt set")


class TestPromptCommands:
    def test_prompt_lifecycle(self, dispatcher):
        replies = run_commands(dispatcher, "/prompt be brief", "/getpmt", "/cpmt", "/getpmt")
        assert replies == [
            (True, "gpt prompt set"),
            (True, "gpt prompt: be brief"),
            (True, "gpt prompt removed"),
            (True, "gpt has no prompt set"),
        ]

    def test_prompt_without_text_stores_empty_prompt(self, dispatcher):
        replies = run_commands(dispatcher, "/prompt", "/getpmt", "/cpmt", "/getpmt")
        assert replies == [
            (True, "gpt prompt set"),
            (True, "gpt prompt: "),
            (True, "gpt prompt removed"),
            (True, "gpt has no prompt set"),
        ]

    def test_prompt_on_backend_without_support(self, dispatcher):
        replies = run_commands(dispatcher, "/gemini", "/prompt be brief", "/getpmt")
        assert replies[1] == (True, "gemini does not support a system prompt")
        assert replies[2] == (True, "gemini has no prompt set")

    def test_prompt_is_scoped_to_current_backend(self, dispatcher):
        replies = run_commands(dispatcher, "/prompt be brief", "/echo", "/getpmt", "/gpt", "/getpmt")
        assert replies[2] == (True, "echo has no prompt set")
        assert replies[4] == (True, "gpt prompt: be brief")
