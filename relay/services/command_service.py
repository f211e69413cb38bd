"""Text commands: ``/help``, backend switches and system-prompt management.

The table is matched by prefix and the first match wins. Iteration order is
not part of the contract, so construction rejects any table in which one
command is a prefix of another.
"""

from typing import Awaitable, Callable, Mapping, Optional

from relay.logging_config import get_logger
from relay.services.backend_service import BackendRegistry, BackendSelector
from relay.services.errors import CommandTableError, ConfigurationError, UnsupportedOperationError
from relay.services.history_service import ConversationHistoryStore

logger = get_logger("command_service")

CommandHandler = Callable[[str, str], Awaitable[str]]

COMMAND_HELP = "/help"
COMMAND_PROMPT = "/prompt"
COMMAND_REMOVE_PROMPT = "/cpmt"
COMMAND_GET_PROMPT = "/getpmt"


def switch_command(backend: str) -> str:
    return f"/{backend}"


class CommandTable:
    def __init__(self, handlers: Mapping[str, CommandHandler]) -> None:
        validate_commands(handlers.keys())
        self._handlers = dict(handlers)

    def __contains__(self, command: str) -> bool:
        return command in self._handlers

    def commands(self) -> list[str]:
        return sorted(self._handlers)

    def match(self, message: str) -> Optional[tuple[str, str]]:
        """Return ``(command, param)`` for the command ``message`` starts with."""
        for command in self._handlers:
            if message.startswith(command):
                return command, message[len(command) :].strip()
        return None

    def handler(self, command: str) -> CommandHandler:
        return self._handlers[command]


def validate_commands(commands) -> None:
    keys = list(commands)
    for key in keys:
        if not key:
            raise CommandTableError("Command keys must be non-empty")
    for key in keys:
        for other in keys:
            if key != other and other.startswith(key):
                raise CommandTableError(f"Command {key!r} is a prefix of {other!r}")


class CommandDispatcher:
    def __init__(self, table: CommandTable) -> None:
        self.table = table

    async def dispatch(self, user_id: str, message: str) -> tuple[bool, str]:
        matched = self.table.match(message)
        if matched is None:
            return False, ""
        command, param = matched
        logger.info("Command matched", extra={"context": {"command": command}})
        reply = await self.table.handler(command)(param, user_id)
        return True, reply


def build_command_table(
    *,
    registry: BackendRegistry,
    selector: BackendSelector,
    history: ConversationHistoryStore,
    help_reply: str,
) -> CommandTable:
    async def show_help(param: str, user_id: str) -> str:
        return help_reply

    def make_switch(backend: str) -> CommandHandler:
        async def switch(param: str, user_id: str) -> str:
            return await selector.switch_backend(user_id, backend)

        return switch

    async def set_prompt(param: str, user_id: str) -> str:
        # An empty prompt is stored as "", which is distinct from no prompt.
        backend = await selector.resolve_backend(user_id)
        try:
            registry.check(backend)
            await history.set_prompt(
                user_id,
                backend,
                param,
                supports_system_prompt=registry.supports_system_prompt(backend),
            )
        except (ConfigurationError, UnsupportedOperationError) as exc:
            return str(exc)
        return f"{backend} prompt set"

    async def remove_prompt(param: str, user_id: str) -> str:
        backend = await selector.resolve_backend(user_id)
        await history.remove_prompt(user_id, backend)
        return f"{backend} prompt removed"

    async def get_prompt(param: str, user_id: str) -> str:
        backend = await selector.resolve_backend(user_id)
        prompt = await history.get_prompt(user_id, backend)
        if prompt is None:
            return f"{backend} has no prompt set"
        return f"{backend} prompt: {prompt}"

    handlers: dict[str, CommandHandler] = {
        COMMAND_HELP: show_help,
        COMMAND_PROMPT: set_prompt,
        COMMAND_REMOVE_PROMPT: remove_prompt,
        COMMAND_GET_PROMPT: get_prompt,
    }
    for backend in registry.names():
        handlers[switch_command(backend)] = make_switch(backend)
    return CommandTable(handlers)
