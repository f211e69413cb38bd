"""Replies for inbound messages that are not plain text."""

from typing import Mapping

from relay.logging_config import get_logger
from relay.schemas.webhook import MessageKind, WebhookRequest
from relay.services.backend_service import BackendSelector

logger = get_logger("event_service")

EVENT_SUBSCRIBE = "subscribe"
EVENT_CLICK = "click"

UNSUPPORTED_EVENT_REPLY = "Unsupported event"
UNSUPPORTED_KIND_REPLY = "Unsupported message type"
FALLBACK_SUBSCRIBE_REPLY = "Welcome aboard!"


class EventHandler:
    def __init__(
        self,
        selector: BackendSelector,
        *,
        subscribe_reply: str,
        help_reply: str,
        click_backends: Mapping[str, str],
    ) -> None:
        self.selector = selector
        self.subscribe_reply = subscribe_reply
        self.help_reply = help_reply
        self.click_backends = dict(click_backends)

    async def handle(self, request: WebhookRequest) -> str:
        if request.kind == MessageKind.IMAGE:
            return request.pic_url or ""
        if request.kind != MessageKind.EVENT:
            logger.info(f"Unsupported message kind: {request.kind.value}")
            return UNSUPPORTED_KIND_REPLY

        event = (request.event or "").lower()
        if event == EVENT_SUBSCRIBE:
            return (self.subscribe_reply + self.help_reply) or FALLBACK_SUBSCRIBE_REPLY
        if event == EVENT_CLICK:
            backend = self.click_backends.get(request.event_key or "")
            if backend is None:
                return f"unknown event key={request.event_key}"
            return await self.selector.switch_backend(request.sender, backend)

        logger.info(f"Unsupported event: {event or '-'}")
        return UNSUPPORTED_EVENT_REPLY
