from fastapi import APIRouter, Depends

from relay.context import RelayContext, get_context
from relay.logging_config import get_logger, log_user_context
from relay.schemas.webhook import MessageKind, WebhookRequest, WebhookResponse

logger = get_logger("webhook")

router = APIRouter()


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(payload: WebhookRequest, context: RelayContext = Depends(get_context)):
    """Answer one inbound message within the platform's reply deadline.

    An empty reply means the completion is still running; the platform's retry
    of the same message will receive it.
    """
    with log_user_context(payload.sender):
        logger.info(f"Webhook received: kind={payload.kind.value}")
        try:
            if payload.kind != MessageKind.TEXT:
                reply = await context.events.handle(payload)
                return WebhookResponse(success=True, reply=reply)

            message_text = payload.text or ""
            if not message_text.strip():
                return WebhookResponse(success=False, message="Empty message")

            reply = await context.orchestrator.handle(payload.sender, message_text)
            if not reply:
                return WebhookResponse(success=True, reply="", message="Reply pending")
            return WebhookResponse(success=True, reply=reply)
        except Exception as e:
            logger.error(f"Webhook error: {e}", exc_info=True)
            return WebhookResponse(success=False, message="Internal error")


@router.get("/health")
async def health(context: RelayContext = Depends(get_context)):
    return {"status": "ok", "durable_store": context.store.durable}
