from relay.schemas.webhook import MessageKind, WebhookRequest, WebhookResponse

__all__ = ["MessageKind", "WebhookRequest", "WebhookResponse"]
