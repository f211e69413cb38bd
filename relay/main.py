from fastapi import FastAPI

from relay.config import get_settings
from relay.context import build_context
from relay.logging_config import get_logger, setup_logging
from relay.routers import webhook

settings = get_settings()
setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Relay API",
    description="Messaging webhook relay to conversational completion backends",
    version="0.1.0",
)

app.include_router(webhook.router)


@app.on_event("startup")
async def start_context() -> None:
    if getattr(app.state, "context", None) is None:
        app.state.context = build_context(settings)
    await app.state.context.start()
    logger.info("Relay started", extra={"context": {"default_backend": settings.bot_type}})


@app.on_event("shutdown")
async def stop_context() -> None:
    context = getattr(app.state, "context", None)
    if context is None:
        return
    await context.stop()
    app.state.context = None
