"""TLDReply - Telegram group chat summarizer.

FastAPI application entry point with lifespan management.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from pydantic import BaseModel, ValidationError

from src.core.background_tasks import process_update_background
from src.core.config import settings
from src.core.logging import setup_logging
from src.core.scheduler import scheduler, shutdown_scheduler, start_scheduler
from src.core.telegram import telegram_client
from src.core.telegram.models import TelegramUpdate
from src.services.tldr import router as tldr_router
from src.services.tldr import tldr_service

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    start_scheduler()
    yield
    # Shutdown
    logger.info("Shutting down...")
    shutdown_scheduler()


app = FastAPI(
    title="TLDReply",
    description="Telegram bot that summarizes group conversations on /tldr",
    version="0.1.0",
    lifespan=lifespan,
)

# Include service routers
app.include_router(tldr_router)


# Health check models
class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    telegram_connected: bool
    scheduler_running: bool


@app.get("/")
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "description": "Telegram group chat summarizer",
        "services": ["tldr"],
    }


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health including Bot API reachability and scheduler status."""
    telegram_healthy = await telegram_client.check_health()
    scheduler_running = scheduler.running

    status = "healthy" if (telegram_healthy and scheduler_running) else "degraded"

    return HealthResponse(
        status=status,
        telegram_connected=telegram_healthy,
        scheduler_running=scheduler_running,
    )


@app.post("/webhook")
async def handle_webhook(request: Request, background_tasks: BackgroundTasks) -> dict:
    """
    Handle incoming Telegram webhook updates.

    Updates are processed in the background; the response is always 200 so
    Telegram does not redeliver updates the bot failed to handle.
    """
    # Verify secret token if configured
    if settings.telegram_webhook_secret:
        token = request.headers.get(SECRET_TOKEN_HEADER, "")
        if not hmac.compare_digest(token, settings.telegram_webhook_secret):
            logger.warning("Webhook secret token verification failed")
            raise HTTPException(status_code=401, detail="Invalid secret token")

    try:
        payload = await request.json()
        update = TelegramUpdate.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.error(f"Failed to parse webhook update: {e}")
        return {"status": "ok"}

    message = update.message or update.edited_message
    if message is not None:
        logger.debug(
            f"Webhook received: update={update.update_id}, chat={message.chat.id} "
            f"({message.chat.type})"
        )

    background_tasks.add_task(process_update_background, tldr_service, update)
    return {"status": "ok"}
