"""FastAPI router for TLDR service endpoints."""

import logging

from fastapi import APIRouter

from src.core.config import settings
from src.services.tldr.service import tldr_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tldr", tags=["tldr"])


@router.get("/status")
async def get_status() -> dict:
    """Get TLDR service status."""
    return {
        "llm_provider": settings.llm_provider,
        "default_key_configured": bool(settings.default_api_key),
        "cooldown_seconds": settings.tldr_cooldown_seconds,
        "batch_size": settings.tldr_batch_size,
        "message_retention_hours": settings.message_retention_hours,
        "active_cooldowns": len(tldr_service.cooldown),
        "pending_key_updates": len(tldr_service.key_intents),
    }
