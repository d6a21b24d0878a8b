"""APScheduler integration for scheduled tasks."""

import logging

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone=pytz.timezone(settings.timezone))


async def cleanup_old_messages() -> None:
    """Delete cached messages older than the retention window."""
    from src.services.tldr.service import tldr_service

    try:
        await tldr_service.cleanup_messages()
    except Exception as e:
        logger.exception(f"Message cleanup failed: {e}")


def sweep_expired_state() -> None:
    """Evict expired cooldowns and pending API key updates."""
    from src.services.tldr.service import tldr_service

    tldr_service.sweep_state()


def configure_scheduler() -> None:
    """Configure all scheduled jobs."""
    scheduler.add_job(
        cleanup_old_messages,
        trigger=IntervalTrigger(
            minutes=settings.message_cleanup_interval_minutes,
            timezone=pytz.timezone(settings.timezone),
        ),
        id="message_cleanup",
        name="Message Cache Cleanup",
        replace_existing=True,
    )

    scheduler.add_job(
        sweep_expired_state,
        trigger=IntervalTrigger(
            minutes=settings.state_sweep_interval_minutes,
            timezone=pytz.timezone(settings.timezone),
        ),
        id="state_sweep",
        name="Cooldown and Key Update Sweep",
        replace_existing=True,
    )

    logger.info(
        f"Scheduled message cleanup every {settings.message_cleanup_interval_minutes} min "
        f"(retention {settings.message_retention_hours}h)"
    )


def start_scheduler() -> None:
    """Start the scheduler."""
    configure_scheduler()
    scheduler.start()
    logger.info("Scheduler started")


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown")
