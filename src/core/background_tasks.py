"""Background task processing for non-blocking webhook handling."""

import logging
import time

from src.core.telegram.models import TelegramUpdate

logger = logging.getLogger(__name__)


async def process_update_background(service, update: TelegramUpdate) -> None:
    """
    Handle a Telegram update after the webhook has already answered.

    Telegram redelivers updates whose webhook call does not succeed quickly,
    so summarization always runs here rather than inside the request.

    Args:
        service: The TldrService instance
        update: Parsed webhook update
    """
    processing_start = time.time()

    try:
        await service.handle_update(update)
    except Exception as e:
        logger.exception(f"Failed to process update {update.update_id}: {e}")
        return

    total_time = time.time() - processing_start
    logger.debug(f"Update {update.update_id} processed in {total_time:.2f}s")
