import asyncio
import logging
from app.config import settings
from app.modules.limits.service import batch_limit_service

logger = logging.getLogger(__name__)


async def cleanup_expired_limit_entries():
    """Drop counter keys with no timestamps left in the window."""
    try:
        removed = batch_limit_service.cleanup()
        if removed:
            logger.info(f"Removed {removed} expired batch limit entr{'y' if removed == 1 else 'ies'}")
        else:
            logger.debug("No expired batch limit entries")
    except Exception as e:
        logger.error(f"Error cleaning up batch limit entries: {str(e)}")


async def limits_cleanup_loop():
    """Background task that periodically prunes the in-memory limit counters"""
    while True:
        await cleanup_expired_limit_entries()
        await asyncio.sleep(settings.limits_cleanup_interval_seconds)
