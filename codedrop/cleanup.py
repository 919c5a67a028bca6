"""
Background cleanup worker for expired drops and idle attempt records.
"""
import asyncio
import logging

from codedrop.drop_service import DropService

logger = logging.getLogger(__name__)


async def sweep_loop(service: DropService, interval_seconds: float = 60):
    """Run service.sweep() every `interval_seconds` until cancelled."""
    while True:
        try:
            result = await service.sweep()
            if result.drops or result.identities:
                logger.info(
                    f"Cleanup removed {result.drops} drop(s), "
                    f"{result.identities} attempt record(s)"
                )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Cleanup error")
        await asyncio.sleep(interval_seconds)
