"""Startup orchestration: optional historical backfill, then live listening."""

import logging

from registry_sync.common.config import RegistrySyncSettings
from registry_sync.sync.backfill import BackfillController
from registry_sync.sync.live import LiveController

logger = logging.getLogger(__name__)


async def start_sync(
    settings: RegistrySyncSettings,
    backfill: BackfillController,
    live: LiveController,
) -> bool:
    """Backfill from ``sync_from_block`` when set, then start the listener.

    Returns False when initialization failed; the failure is logged and the
    hosting process keeps serving whatever is already stored.
    """
    try:
        resume_from = None
        if settings.sync_from_block > 0:
            report = await backfill.sync(settings.sync_from_block)
            # Blocks mined while the backfill ran are left to the listener.
            resume_from = report.to_block + 1
        await live.start(from_block=resume_from)
    except Exception:
        logger.exception("Error initializing event listener; serving stored data only")
        return False
    logger.info("Event listener initialized and running")
    return True


async def stop_sync(backfill: BackfillController, live: LiveController) -> None:
    backfill.request_stop()
    await live.stop()
