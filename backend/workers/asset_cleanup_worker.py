import asyncio
import logging

from config.constants import UPLOAD_TICKET_TTL_SECONDS
from database import get_db
from services.providers import build_asset_controller

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 60 * 10  # every 10 minutes
ABANDONED_UPLOAD_SECONDS = UPLOAD_TICKET_TTL_SECONDS + 60 * 60 * 23  # a day after issue


async def run_asset_cleanup_once(controller) -> dict:
    expired = await controller.expire_abandoned_uploads(ABANDONED_UPLOAD_SECONDS)
    finished = await controller.finish_pending_deletes()
    return {"expired_uploads": expired, "finished_deletes": finished}


async def asset_cleanup_worker():
    controller = build_asset_controller(get_db())

    while True:
        try:
            result = await run_asset_cleanup_once(controller)
            if any(result.values()):
                logger.info("ASSET_CLEANUP expired=%s finished=%s",
                            result["expired_uploads"], result["finished_deletes"])
        except Exception:
            logger.exception("ASSET_CLEANUP_WORKER_ERROR")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)
