from datetime import datetime, timedelta

from pymongo import ReturnDocument

from utils.errors import RateLimited


async def rate_limit(
    db,
    key: str,
    max_requests: int,
    window_seconds: int,
):
    now = datetime.utcnow()
    window_start = now - timedelta(seconds=window_seconds)

    # count inside the current window
    record = await db.rate_limits.find_one_and_update(
        {"key": key, "window_started_at": {"$gte": window_start}},
        {"$inc": {"count": 1}},
        return_document=ReturnDocument.AFTER,
    )

    if record is None:
        # no window yet, or the old one elapsed
        await db.rate_limits.update_one(
            {"key": key},
            {"$set": {"count": 1, "window_started_at": now}},
            upsert=True,
        )
        return

    if record["count"] > max_requests:
        raise RateLimited()


class MongoRateLimiter:
    def __init__(self, db):
        self._db = db

    async def __call__(self, key: str, max_requests: int, window_seconds: int):
        await rate_limit(self._db, key, max_requests, window_seconds)
