from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient

from config.env import MONGO_URI, MONGO_DB_NAME, MONGO_USE_TRANSACTIONS

_client = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        if not MONGO_URI:
            raise RuntimeError("MONGODB_URI not set")
        _client = AsyncIOMotorClient(MONGO_URI)
    return _client


def get_db():
    client = get_client()
    return client.get_default_database(default=MONGO_DB_NAME)


@asynccontextmanager
async def mongo_transaction():
    """
    Yield a session bound to a transaction, or None when transactions are off.
    Repositories accept the yielded value as `session=`.
    """
    if not MONGO_USE_TRANSACTIONS:
        yield None
        return

    async with await get_client().start_session() as session:
        async with session.start_transaction():
            yield session
