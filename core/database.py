import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None

def get_client() -> AsyncIOMotorClient:
    """Lazily connects. tz_aware so dates come back as UTC-aware datetimes."""
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(
            settings.MONGO_URI,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.STORE_TIMEOUT_MS,
        )
        logger.info("Mongo client created db=%s", settings.DB_NAME)
    return _client

def get_database() -> AsyncIOMotorDatabase:
    return get_client()[settings.DB_NAME]

def get_tasks_collection() -> AsyncIOMotorCollection:
    return get_database()[settings.TASKS_COLLECTION]

def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("Mongo client closed")
