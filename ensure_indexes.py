import asyncio
import logging
from core.config import settings
from core.database import close_client, get_tasks_collection
from core.logging_setup import setup_logging
from core.mongo_store import MongoTaskStore

logger = logging.getLogger("ensure_indexes")

async def ensure_indexes():
    logger.info("Connecting to MongoDB db=%s collection=%s...", settings.DB_NAME, settings.TASKS_COLLECTION)
    store = MongoTaskStore(get_tasks_collection())
    try:
        await store.ensure_indexes()
    finally:
        close_client()
    logger.info("Indexes created successfully!")

if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)
    asyncio.run(ensure_indexes())
