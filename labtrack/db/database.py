# labtrack/db/database.py
import logging

import motor.motor_asyncio
from beanie import init_beanie

from labtrack.core import config
from labtrack.db.documents import DOCUMENT_MODELS
from labtrack.db.memory import MemoryStorage
from labtrack.db.mongo import MongoStorage
from labtrack.db.storage import Storage

logger = logging.getLogger(__name__)


async def init_storage() -> Storage:
    """Build the storage engine selected by STORAGE_BACKEND."""
    if config.STORAGE_BACKEND == "memory":
        logger.warning("Using in-memory storage. Data is lost on shutdown.")
        return MemoryStorage()

    if config.STORAGE_BACKEND != "mongo":
        raise ValueError(f"Unknown STORAGE_BACKEND '{config.STORAGE_BACKEND}'. Expected 'mongo' or 'memory'.")

    if not config.MONGODB_URL:
        logger.critical("FATAL: MONGODB_URL environment variable is not set.")
        raise ValueError("MONGODB_URL environment variable is not set.")

    logger.info("Connecting to MongoDB...")
    client = motor.motor_asyncio.AsyncIOMotorClient(config.MONGODB_URL, tz_aware=True)
    database = client[config.DATABASE_NAME]
    logger.info(f"Using database: {config.DATABASE_NAME}")

    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info("Beanie initialization complete for all collections.")
    return MongoStorage(client, config.DATABASE_NAME)
