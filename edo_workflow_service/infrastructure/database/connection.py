import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from edo_workflow_service.app.config import settings

logger = logging.getLogger(__name__)

# Global client and db variables, managed by connect/close functions
client: Optional[AsyncIOMotorClient] = None
db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    global client, db
    if client is not None and db is not None:
        logger.info("MongoDB connection already established.")
        return

    try:
        logger.info(f"Attempting to connect to MongoDB at {settings.MONGO_DETAILS}...")
        client = AsyncIOMotorClient(settings.MONGO_DETAILS, tz_aware=True)
        # Verify connection by pinging the admin database
        await client.admin.command('ping')
        db = client[settings.DB_NAME]
        logger.info(f"Successfully connected to MongoDB and database '{settings.DB_NAME}' is set.")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}", exc_info=True)
        client = None
        db = None
        raise ConnectionError(f"Failed to connect to MongoDB: {e}")


async def ensure_indexes(database: AsyncIOMotorDatabase):
    # Imported here so the store modules can import this one for get_db without a cycle
    from edo_workflow_service.infrastructure.database import (
        comment_store, document_store, event_store, template_store,
    )
    await database[document_store.DOCUMENTS_COLLECTION].create_index("id", unique=True)
    await database[document_store.DOCUMENTS_COLLECTION].create_index([("status", 1), ("created_at", -1)])
    await database[document_store.COUNTERS_COLLECTION].create_index("key", unique=True)
    await database[comment_store.COMMENTS_COLLECTION].create_index([("document_id", 1), ("created_at", 1)])
    await database[template_store.TEMPLATES_COLLECTION].create_index("id", unique=True)
    await database[event_store.EVENT_STORE_COLLECTION].create_index([("aggregate_id", 1), ("version", 1)])
    logger.info("MongoDB indexes ensured.")


def close_mongo_connection():
    global client, db
    if client:
        client.close()
        client = None
        db = None
        logger.info("MongoDB connection closed.")


async def get_db():
    if db is None:
        logger.warning("Database not initialized. Attempting to connect via get_db().")
        await connect_to_mongo()

    if db is None:
        logger.error("Failed to get database instance in get_db.")
        raise ConnectionError("Database client is not available. Connection might have failed or was not established.")

    # Connection lifetime is owned by the application startup/shutdown events
    yield db
