# app/db/mongo.py
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import Settings
from app.core.logger import get_logger

logger = get_logger("db")


def create_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    # Callers own the client and must close it.
    return AsyncIOMotorClient(settings.MONGODB_URI, tz_aware=True)


def get_database(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    return client[settings.MONGODB_DB]


# Function to check DB connection
async def verify_mongodb_connection(client: AsyncIOMotorClient) -> bool:
    try:
        await client.admin.command("ping")
        logger.info("MongoDB connection established")
        return True
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        return False
