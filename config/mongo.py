from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure
from config.settings import settings
from config.logging import logger


class MongoManager:
    """
    Central MongoDB connection manager.
    Ensures a single reusable async client across the project.
    """

    _client = None
    _db = None

    @classmethod
    async def connect(cls):
        if cls._client is None:
            try:
                logger.info("Connecting to MongoDB...")

                client = AsyncMongoClient(
                    settings.MONGO_URI,
                    serverSelectionTimeoutMS=5000,
                    tz_aware=True
                )

                # Force connection test
                await client.admin.command("ping")

                cls._client = client
                cls._db = client[settings.MONGO_DB_NAME]

                logger.info(f"Connected to MongoDB | DB: {settings.MONGO_DB_NAME}")

            except ConnectionFailure as e:
                logger.exception("MongoDB connection failed.")
                raise e

        return cls._db

    @classmethod
    async def close(cls):
        if cls._client is not None:
            await cls._client.close()
            cls._client = None
            cls._db = None


async def get_database():
    """
    Helper function for pipelines.
    Usage:
        db = await get_database()
    """
    return await MongoManager.connect()
