"""MongoDB connection pool shared by every request of one process."""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from chainview.commons.chainview_logger import ChainviewLogger
from chainview.configs import MONGO_DB, MONGO_MAX_POOL_SIZE, MONGO_URI


class MongoConnection(object):
    """Owns the motor client. Built once at startup and closed at shutdown."""

    def __init__(self, uri: str = MONGO_URI, db_name: str = MONGO_DB, client: Optional[AsyncIOMotorClient] = None):
        self.logger = ChainviewLogger()
        self._client = client or AsyncIOMotorClient(uri, maxPoolSize=MONGO_MAX_POOL_SIZE, tz_aware=True)
        self._db: AsyncIOMotorDatabase = self._client[db_name]
        self.logger.debug(f"MongoDB connection created for database '{db_name}'.")

    @property
    def db(self) -> AsyncIOMotorDatabase:
        return self._db

    def collection(self, name: str) -> AsyncIOMotorCollection:
        return self._db[name]

    async def ping(self) -> bool:
        """Return whether the server answers; used by the readiness check."""
        try:
            await self._db.command("ping")
            return True
        except Exception as e:
            self.logger.warning(f"MongoDB ping failed: {e}")
            return False

    def close(self):
        self._client.close()
        self.logger.debug("MongoDB connection closed.")
