"""MongoDB database connection using Motor (async driver)."""
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel

from timetrack.config import settings

logger = logging.getLogger(__name__)

TIME_ENTRIES = "time_entries"

# Collections owned by collaborators; only read for report labels and search.
USERS = "users"
PROJECTS = "projects"
TASKS = "tasks"

OPEN_ENTRY_INDEX = "one_open_entry_per_user"

TIME_ENTRY_INDEXES = [
    IndexModel(
        [("user_id", ASCENDING)],
        name=OPEN_ENTRY_INDEX,
        unique=True,
        partialFilterExpression={"open": True},
    ),
    IndexModel([("user_id", ASCENDING), ("start_time", DESCENDING)]),
    IndexModel([("project_id", ASCENDING), ("start_time", DESCENDING)]),
    IndexModel([("task_id", ASCENDING), ("start_time", DESCENDING)]),
    IndexModel([("user_id", ASCENDING), ("session_id", ASCENDING)]),
]


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the time entry indexes, including the one-open-timer guard."""
    names = await db[TIME_ENTRIES].create_indexes(TIME_ENTRY_INDEXES)
    logger.info("Ensured time entry indexes: %s", ", ".join(names))


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def connect(self) -> None:
        """Connect to MongoDB and make sure indexes exist."""
        self.client = AsyncIOMotorClient(settings.mongodb_url, tz_aware=True)
        self.db = self.client[settings.mongodb_db_name]
        logger.info("Connected to MongoDB: %s", settings.mongodb_db_name)
        await ensure_indexes(self.db)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client is not None:
            self.client.close()
            logger.info("Disconnected from MongoDB")


# Global database instance
database = Database()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    if database.db is None:
        raise RuntimeError("Database not connected")
    return database.db
