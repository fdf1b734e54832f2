"""Drop all time entries for a specific user."""
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient

from timetrack.config import settings
from timetrack.database import TIME_ENTRIES

logger = logging.getLogger("drop_user_data")


async def drop_user_data(mongodb_url: str, user_id: str) -> int:
    """Delete every time entry owned by a user."""
    client = AsyncIOMotorClient(mongodb_url)
    db = client[settings.mongodb_db_name]

    result = await db[TIME_ENTRIES].delete_many({"user_id": user_id})
    logger.info("Deleted %d documents from %s", result.deleted_count, TIME_ENTRIES)

    client.close()
    return result.deleted_count


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    if len(sys.argv) != 3:
        print("Usage: python drop_user_data.py <mongodb_url> <user_id>")
        sys.exit(1)

    asyncio.run(drop_user_data(sys.argv[1], sys.argv[2]))
