from motor.motor_asyncio import AsyncIOMotorClient

from config import MONGO_URI, DB_NAME

client = AsyncIOMotorClient(MONGO_URI)
db = client[DB_NAME]


def get_db():
    """FastAPI dependency; tests override it with an in-memory database."""
    return db


async def ensure_indexes(database):
    # Backs the one-account-per-email rule against concurrent signups
    await database["users"].create_index("email", unique=True)
    await database["carts"].create_index("user_id", unique=True)
    await database["orders"].create_index([("user_id", 1), ("created_at", -1)])
