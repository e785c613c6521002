import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from money_manager.core.config import settings

logger = logging.getLogger(__name__)

# Collections written inside transactions must exist beforehand
LEDGER_COLLECTIONS = (
    "wallets",
    "money_history",
    "debt_status",
    "debts",
    "categories",
    "users",
    "counters",
)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    from money_manager.repositories.category_repo import CategoryRepository

    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URI)
    mongodb.db = mongodb.client[settings.MONGODB_DB]

    await ensure_collections(mongodb.db)
    await create_indexes(mongodb.db)
    await CategoryRepository(mongodb.db).seed_defaults()
    logger.info("Connected to MongoDB: %s", settings.MONGODB_DB)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def ensure_collections(db: AsyncIOMotorDatabase):
    """Create the ledger collections that do not exist yet."""
    existing = set(await db.list_collection_names())
    for name in LEDGER_COLLECTIONS:
        if name not in existing:
            await db.create_collection(name)

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # One wallet per user
    await db["wallets"].create_index("user_id", unique=True)

    # History is read per user in sequence order
    await db["money_history"].create_index([("user_id", 1), ("seq", 1)])
    await db["money_history"].create_index([("user_id", 1), ("category_id", 1)])

    # Debt record is 1:1 with its status
    await db["debts"].create_index("status_id", unique=True)
    await db["debts"].create_index("debtor_id")
    await db["debts"].create_index("creditor_id")

    await db["categories"].create_index("name", unique=True)
    await db["users"].create_index("username", unique=True)

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
