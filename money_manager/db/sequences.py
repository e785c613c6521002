from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument


async def next_sequence(
    db: AsyncIOMotorDatabase,
    name: str,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> int:
    """Allocate the next integer id of a named sequence (starts at 1)."""
    counter = await db["counters"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    return counter["seq"]
