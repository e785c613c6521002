"""
HistoryRepository - the money_history log.

Rows are only ever inserted. Each row takes the next number of a per-user
sequence inside the caller's transaction, so reads come back in insertion
order whatever process wrote them. The per-user counter is only written by
units that already write that user's wallet.
"""

from typing import AsyncIterator, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from money_manager.db.sequences import next_sequence
from money_manager.models.category import CategoryType
from money_manager.models.history import CategoryShare, HistoryEntry, HistoryRow
from money_manager.repositories.category_repo import CategoryRepository

EMPTY_STATISTICS_LABEL = "No entries"


class HistoryRepository:
    """Repository for money history entries."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["money_history"]
        self.categories = CategoryRepository(db)

    async def append(
        self,
        user_id: int,
        amount: int,
        category_id: int,
        description: str = "",
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> HistoryEntry:
        """Insert one immutable history row."""
        entry = HistoryEntry(
            user_id=user_id,
            amount=amount,
            category_id=category_id,
            description=description,
            seq=await next_sequence(self.db, f"history:{user_id}", session=session),
        )
        doc = entry.model_dump(exclude={"id"})
        result = await self.collection.insert_one(doc, session=session)
        entry.id = str(result.inserted_id)
        return entry

    async def find_history(self, user_id: int) -> AsyncIterator[HistoryRow]:
        """
        Yield the user's entries in insertion order.

        Each call runs a fresh query, so the sequence can be restarted by
        calling again.
        """
        categories = await self.categories.index()
        cursor = self.collection.find({"user_id": user_id}, sort=[("seq", 1), ("_id", 1)])
        async for doc in cursor:
            category = categories.get(doc["category_id"])
            yield HistoryRow(
                **doc,
                category_name=category.name if category else "unknown",
                c_type=category.c_type if category else CategoryType.EXPENSE,
            )

    async def find_statistics(self, user_id: int, is_expense: bool) -> List[CategoryShare]:
        """
        Percentage of the user's expenses (or incomes) per category.

        Returns a single sentinel share when there is nothing to divide.
        """
        c_type = CategoryType.EXPENSE if is_expense else CategoryType.INCOME
        categories = {
            category.id: category
            for category in (await self.categories.index()).values()
            if category.c_type == c_type
        }

        pipeline = [
            {"$match": {"user_id": user_id, "category_id": {"$in": list(categories)}}},
            {"$group": {"_id": "$category_id", "total": {"$sum": "$amount"}}},
        ]
        groups = await self.collection.aggregate(pipeline).to_list(None)

        total = sum(group["total"] for group in groups)
        if total == 0:
            return [CategoryShare(category_name=EMPTY_STATISTICS_LABEL, percent=0.0, is_empty=True)]

        shares = [
            CategoryShare(
                category_name=categories[group["_id"]].name,
                percent=round(group["total"] * 100 / total, 2),
            )
            for group in groups
            if group["total"] > 0
        ]
        shares.sort(key=lambda share: (-share.percent, share.category_name))
        return shares
