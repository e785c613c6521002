from typing import Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from money_manager.core.errors import NotFoundError
from money_manager.models.category import (
    Category,
    CategoryType,
    DEBT_CATEGORY,
    LOAN_CATEGORY,
    REPAY_CATEGORY,
)

# Fixed catalog: (id, name, type)
DEFAULT_CATEGORIES = [
    (1, LOAN_CATEGORY, CategoryType.EXPENSE),
    (2, "food", CategoryType.EXPENSE),
    (3, "bills", CategoryType.EXPENSE),
    (4, "transport", CategoryType.EXPENSE),
    (5, "entertainment", CategoryType.EXPENSE),
    (6, "health", CategoryType.EXPENSE),
    (7, "shopping", CategoryType.EXPENSE),
    (8, DEBT_CATEGORY, CategoryType.INCOME),
    (9, REPAY_CATEGORY, CategoryType.INCOME),
    (10, "salary", CategoryType.INCOME),
    (11, "savings", CategoryType.INCOME),
    (12, "gift", CategoryType.INCOME),
]


class CategoryRepository:
    """Read-only category catalog, seeded at startup."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["categories"]

    async def seed_defaults(self) -> None:
        """Insert the built-in categories that are missing."""
        for category_id, name, c_type in DEFAULT_CATEGORIES:
            await self.collection.update_one(
                {"_id": category_id},
                {"$setOnInsert": {"name": name, "c_type": c_type.value}},
                upsert=True
            )

    async def resolve(self, name: str) -> Category:
        """Resolve a category name to its id and type."""
        doc = await self.collection.find_one({"name": name.strip().lower()})
        if not doc:
            raise NotFoundError(f"No category: {name}")
        return Category(**doc)

    async def find_by_id(self, category_id: int, session=None) -> Category:
        doc = await self.collection.find_one({"_id": category_id}, session=session)
        if not doc:
            raise NotFoundError(f"No category with id {category_id}")
        return Category(**doc)

    async def find_all(self) -> List[Category]:
        docs = await self.collection.find({}, sort=[("_id", 1)]).to_list(None)
        return [Category(**doc) for doc in docs]

    async def find_expenses(self) -> List[Category]:
        return await self._find_by_type(CategoryType.EXPENSE)

    async def find_incomes(self) -> List[Category]:
        return await self._find_by_type(CategoryType.INCOME)

    async def index(self) -> Dict[int, Category]:
        """All categories keyed by id."""
        return {category.id: category for category in await self.find_all()}

    async def _find_by_type(self, c_type: CategoryType) -> List[Category]:
        docs = await self.collection.find({"c_type": c_type.value}, sort=[("_id", 1)]).to_list(None)
        return [Category(**doc) for doc in docs]
