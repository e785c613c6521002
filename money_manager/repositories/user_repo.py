from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from money_manager.core.errors import AlreadyExistsError, NotFoundError
from money_manager.db.sequences import next_sequence
from money_manager.models.user import User


class UserRepository:
    """Username <-> user id directory."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    async def allocate_id(self) -> int:
        """Reserve the next user id outside any transaction."""
        return await next_sequence(self.db, "users")

    async def create_user(self, username: str, user_id: Optional[int] = None, session=None) -> User:
        """Register a username under a fresh integer id."""
        if await self.collection.find_one({"username": username}, session=session):
            raise AlreadyExistsError(f"User {username} already exists")

        if user_id is None:
            user_id = await self.allocate_id()
        user = User(id=user_id, username=username)
        try:
            await self.collection.insert_one(
                {"_id": user.id, "username": user.username}, session=session
            )
        except DuplicateKeyError:
            raise AlreadyExistsError(f"User {username} already exists")
        return user

    async def resolve_user_id(self, username: str) -> int:
        doc = await self.collection.find_one({"username": username})
        if not doc:
            raise NotFoundError(f"No user: {username}")
        return doc["_id"]

    async def resolve_username(self, user_id: int) -> str:
        doc = await self.collection.find_one({"_id": user_id})
        if not doc:
            raise NotFoundError(f"No user with id {user_id}")
        return doc["username"]

    async def resolve_usernames(self, user_ids) -> dict:
        """Map several ids to usernames in one query."""
        docs = await self.collection.find({"_id": {"$in": list(set(user_ids))}}).to_list(None)
        return {doc["_id"]: doc["username"] for doc in docs}
