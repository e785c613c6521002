from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from money_manager.core.config import settings
from money_manager.core.errors import AlreadyExistsError, InsufficientFundsError, NotFoundError
from money_manager.models.wallet import Wallet


class WalletRepository:
    """Wallet balances. Every mutation is a single conditional update."""

    def __init__(self, db: AsyncIOMotorDatabase, allow_negative: Optional[bool] = None):
        self.db = db
        self.collection = db["wallets"]
        self.allow_negative = (
            settings.ALLOW_NEGATIVE_BALANCE if allow_negative is None else allow_negative
        )

    async def create_wallet(
        self, user_id: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> Wallet:
        """Create a zero-balance wallet."""
        wallet = Wallet(user_id=user_id)
        try:
            await self.collection.insert_one(wallet.model_dump(), session=session)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Wallet for user {user_id} already exists")
        return wallet

    async def check_balance(
        self, user_id: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> int:
        doc = await self.collection.find_one({"user_id": user_id}, session=session)
        if not doc:
            raise NotFoundError(f"Wallet for user {user_id} not found")
        return doc["balance"]

    async def credit(
        self, user_id: int, amount: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> int:
        """Add amount to the balance. Returns the new balance."""
        doc = await self.collection.find_one_and_update(
            {"user_id": user_id},
            {
                "$inc": {"balance": amount},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            },
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if not doc:
            raise NotFoundError(f"Wallet for user {user_id} not found")
        return doc["balance"]

    async def debit(
        self, user_id: int, amount: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> int:
        """
        Subtract amount from the balance. Returns the new balance.

        The funds check and the decrement are one conditional update, so a
        concurrent debit can never slip in between them.
        """
        query = {"user_id": user_id}
        if not self.allow_negative:
            query["balance"] = {"$gte": amount}

        doc = await self.collection.find_one_and_update(
            query,
            {
                "$inc": {"balance": -amount},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            },
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if doc:
            return doc["balance"]

        if not await self.collection.find_one({"user_id": user_id}, session=session):
            raise InsufficientFundsError(f"No wallet for user {user_id}")
        raise InsufficientFundsError(f"User {user_id} cannot cover {amount}")
