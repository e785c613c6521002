import os
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from money_manager.api.deps import get_settlement_service
from money_manager.db.mongo import LEDGER_COLLECTIONS, create_indexes, ensure_collections, get_db
from money_manager.main import app
from money_manager.repositories.category_repo import CategoryRepository
from money_manager.schemas.settlement import EarnCommand
from money_manager.services.settlement_service import SettlementService

# Integration tests need a replica set (transactions); see test_mongo_integration.py
TEST_MONGODB_URI = os.getenv("MONGODB_URI")
TEST_MONGODB_DB = "money_manager_test"


class SnapshotTransactionRunner:
    """
    Transaction runner for the in-memory database.

    mongomock has no sessions, so the unit snapshots every ledger collection
    and restores it when the block raises, the way an aborted Mongo
    transaction leaves the data.
    """

    def __init__(self, db):
        self.db = db
        self.units = 0

    @asynccontextmanager
    async def atomic(self):
        snapshot = {
            name: await self.db[name].find({}).to_list(None)
            for name in LEDGER_COLLECTIONS
        }
        self.units += 1
        try:
            yield None
        except Exception:
            for name, docs in snapshot.items():
                await self.db[name].delete_many({})
                if docs:
                    await self.db[name].insert_many(docs)
            raise


async def prepare_database(db):
    await ensure_collections(db)
    await create_indexes(db)
    await CategoryRepository(db).seed_defaults()


@pytest_asyncio.fixture
async def test_db():
    """Fresh in-memory database with indexes and the category catalog."""
    client = AsyncMongoMockClient()
    db = client[TEST_MONGODB_DB]
    await prepare_database(db)
    yield db


@pytest_asyncio.fixture
async def service(test_db) -> SettlementService:
    return SettlementService(test_db, transactions=SnapshotTransactionRunner(test_db))


@pytest_asyncio.fixture
async def category_ids(test_db) -> dict:
    """Category name -> id."""
    categories = await CategoryRepository(test_db).find_all()
    return {category.name: category.id for category in categories}


@pytest_asyncio.fixture
async def funded_users(service, category_ids):
    """
    Factory: open accounts and fund them through Earn.

    usage: ids = await funded_users(alice=100, bob=50)
    """
    async def create(**balances):
        ids = {}
        for username, balance in balances.items():
            user = await service.open_account(username)
            if balance:
                await service.earn(EarnCommand(
                    user_id=user.id, amount=balance, category_id=category_ids["salary"]
                ))
            ids[username] = user.id
        return ids

    return create


@pytest_asyncio.fixture
async def api_client(test_db):
    """HTTP client bound to the app with the in-memory database."""
    app.dependency_overrides[get_db] = lambda: test_db
    app.dependency_overrides[get_settlement_service] = lambda: SettlementService(
        test_db, transactions=SnapshotTransactionRunner(test_db)
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
