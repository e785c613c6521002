"""
Demo data for a development database.

Usage: python -m money_manager.db.seed

Resulting balances:
    hrisi: 40, peter: 90, george: 20, lily: 40
    hrisi lent lily 30 ("Bills"); george split 60 with peter ("Restaurant")
"""

import asyncio
import logging

from money_manager.core.logging_config import configure_logging
from money_manager.db.mongo import close_mongo_connection, connect_to_mongo, mongodb
from money_manager.models.category import DEBT_CATEGORY, LOAN_CATEGORY
from money_manager.repositories.category_repo import CategoryRepository
from money_manager.schemas.settlement import EarnCommand, GiveLoanCommand, PayCommand, SplitCommand
from money_manager.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

USERNAMES = ["hrisi", "peter", "george", "lily"]
STARTING_BALANCE = 100

# (username, amount, category, description)
PAYMENTS = [
    ("hrisi", 5, "food", "Bread"),
    ("peter", 10, "bills", ""),
    ("george", 20, "transport", "Car Wash"),
    ("lily", 90, "food", "Bar"),
    ("hrisi", 15, "food", ""),
    ("hrisi", 10, "bills", ""),
]


async def seed(service: SettlementService, categories: CategoryRepository) -> dict:
    """Create the demo users and replay their history. Returns username -> id."""
    ids = {}
    for username in USERNAMES:
        user = await service.open_account(username)
        ids[username] = user.id

    salary = await categories.resolve("salary")
    for user_id in ids.values():
        await service.earn(EarnCommand(
            user_id=user_id, amount=STARTING_BALANCE, category_id=salary.id
        ))

    for username, amount, category_name, description in PAYMENTS:
        category = await categories.resolve(category_name)
        await service.pay(PayCommand(
            user_id=ids[username], amount=amount,
            category_id=category.id, description=description
        ))

    loan = await categories.resolve(LOAN_CATEGORY)
    debt = await categories.resolve(DEBT_CATEGORY)
    await service.give_loan(GiveLoanCommand(
        creditor_id=ids["hrisi"], debtor_id=ids["lily"], amount=30,
        loan_category_id=loan.id, debt_category_id=debt.id, description="Bills"
    ))

    food = await categories.resolve("food")
    await service.split(SplitCommand(
        creditor_id=ids["george"], debtor_id=ids["peter"], amount=60,
        expense_category_id=food.id, loan_category_id=loan.id, description="Restaurant"
    ))
    return ids


async def main():
    configure_logging()
    await connect_to_mongo()
    try:
        ids = await seed(SettlementService(mongodb.db), CategoryRepository(mongodb.db))
        logger.info("Seeded users: %s", ids)
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
