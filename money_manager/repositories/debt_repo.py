"""
DebtRepository - debt records and their settlement status.

Core algorithm:
1. create_debt inserts a debt_status (ongoing) and the linked debts row.
   Status ids come from allocate_status_id, called before the transaction
   opens so concurrent debts never write the same counter document
2. request_repay clamps the offer to what is owed and marks the debt pending
3. accept_payment settles part or all of the debt:
   - pending < owed: both amounts drop to owed - pending, back to ongoing
   - pending == owed: both rows are deleted
   - pending > owed: integrity fault, nothing is changed
4. decline_payment restores the ongoing status with the owed amount

All mutating methods take the session of the caller's transaction.
"""

from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from money_manager.core.errors import IntegrityFaultError, InvalidDebtStateError, NotFoundError
from money_manager.db.sequences import next_sequence
from money_manager.models.debt import DebtRecord, DebtState, DebtStatus, DebtView


class DebtRepository:
    """Repository for debts (creditor/debtor pairs)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.statuses = db["debt_status"]
        self.collection = db["debts"]

    async def allocate_status_id(self) -> int:
        """Reserve the next status id outside any transaction."""
        return await next_sequence(self.db, "debt_status")

    async def create_debt(
        self,
        creditor_id: int,
        debtor_id: int,
        amount: int,
        category_id: int,
        description: str = "",
        status_id: Optional[int] = None,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> int:
        """Insert a new ongoing debt. Returns its status id."""
        if status_id is None:
            status_id = await self.allocate_status_id()

        status = DebtStatus(status_id=status_id, status=DebtState.ONGOING, amount=amount)
        await self.statuses.insert_one(
            {"_id": status.status_id, "status": status.status.value, "amount": status.amount},
            session=session
        )

        record = DebtRecord(
            creditor_id=creditor_id,
            debtor_id=debtor_id,
            amount=amount,
            category_id=category_id,
            description=description,
            status_id=status_id,
        )
        await self.collection.insert_one(record.model_dump(), session=session)
        return status_id

    async def get_debt(
        self, status_id: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> DebtView:
        """Load one debt joined with its status."""
        record, status = await self._load(status_id, session)
        return DebtView.join(record, status)

    async def request_repay(
        self,
        status_id: int,
        proposed_amount: int,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> int:
        """
        Mark an ongoing debt pending with the debtor's offer.

        An offer above the outstanding amount is capped, not rejected.
        Returns the amount actually recorded.
        """
        _, status = await self._load(status_id, session)
        if status.status != DebtState.ONGOING:
            raise InvalidDebtStateError(
                f"Debt {status_id} already has a pending repay of {status.amount}"
            )

        amount = min(proposed_amount, status.amount)
        await self.statuses.update_one(
            {"_id": status_id},
            {"$set": {"status": DebtState.PENDING.value, "amount": amount}},
            session=session
        )
        return amount

    async def accept_payment(
        self, status_id: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> Tuple[int, int]:
        """
        Apply the pending repay to the debt.

        Returns (transferred, remaining). remaining == 0 means the debt is
        settled and both rows are gone.
        """
        record, status = await self._load(status_id, session)
        if status.status != DebtState.PENDING:
            raise InvalidDebtStateError(f"Debt {status_id} has no pending repay")

        pending_amount = status.amount
        debt_amount = record.amount

        if pending_amount > debt_amount:
            raise IntegrityFaultError(
                f"Debt {status_id}: pending repay {pending_amount} exceeds owed {debt_amount}"
            )

        if pending_amount < debt_amount:
            remaining = debt_amount - pending_amount
            await self._pay_part_of_debt(status_id, remaining, session)
            return pending_amount, remaining

        await self._delete_debt(status_id, session)
        return pending_amount, 0

    async def decline_payment(
        self, status_id: int, session: Optional[AsyncIOMotorClientSession] = None
    ) -> int:
        """Drop the pending offer. Returns the restored outstanding amount."""
        record, status = await self._load(status_id, session)
        if status.status != DebtState.PENDING:
            raise InvalidDebtStateError(f"Debt {status_id} has no pending repay")

        await self.statuses.update_one(
            {"_id": status_id},
            {"$set": {"status": DebtState.ONGOING.value, "amount": record.amount}},
            session=session
        )
        return record.amount

    async def find_active_debts(self, debtor_id: int) -> List[DebtView]:
        return await self._find({"debtor_id": debtor_id}, DebtState.ONGOING)

    async def find_active_loans(self, creditor_id: int) -> List[DebtView]:
        return await self._find({"creditor_id": creditor_id}, DebtState.ONGOING)

    async def find_pending_debts(self, debtor_id: int) -> List[DebtView]:
        return await self._find({"debtor_id": debtor_id}, DebtState.PENDING)

    async def find_pending_requests(self, creditor_id: int) -> List[DebtView]:
        return await self._find({"creditor_id": creditor_id}, DebtState.PENDING)

    # ===== PRIVATE HELPERS =====

    async def _load(
        self, status_id: int, session: Optional[AsyncIOMotorClientSession]
    ) -> Tuple[DebtRecord, DebtStatus]:
        status_doc = await self.statuses.find_one({"_id": status_id}, session=session)
        if not status_doc:
            raise NotFoundError(f"Debt {status_id} not found")

        record_doc = await self.collection.find_one({"status_id": status_id}, session=session)
        if not record_doc:
            raise IntegrityFaultError(f"Debt status {status_id} has no debt record")

        return DebtRecord(**record_doc), DebtStatus(**status_doc)

    async def _pay_part_of_debt(
        self, status_id: int, remaining: int, session: Optional[AsyncIOMotorClientSession]
    ) -> None:
        await self.statuses.update_one(
            {"_id": status_id},
            {"$set": {"status": DebtState.ONGOING.value, "amount": remaining}},
            session=session
        )
        await self.collection.update_one(
            {"status_id": status_id},
            {"$set": {"amount": remaining}},
            session=session
        )

    async def _delete_debt(
        self, status_id: int, session: Optional[AsyncIOMotorClientSession]
    ) -> None:
        await self.collection.delete_one({"status_id": status_id}, session=session)
        await self.statuses.delete_one({"_id": status_id}, session=session)

    async def _find(self, match: dict, state: DebtState) -> List[DebtView]:
        """Records matching `match` whose status is `state`, oldest first."""
        records = await self.collection.find(match, sort=[("status_id", 1)]).to_list(None)
        if not records:
            return []

        status_docs = await self.statuses.find({
            "_id": {"$in": [doc["status_id"] for doc in records]},
            "status": state.value
        }).to_list(None)
        statuses = {doc["_id"]: DebtStatus(**doc) for doc in status_docs}

        return [
            DebtView.join(DebtRecord(**doc), statuses[doc["status_id"]])
            for doc in records
            if doc["status_id"] in statuses
        ]
