"""
Debt model - money one user owes another.

A debt is two documents linked by status_id:
- debt_status: {_id: status_id, status, amount}
- debts: {creditor_id, debtor_id, amount, category_id, description, status_id}

Lifecycle: ongoing -> pending (repay requested) -> ongoing (declined or
partially accepted) | deleted (fully accepted).
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, ConfigDict

from money_manager.models.base import _utcnow


class DebtState(str, Enum):
    ONGOING = "ongoing"
    PENDING = "pending"


class DebtStatus(BaseModel):
    """
    Settlement state of one debt.

    Invariants:
    - ONGOING: amount == DebtRecord.amount (outstanding principal)
    - PENDING: amount <= DebtRecord.amount (proposed repay)
    """
    model_config = ConfigDict(populate_by_name=True)

    status_id: int = Field(validation_alias="_id", serialization_alias="status_id")
    status: DebtState = DebtState.ONGOING
    amount: int = Field(..., ge=0)


class DebtRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    creditor_id: int
    debtor_id: int
    amount: int = Field(..., gt=0)
    category_id: int
    description: str = ""
    status_id: int
    created_at: datetime = Field(default_factory=_utcnow)


class DebtView(BaseModel):
    """A debt record joined with its status."""
    status_id: int
    creditor_id: int
    debtor_id: int
    amount: int            # outstanding principal
    status: DebtState
    status_amount: int     # proposed repay while pending
    category_id: int
    description: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == DebtState.PENDING

    @classmethod
    def join(cls, record: DebtRecord, status: DebtStatus) -> "DebtView":
        return cls(
            status_id=record.status_id,
            creditor_id=record.creditor_id,
            debtor_id=record.debtor_id,
            amount=record.amount,
            status=status.status,
            status_amount=status.amount,
            category_id=record.category_id,
            description=record.description,
        )
