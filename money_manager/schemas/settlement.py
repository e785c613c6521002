"""
Settlement engine commands and results.

One flat model per operation: ids are already resolved, amounts are
positive integers.
"""

from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, model_validator

from money_manager.models.debt import DebtView

Amount = Annotated[int, Field(gt=0)]
Description = Annotated[str, Field(max_length=128)]


class PayCommand(BaseModel):
    user_id: int
    amount: Amount
    category_id: int
    description: Description = ""


class EarnCommand(BaseModel):
    user_id: int
    amount: Amount
    category_id: int
    description: Description = ""


class _TransferCommand(BaseModel):
    creditor_id: int
    debtor_id: int

    @model_validator(mode="after")
    def parties_differ(self):
        if self.creditor_id == self.debtor_id:
            raise ValueError("creditor and debtor must be different users")
        return self


class GiveLoanCommand(_TransferCommand):
    amount: Amount
    loan_category_id: int
    debt_category_id: int
    description: Description = ""


class SplitCommand(_TransferCommand):
    amount: int = Field(..., ge=2)
    expense_category_id: int
    loan_category_id: int
    description: Description = ""


class RequestRepayCommand(BaseModel):
    status_id: int
    amount: Amount
    debtor_id: Optional[int] = None  # when set, must be the debt's debtor


class AcceptPaymentCommand(BaseModel):
    status_id: int
    repay_category_id: int
    creditor_id: Optional[int] = None  # when set, must be the debt's creditor


class DeclinePaymentCommand(BaseModel):
    status_id: int
    creditor_id: Optional[int] = None


class BalanceResult(BaseModel):
    user_id: int
    balance: int


class LoanResult(BaseModel):
    status_id: int
    amount: int
    creditor_balance: int
    debtor_balance: int


class SplitResult(BaseModel):
    status_id: int
    debt_amount: int
    creditor_share: int
    creditor_balance: int


class RepayRequestResult(BaseModel):
    status_id: int
    pending_amount: int


class SettlementResult(BaseModel):
    status_id: int
    transferred: int
    remaining: int

    @property
    def settled(self) -> bool:
        return self.remaining == 0


class DeclineResult(BaseModel):
    status_id: int
    amount: int


class DebtsOverview(BaseModel):
    """What a user owes (or is owed): active and pending debts plus balance."""
    active: List[DebtView]
    pending: List[DebtView]
    balance: int
