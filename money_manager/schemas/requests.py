"""HTTP payloads. Users and categories are named here and resolved to ids."""

from typing import List, Literal

from pydantic import BaseModel, Field

from money_manager.models.debt import DebtState


class PayRequest(BaseModel):
    amount: int = Field(..., gt=0)
    category: str = Field(..., min_length=3, max_length=32)
    description: str = Field("", max_length=128)


class EarnRequest(PayRequest):
    pass


class LoanRequest(BaseModel):
    debtor: str = Field(..., min_length=3, max_length=32)
    amount: int = Field(..., gt=0)
    description: str = Field("", max_length=128)


class SplitRequest(BaseModel):
    debtor: str = Field(..., min_length=3, max_length=32)
    amount: int = Field(..., ge=2)
    category: str = Field(..., min_length=3, max_length=32)
    description: str = Field("", max_length=128)


class RepayRequest(BaseModel):
    amount: int = Field(..., gt=0)


class DebtResponse(BaseModel):
    """One debt as seen by one of its parties."""
    status_id: int
    counterpart: str
    amount: int
    status: DebtState
    pending_amount: int
    description: str


class DebtsResponse(BaseModel):
    active: List[DebtResponse]
    pending: List[DebtResponse]
    balance: int


StatisticsKind = Literal["expense", "income"]


class AccountRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=32)


class AccountResponse(BaseModel):
    user_id: int
    username: str
    balance: int
