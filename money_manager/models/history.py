"""
Money history - the append-only log of balance-affecting events.

Design principles:
- One row per event, immutable once written
- Amounts are never negative; direction comes from the category type
- Read back in insertion order
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from money_manager.models.base import PyObjectId, _utcnow
from money_manager.models.category import CategoryType


class HistoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[PyObjectId] = Field(default=None, validation_alias="_id", serialization_alias="id")
    user_id: int
    amount: int = Field(..., ge=0)
    category_id: int
    description: str = ""
    seq: int = 0           # position in the user's log
    created_at: datetime = Field(default_factory=_utcnow)


class HistoryRow(HistoryEntry):
    """History entry joined with its category for display."""
    category_name: str
    c_type: CategoryType

    @property
    def signed_amount(self) -> int:
        return -self.amount if self.c_type == CategoryType.EXPENSE else self.amount


class CategoryShare(BaseModel):
    """One slice of the expense or income breakdown."""
    category_name: str
    percent: float
    is_empty: bool = False
