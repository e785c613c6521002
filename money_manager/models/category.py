from enum import Enum

from pydantic import BaseModel, Field, ConfigDict


class CategoryType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


# Built-in categories the settlement engine files transfers under
LOAN_CATEGORY = "loan"      # expense: money lent out
DEBT_CATEGORY = "debt"      # income: money borrowed
REPAY_CATEGORY = "repay"    # income: a debt paid back


class Category(BaseModel):
    id: int = Field(validation_alias="_id", serialization_alias="id")
    name: str = Field(..., min_length=3, max_length=32)
    c_type: CategoryType

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_expense(self) -> bool:
        return self.c_type == CategoryType.EXPENSE
