from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer


class TransactionCreateRequest(BaseModel):
    """Raw create body. Required-ness is checked by the ledger service so every
    missing field can be reported in one response."""

    model_config = ConfigDict(extra="ignore")

    user_id: str | None = None
    email: str | None = None
    title: str | None = None
    amount: Any = None
    category: str | None = None
    note: str | None = None
    created_at: datetime | None = None


class NewTransaction(BaseModel):
    user_id: str
    email: str | None = None
    title: str
    amount: Decimal
    category: str | None = None
    note: str | None = None
    created_at: datetime | None = None


class TransactionItem(BaseModel):
    id: int
    user_id: str
    email: str | None = None
    title: str
    amount: Decimal
    category: str | None = None
    note: str | None = None
    created_at: datetime | None = None

    @field_serializer("amount")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)


class TransactionSummary(BaseModel):
    balance: Decimal = Decimal(0)
    income: Decimal = Decimal(0)
    expenses: Decimal = Decimal(0)

    @field_serializer("balance", "income", "expenses")
    def _as_number(self, value: Decimal) -> float:
        return float(value)


class DeleteTransactionResponse(BaseModel):
    message: str = "Transaction deleted successfully"
    deleted: TransactionItem


class UserTransactionCount(BaseModel):
    user_id: str
    cnt: int
