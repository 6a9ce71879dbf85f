"""
Pydantic schemas for Transaction endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050). Amounts
are always positive magnitudes; the type says which way the money moved.
"""

import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from expense_tracker.models.transaction import PaymentMethod, TransactionType


class TransactionCreateRequest(BaseModel):
    """Request body for POST /transactions."""
    type: TransactionType
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    date: dt.date
    subject: str = Field(min_length=1, max_length=255)
    notes: str | None = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    category_id: int | None = Field(None, gt=0)
    transaction_group_id: int | None = Field(None, gt=0)

    @model_validator(mode="after")
    def subject_not_blank(self):
        if not self.subject.strip():
            raise ValueError("Subject cannot be blank")
        return self


class TransactionUpdateRequest(BaseModel):
    """
    Request body for PATCH /transactions/{id}.

    Only the fields present in the body are changed. notes, category_id
    and transaction_group_id may be set to null to clear them.
    """
    type: TransactionType | None = None
    amount_cents: int | None = Field(None, gt=0)
    date: dt.date | None = None
    subject: str | None = Field(None, min_length=1, max_length=255)
    notes: str | None = None
    payment_method: PaymentMethod | None = None
    category_id: int | None = Field(None, gt=0)
    transaction_group_id: int | None = Field(None, gt=0)

    @model_validator(mode="after")
    def check_changes(self):
        """Reject empty bodies and nulls for fields that can't be cleared."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        for field in ("type", "amount_cents", "date", "subject", "payment_method"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        if self.subject is not None and not self.subject.strip():
            raise ValueError("Subject cannot be blank")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class TransactionResponse(BaseModel):
    """Public representation of a transaction, including its running sum."""
    id: int
    user_id: int
    type: TransactionType
    amount_cents: int
    signed_amount_cents: int
    date: dt.date
    cumulative_delta_cents: int
    subject: str
    notes: str | None
    payment_method: PaymentMethod
    category_id: int | None
    transaction_group_id: int | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class BatchDeleteRequest(BaseModel):
    """Request body for POST /transactions/batch-delete."""
    ids: list[int] = Field(min_length=1)


class BatchDeleteResponse(BaseModel):
    deleted: int


class NetChartPoint(BaseModel):
    """Totals for one date, plus the balance at the end of that date."""
    date: dt.date
    income_cents: int
    expense_cents: int
    net_cents: int
    closing_balance_cents: int
    transactions: list[TransactionResponse]


class CategoryChartPoint(BaseModel):
    """Totals for one category; category_id is null for uncategorized entries."""
    category_id: int | None
    expense_cents: int
    income_cents: int
    net_expenses_cents: int
    transaction_count: int
    transactions: list[TransactionResponse]


SortField = Literal["date", "subject", "amount", "payment_method", "category"]
