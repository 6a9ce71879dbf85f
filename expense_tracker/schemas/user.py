"""
Pydantic schemas for user profile and balance responses.

hashed_password is never part of any response schema. All monetary
amounts are integer cents.
"""

from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class UserResponse(BaseModel):
    """Public representation of a User."""
    id: int
    name: str
    email: EmailStr
    initial_balance_cents: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdateRequest(BaseModel):
    """
    Request body for PUT /users/me.

    name and email are always replaced. new_password and
    initial_balance_cents are optional; omitted means unchanged.
    """
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    current_password: str = Field(min_length=1, max_length=100)
    new_password: str | None = Field(None, min_length=8, max_length=100)
    initial_balance_cents: int | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name cannot be blank")
        return value


class ProfileDeleteRequest(BaseModel):
    """Request body for DELETE /users/me. confirm_deletion must be true."""
    current_password: str = Field(min_length=1, max_length=100)
    confirm_deletion: bool = False

    @model_validator(mode="after")
    def must_confirm(self):
        if not self.confirm_deletion:
            raise ValueError("confirm_deletion must be true to delete the account")
        return self


class DeleteUserResponse(BaseModel):
    id: int
    name: str
    email: EmailStr
    message: str


class InitialBalanceUpdateRequest(BaseModel):
    """Request body for PUT /users/me/initial-balance."""
    initial_balance_cents: int


class BalanceResponse(BaseModel):
    """Current balance = initial balance + last cumulative delta."""
    user_id: int
    initial_balance_cents: int
    cumulative_delta_cents: int
    current_balance_cents: int


class BalanceAsOfResponse(BaseModel):
    """Balance at the end of a date (entries dated after it are ignored)."""
    user_id: int
    as_of: date
    initial_balance_cents: int
    cumulative_delta_cents: int
    balance_cents: int


class LedgerViolation(BaseModel):
    index: int
    transaction_id: int | None
    expected_cents: int
    actual_cents: int


class LedgerIntegrityResponse(BaseModel):
    """
    Result of re-checking every stored cumulative delta.

    `consistent` is False only if the write path has a bug; `violations`
    then lists each row whose value doesn't follow from its predecessor.
    """
    user_id: int
    transaction_count: int
    consistent: bool
    violations: list[LedgerViolation]
