"""
Users router — profile and balance endpoints for the authenticated user.

Endpoints:
  GET    /users/me                   — Profile
  PUT    /users/me                   — Edit name, email, password, balance
  DELETE /users/me                   — Delete the account and its ledger
  PUT    /users/me/initial-balance   — Replace the starting balance
  GET    /users/me/balance           — Current balance
  GET    /users/me/balance/as-of     — Balance at the end of a date
  GET    /users/me/ledger/integrity  — Re-check every cumulative delta
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.database import get_db
from expense_tracker.dependencies import get_current_user
from expense_tracker.models.user import User
from expense_tracker.schemas.user import (
    BalanceAsOfResponse,
    BalanceResponse,
    DeleteUserResponse,
    InitialBalanceUpdateRequest,
    LedgerIntegrityResponse,
    ProfileDeleteRequest,
    ProfileUpdateRequest,
    UserResponse,
)
from expense_tracker.services import balance_service, user_service

router = APIRouter()


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get own profile",
)
async def get_me(user: User = Depends(get_current_user)):
    return user


@router.put(
    "/me",
    response_model=UserResponse,
    summary="Edit own profile",
)
async def update_me(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Replace name and email, optionally the password and starting balance.

    The current password is required; a wrong one gives 401 and changes
    nothing. An email used by another account gives 409.
    """
    return await user_service.update_profile(
        db=db,
        user_id=user.id,
        name=request.name,
        email=request.email,
        current_password=request.current_password,
        new_password=request.new_password,
        initial_balance_cents=request.initial_balance_cents,
    )


@router.delete(
    "/me",
    response_model=DeleteUserResponse,
    summary="Delete own account",
)
async def delete_me(
    request: ProfileDeleteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Permanently delete the account and every transaction in its ledger."""
    return await user_service.delete_user(db, user.id, request.current_password)


@router.put(
    "/me/initial-balance",
    response_model=UserResponse,
    summary="Set the starting balance",
)
async def set_initial_balance(
    request: InitialBalanceUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Replace the balance the ledger starts from.

    Every balance (current and historical) moves by the difference;
    cumulative deltas are relative to the starting balance and don't change.
    """
    return await user_service.set_initial_balance(
        db, user.id, request.initial_balance_cents
    )


@router.get(
    "/me/balance",
    response_model=BalanceResponse,
    summary="Get current balance",
)
async def get_balance(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Initial balance plus the cumulative delta of the latest entry."""
    return await balance_service.get_current_balance(db, user.id)


@router.get(
    "/me/balance/as-of",
    response_model=BalanceAsOfResponse,
    summary="Get balance at the end of a date",
)
async def get_balance_as_of(
    as_of: date = Query(..., alias="date", description="YYYY-MM-DD"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Initial balance plus the cumulative delta of the last entry dated on
    or before the given date.
    """
    return await balance_service.get_balance_as_of(db, user.id, as_of)


@router.get(
    "/me/ledger/integrity",
    response_model=LedgerIntegrityResponse,
    summary="Re-check the stored running balances",
)
async def get_ledger_integrity(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Walk the ledger and report any cumulative delta that doesn't equal its
    predecessor's plus its own signed amount. Read-only.
    """
    return await balance_service.check_ledger_integrity(db, user.id)
