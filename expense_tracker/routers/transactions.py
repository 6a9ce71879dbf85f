"""
Transactions router — the authenticated user's ledger entries.

Endpoints (all scoped to the authenticated user):
  POST   /transactions                   — Record an expense or income
  GET    /transactions                   — List with filters and sorting
  GET    /transactions/ledger            — Whole ledger, oldest first
  GET    /transactions/net-chart-data    — Per-day totals and closing balance
  GET    /transactions/category-chart-data — Per-category totals
  POST   /transactions/batch-delete      — Delete several entries at once
  GET    /transactions/{transaction_id}  — Get a single entry
  PATCH  /transactions/{transaction_id}  — Edit an entry
  DELETE /transactions/{transaction_id}  — Delete an entry

Static paths are declared before /{transaction_id} so they aren't parsed
as an id.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.config import settings
from expense_tracker.database import get_db
from expense_tracker.dependencies import get_current_user
from expense_tracker.models.transaction import PaymentMethod, TransactionType
from expense_tracker.models.user import User
from expense_tracker.schemas.transaction import (
    BatchDeleteRequest,
    BatchDeleteResponse,
    CategoryChartPoint,
    NetChartPoint,
    SortField,
    TransactionCreateRequest,
    TransactionResponse,
    TransactionUpdateRequest,
)
from expense_tracker.services import balance_service, transaction_service

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an expense or income",
)
async def create_transaction(
    request: TransactionCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Add an entry to the ledger on any date, past or future.

    The response carries the entry's cumulative delta: the sum of all
    signed amounts up to and including it in chronological order. Entries
    dated later have their cumulative deltas shifted by this amount.
    """
    return await transaction_service.create_transaction(
        db=db,
        user_id=user.id,
        txn_type=request.type,
        amount_cents=request.amount_cents,
        txn_date=request.date,
        subject=request.subject,
        notes=request.notes,
        payment_method=request.payment_method,
        category_id=request.category_id,
        transaction_group_id=request.transaction_group_id,
    )


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List transactions",
)
async def list_transactions(
    subject: str | None = Query(None, description="Case-insensitive substring of the subject"),
    type: TransactionType | None = Query(None, description="EXPENSE or INCOME"),
    payment_method: list[PaymentMethod] | None = Query(None),
    category_id: list[int] | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    sort_by: SortField = Query("date"),
    sort_descending: bool = Query(True),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the user's transactions, newest date first by default."""
    if date_from and date_to and date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="date_from must not be after date_to",
        )
    return await transaction_service.list_transactions(
        db=db,
        user_id=user.id,
        subject=subject,
        type_filter=type,
        payment_methods=payment_method,
        category_ids=category_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        descending=sort_descending,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/ledger",
    response_model=list[TransactionResponse],
    summary="Whole ledger in chronological order",
)
async def get_ledger(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every entry, oldest first, each with its cumulative delta."""
    return await transaction_service.get_ordered_for_user(db, user.id)


@router.get(
    "/net-chart-data",
    response_model=list[NetChartPoint],
    summary="Daily income, expenses and closing balance",
)
async def get_net_chart_data(
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """One point per date with entries, oldest first."""
    return await balance_service.get_net_chart_data(
        db=db,
        user_id=user.id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get(
    "/category-chart-data",
    response_model=list[CategoryChartPoint],
    summary="Income and expenses per category",
)
async def get_category_chart_data(
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """One point per category used in the range, biggest spend first."""
    if date_from and date_to and date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="date_from must not be after date_to",
        )
    return await balance_service.get_category_chart_data(
        db=db,
        user_id=user.id,
        date_from=date_from,
        date_to=date_to,
    )


@router.post(
    "/batch-delete",
    response_model=BatchDeleteResponse,
    summary="Delete several transactions",
)
async def batch_delete_transactions(
    request: BatchDeleteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete all listed transactions, or none of them if any id is unknown.
    """
    if len(request.ids) > settings.MAX_BATCH_DELETE:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"At most {settings.MAX_BATCH_DELETE} transactions can be deleted at once",
        )
    deleted = await transaction_service.delete_transactions(db, user.id, request.ids)
    return BatchDeleteResponse(deleted=deleted)


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get details for a specific transaction."""
    return await transaction_service.get_transaction(db, user.id, transaction_id)


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Edit a transaction",
)
async def update_transaction(
    transaction_id: int,
    request: TransactionUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Change any subset of the entry's fields.

    Changing the amount, type or date updates the cumulative deltas of
    this entry and of every entry after it.
    """
    return await transaction_service.update_transaction(
        db=db,
        user_id=user.id,
        transaction_id=transaction_id,
        changes=request.changes(),
    )


@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a transaction",
)
async def delete_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remove the entry; later cumulative deltas no longer include it."""
    await transaction_service.delete_transaction(db, user.id, transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
