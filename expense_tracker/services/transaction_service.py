"""
Transaction service — creating, editing and removing ledger entries.

THIS IS THE FILE THAT KEEPS BALANCES CORRECT. Every write follows the same
sequence inside the request's database transaction:

  1. Lock the owner's user row (SELECT ... FOR UPDATE)
  2. Load the owner's whole ledger in chronological order
  3. Apply the change with the recalculation engine (in memory)
  4. Verify the prefix-sum law over the rows the change touched
  5. Touch the user row (bumps its version counter) and flush

Atomicity:
  Nothing is committed here; the caller owns the commit. A failed write
  (verification error, lost race, unknown id) rolls the session back
  before the exception leaves this module, so a caller that commits
  anyway still finds the ledger as it was.

Concurrency:
  Two writers on the same ledger are serialised by the row lock on
  PostgreSQL. Where the lock is unavailable (SQLite), or if a writer read
  its snapshot before the other committed, the version counter on the user
  row makes the second flush fail; that is reported as LedgerConflictError
  and the caller retries. Writers on different users share no rows.

Ownership:
  A transaction that belongs to another user is reported exactly like one
  that doesn't exist, so one user can't learn which ids exist in another
  user's ledger.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from expense_tracker.config import settings
from expense_tracker.exceptions import LedgerConflictError, TransactionNotFoundError
from expense_tracker.ledger import engine, store
from expense_tracker.models.transaction import PaymentMethod, Transaction, TransactionType


logger = logging.getLogger(__name__)

# Fields a caller may change on an existing transaction. user_id, created_at
# and the derived amounts are never set by callers.
UPDATABLE_FIELDS = frozenset({
    "type",
    "amount_cents",
    "date",
    "subject",
    "notes",
    "payment_method",
    "category_id",
    "transaction_group_id",
})

SORT_COLUMNS = {
    "subject": Transaction.subject,
    "amount": Transaction.signed_amount_cents,
    "payment_method": Transaction.payment_method,
    "category": Transaction.category_id,
}


def _clean_notes(notes: str | None) -> str | None:
    if notes is None or not notes.strip():
        return None
    return notes.strip()


@asynccontextmanager
async def _ledger_write(db: AsyncSession, user_id: int):
    """
    Lock and load a user's ledger, then persist whatever the body changed.

    Yields the ordered ledger list. The body mutates it through the engine
    and must verify the range it touched before returning.

    Any exception rolls the session back before it propagates, so a
    provisional row or a half-applied shift can't be committed later by
    whoever owns the session. Objects loaded in the session are expired by
    the rollback; callers keep ids, not instances, across a failed write.
    """
    try:
        user = await store.lock_user(db, user_id)
        ledger = await store.load_ordered_for_user(db, user_id)

        yield ledger

        user.ledger_updated_at = datetime.now(timezone.utc)
        try:
            await store.save_batch(db, ledger)
        except StaleDataError as exc:
            logger.warning("Concurrent ledger write detected for user %s", user_id)
            raise LedgerConflictError(user_id) from exc
    except Exception:
        await db.rollback()
        raise


def _verify(ledger: list[Transaction], start: int) -> None:
    if settings.LEDGER_VERIFY_ON_WRITE:
        engine.verify(ledger, start)


def _find(ledger: list[Transaction], transaction_id: int) -> int:
    """Position of a transaction in an already-loaded ledger."""
    for position, txn in enumerate(ledger):
        if txn.id == transaction_id:
            return position
    raise TransactionNotFoundError(transaction_id)


async def create_transaction(
    db: AsyncSession,
    user_id: int,
    txn_type: TransactionType,
    amount_cents: int,
    txn_date: date,
    subject: str,
    notes: str | None = None,
    payment_method: PaymentMethod = PaymentMethod.OTHER,
    category_id: int | None = None,
    transaction_group_id: int | None = None,
) -> Transaction:
    """
    Record a new expense or income entry.

    The row is first flushed with a provisional cumulative delta of 0 so
    the database assigns its id and created_at (both part of the ordering
    key). The engine then places it and overwrites the provisional value
    before anything is committed.

    Args:
        db: Database session.
        user_id: Owner of the ledger.
        txn_type: EXPENSE or INCOME.
        amount_cents: Magnitude in integer cents.
        txn_date: Calendar date of the entry.
        subject: Short description.
        notes: Optional longer description.
        payment_method: How it was paid.
        category_id: Optional category reference.
        transaction_group_id: Optional group reference.

    Returns:
        The created Transaction with its final cumulative delta.

    Raises:
        UserNotFoundError: If the user doesn't exist.
        LedgerConflictError: If another write to this ledger won the race.
        InvariantViolationError: If the recalculated deltas are inconsistent.
    """
    async with _ledger_write(db, user_id) as ledger:
        txn = Transaction(
            user_id=user_id,
            type=txn_type,
            amount_cents=amount_cents,
            date=txn_date,
            subject=subject.strip(),
            notes=_clean_notes(notes),
            payment_method=payment_method,
            category_id=category_id,
            transaction_group_id=transaction_group_id,
            cumulative_delta_cents=0,
        )
        db.add(txn)
        await db.flush()

        position = engine.insert(ledger, txn)
        _verify(ledger, position)

    logger.info(
        "Created transaction %s for user %s (%s %d cents on %s)",
        txn.id, user_id, txn.type.value, txn.amount_cents, txn.date,
    )
    return txn


async def update_transaction(
    db: AsyncSession,
    user_id: int,
    transaction_id: int,
    changes: dict,
) -> Transaction:
    """
    Apply a partial update to a transaction.

    Payload-only changes (subject, notes, ...) leave every cumulative delta
    as it was. A changed amount or type shifts this row and the rows after
    it; a changed date that crosses other rows removes the entry and
    re-inserts it at its new position.

    Args:
        db: Database session.
        user_id: Owner of the ledger.
        transaction_id: The transaction to edit.
        changes: Field name -> new value, restricted to UPDATABLE_FIELDS.

    Returns:
        The updated Transaction.

    Raises:
        TransactionNotFoundError: If the id is unknown for this user.
        ValueError: If changes names a field that can't be edited.
        LedgerConflictError: If another write to this ledger won the race.
        InvariantViolationError: If the recalculated deltas are inconsistent.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    async with _ledger_write(db, user_id) as ledger:
        position = _find(ledger, transaction_id)
        txn = ledger[position]
        old_signed = txn.signed_amount_cents

        for field, value in changes.items():
            if field == "subject":
                value = value.strip()
            elif field == "notes":
                value = _clean_notes(value)
            setattr(txn, field, value)

        new_position = engine.reposition(ledger, position, old_signed)
        _verify(ledger, min(position, new_position))

    logger.info(
        "Updated transaction %s for user %s (position %d -> %d)",
        transaction_id, user_id, position, new_position,
    )
    return txn


async def delete_transaction(
    db: AsyncSession,
    user_id: int,
    transaction_id: int,
) -> None:
    """
    Remove a transaction; every later cumulative delta loses its term.

    Raises:
        TransactionNotFoundError: If the id is unknown for this user.
        LedgerConflictError: If another write to this ledger won the race.
    """
    async with _ledger_write(db, user_id) as ledger:
        position = _find(ledger, transaction_id)
        txn = engine.remove(ledger, position)
        await store.delete_row(db, txn)
        _verify(ledger, position)

    logger.info("Deleted transaction %s for user %s", transaction_id, user_id)


async def delete_transactions(
    db: AsyncSession,
    user_id: int,
    transaction_ids: list[int],
) -> int:
    """
    Remove several transactions in one unit of work.

    All ids are resolved before anything is removed, so an unknown id
    leaves the ledger untouched. Entries are removed from the latest
    position backwards; that way removing one never moves the index of
    another still waiting to be removed.

    Returns:
        The number of transactions deleted.

    Raises:
        TransactionNotFoundError: For the first id that is unknown.
    """
    unique_ids = list(dict.fromkeys(transaction_ids))

    async with _ledger_write(db, user_id) as ledger:
        positions = sorted((_find(ledger, tid) for tid in unique_ids), reverse=True)
        for position in positions:
            txn = engine.remove(ledger, position)
            await store.delete_row(db, txn)
        if positions:
            _verify(ledger, positions[-1])

    logger.info("Deleted %d transactions for user %s", len(unique_ids), user_id)
    return len(unique_ids)


async def get_transaction(
    db: AsyncSession,
    user_id: int,
    transaction_id: int,
) -> Transaction:
    """
    Get a single transaction owned by the user.

    Raises:
        TransactionNotFoundError: If the id is unknown for this user.
    """
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .where(Transaction.user_id == user_id)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    return txn


async def get_ordered_for_user(db: AsyncSession, user_id: int) -> list[Transaction]:
    """The user's whole ledger, oldest first, with cumulative deltas."""
    return await store.load_ordered_for_user(db, user_id)


async def list_transactions(
    db: AsyncSession,
    user_id: int,
    subject: str | None = None,
    type_filter: TransactionType | None = None,
    payment_methods: list[PaymentMethod] | None = None,
    category_ids: list[int] | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    sort_by: str = "date",
    descending: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """
    List a user's transactions with optional filters.

    Results are always grouped by date first; sort_by picks the order
    within a date ("date" keeps creation order). created_at is the last
    tie-break, so entries on one date keep a stable order across pages.

    Args:
        db: Database session.
        user_id: Owner of the ledger.
        subject: Case-insensitive substring match on the subject.
        type_filter: Only EXPENSE or only INCOME.
        payment_methods: Keep only these payment methods.
        category_ids: Keep only these categories.
        date_from: Inclusive lower date bound.
        date_to: Inclusive upper date bound.
        sort_by: "date", "subject", "amount", "payment_method" or "category".
        descending: Newest (or largest) first when True.
        limit: Max number of results.
        offset: Number of results to skip.
    """
    query = select(Transaction).where(Transaction.user_id == user_id)

    if subject and subject.strip():
        pattern = f"%{subject.strip().lower()}%"
        query = query.where(func.lower(Transaction.subject).like(pattern))
    if type_filter:
        query = query.where(Transaction.type == type_filter)
    if payment_methods:
        query = query.where(Transaction.payment_method.in_(payment_methods))
    if category_ids:
        query = query.where(Transaction.category_id.in_(category_ids))
    if date_from:
        query = query.where(Transaction.date >= date_from)
    if date_to:
        query = query.where(Transaction.date <= date_to)

    columns = [Transaction.date]
    if sort_by in SORT_COLUMNS:
        columns.append(SORT_COLUMNS[sort_by])
    columns.extend([Transaction.created_at, Transaction.id])

    order = [col.desc() if descending else col.asc() for col in columns]
    query = query.order_by(*order).limit(limit).offset(offset)

    result = await db.execute(query)
    return list(result.scalars().all())
