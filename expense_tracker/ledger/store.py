"""
Ledger store — thin persistence adapter between the engine and the database.

Loading:
  A user's ledger is read in full and sorted with ordering_key(). The
  database ORDER BY uses the same columns, so the Python sort is a linear
  pass over already-sorted input, but ordering_key() stays the single
  authority on what "chronological" means.

Locking:
  lock_user() reads the user row with SELECT ... FOR UPDATE. On PostgreSQL
  this queues concurrent writers to the same ledger behind each other while
  leaving other users untouched. SQLite ignores FOR UPDATE; there the
  version counter on the user row (see models/user.py) catches the race at
  flush time instead.

Both loads use populate_existing so a long-lived session never computes
shifts from values it cached before another writer committed.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import UserNotFoundError
from expense_tracker.ledger.ordering import ORDERING_COLUMNS, sort_chronologically
from expense_tracker.models.transaction import Transaction
from expense_tracker.models.user import User


async def lock_user(db: AsyncSession, user_id: int) -> User:
    """
    Load and lock the owner of a ledger.

    Raises:
        UserNotFoundError: If the user doesn't exist.
    """
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()  # No-op on SQLite, locks row on PostgreSQL
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def load_ordered_for_user(db: AsyncSession, user_id: int) -> list[Transaction]:
    """Return every transaction of a user in chronological order."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(*ORDERING_COLUMNS)
        .execution_options(populate_existing=True)
    )
    return sort_chronologically(list(result.scalars().all()))


async def save_batch(db: AsyncSession, rows: list) -> None:
    """
    Persist new and changed rows in one flush.

    Only rows whose attributes actually changed produce an UPDATE, so a
    shift over k rows costs k writes no matter how long the ledger is.
    """
    db.add_all(rows)
    await db.flush()


async def delete_row(db: AsyncSession, txn: Transaction) -> None:
    """Mark a transaction for deletion; it is removed on the next flush."""
    await db.delete(txn)
