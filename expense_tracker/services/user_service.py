"""
User service — profile reads, profile edits, account deletion and the
starting balance.

Changing the initial balance moves every historical balance by the same
amount but leaves every cumulative delta as it is: deltas are relative to
the starting point, so no transaction row is written.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from expense_tracker.exceptions import (
    DuplicateEmailError,
    InvalidCredentialsError,
    LedgerConflictError,
    UserNotFoundError,
)
from expense_tracker.ledger import store
from expense_tracker.models.transaction import Transaction
from expense_tracker.models.user import User
from expense_tracker.security import hash_password, verify_password


logger = logging.getLogger(__name__)


async def _flush_user(db: AsyncSession, user_id: int) -> None:
    try:
        await db.flush()
    except StaleDataError as exc:
        logger.warning("Concurrent write detected while updating user %s", user_id)
        raise LedgerConflictError(user_id) from exc


def _check_password(user: User, current_password: str) -> None:
    if not verify_password(current_password, user.hashed_password):
        logger.warning("Wrong current password for user %s", user.id)
        raise InvalidCredentialsError("Current password is incorrect")


async def get_user(db: AsyncSession, user_id: int) -> User:
    """
    Get a user by id.

    Raises:
        UserNotFoundError: If the user doesn't exist.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def set_initial_balance(
    db: AsyncSession,
    user_id: int,
    initial_balance_cents: int,
) -> User:
    """
    Replace the user's starting balance.

    The user row carries the ledger version counter, so this write is
    checked against concurrent ledger writes like any other.

    Raises:
        UserNotFoundError: If the user doesn't exist.
        LedgerConflictError: If the user row changed since it was read.
    """
    user = await get_user(db, user_id)
    user.initial_balance_cents = initial_balance_cents
    await _flush_user(db, user_id)

    logger.info("Set initial balance of user %s to %d cents", user_id, initial_balance_cents)
    return user


async def update_profile(
    db: AsyncSession,
    user_id: int,
    name: str,
    email: str,
    current_password: str,
    new_password: str | None = None,
    initial_balance_cents: int | None = None,
) -> User:
    """
    Replace the user's name and email, and optionally password and
    starting balance.

    The current password is required for every change. Leaving
    new_password or initial_balance_cents as None keeps the stored value.

    Raises:
        UserNotFoundError: If the user doesn't exist.
        InvalidCredentialsError: If current_password is wrong.
        DuplicateEmailError: If another user already has the email.
        LedgerConflictError: If the user row changed since it was read.
    """
    user = await get_user(db, user_id)
    _check_password(user, current_password)

    if email != user.email:
        result = await db.execute(
            select(User.id).where(User.email == email).where(User.id != user_id)
        )
        if result.scalar_one_or_none() is not None:
            raise DuplicateEmailError(email)

    user.name = name.strip()
    user.email = email
    if new_password is not None:
        user.hashed_password = hash_password(new_password)
    if initial_balance_cents is not None:
        user.initial_balance_cents = initial_balance_cents

    await _flush_user(db, user_id)
    logger.info("Updated profile of user %s", user_id)
    return user


async def delete_user(db: AsyncSession, user_id: int, current_password: str) -> dict:
    """
    Permanently delete a user and their whole ledger.

    The user row is locked first, so a ledger write that is still running
    for this user either finishes before the delete or fails with a
    conflict. Transactions are removed with one bulk DELETE; SQLite does
    not apply the foreign key cascade on its own.

    Returns:
        Dict with the deleted user's id, name and email, and a message.

    Raises:
        UserNotFoundError: If the user doesn't exist.
        InvalidCredentialsError: If current_password is wrong.
        LedgerConflictError: If the user row changed since it was read.
    """
    user = await store.lock_user(db, user_id)
    _check_password(user, current_password)
    summary = {"id": user.id, "name": user.name, "email": user.email}

    result = await db.execute(delete(Transaction).where(Transaction.user_id == user_id))
    await db.delete(user)
    await _flush_user(db, user_id)

    logger.info("Deleted user %s and %d transactions", user_id, result.rowcount)
    return {**summary, "message": "Account and all transactions deleted"}
