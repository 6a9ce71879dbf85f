"""
Balance service — reading balances off the materialized running sum.

Balance model:
    balance at the end of a ledger     = initial balance + last cumulative delta
    balance at the end of a given date = initial balance + cumulative delta
                                         of the last entry on or before it

Both are a single indexed read (ix_transactions_user_ordering) of the
chronologically-last matching row; no transaction amounts are summed.

Everything in this module is read-only. If a value looks wrong, that is a
bug in the write path (transaction_service / ledger.engine). The integrity
report below exists to surface it, never to repair it on read.
"""

from collections import OrderedDict
from datetime import date

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import UserNotFoundError
from expense_tracker.ledger import engine, store
from expense_tracker.ledger.ordering import ORDERING_COLUMNS
from expense_tracker.models.transaction import Transaction, TransactionType
from expense_tracker.models.user import User


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def _last_cumulative_delta(
    db: AsyncSession,
    user_id: int,
    as_of: date | None = None,
) -> int:
    """Cumulative delta of the last entry (on or before as_of), 0 if none."""
    query = select(Transaction.cumulative_delta_cents).where(Transaction.user_id == user_id)
    if as_of is not None:
        query = query.where(Transaction.date <= as_of)
    query = query.order_by(*(col.desc() for col in ORDERING_COLUMNS)).limit(1)

    result = await db.execute(query)
    value = result.scalar_one_or_none()
    return value if value is not None else 0


async def get_current_balance(db: AsyncSession, user_id: int) -> dict:
    """
    Current balance: initial balance plus the last entry's cumulative delta.

    Returns:
        Dict with user_id, initial_balance_cents, cumulative_delta_cents,
        current_balance_cents.
    """
    user = await _get_user(db, user_id)
    cumulative = await _last_cumulative_delta(db, user_id)
    return {
        "user_id": user.id,
        "initial_balance_cents": user.initial_balance_cents,
        "cumulative_delta_cents": cumulative,
        "current_balance_cents": user.initial_balance_cents + cumulative,
    }


async def get_balance_as_of(db: AsyncSession, user_id: int, as_of: date) -> dict:
    """
    Balance at the end of a calendar date.

    Entries dated after as_of are ignored; with no entry on or before it
    the balance is the initial balance.

    Returns:
        Dict with user_id, as_of, initial_balance_cents,
        cumulative_delta_cents, balance_cents.
    """
    user = await _get_user(db, user_id)
    cumulative = await _last_cumulative_delta(db, user_id, as_of)
    return {
        "user_id": user.id,
        "as_of": as_of,
        "initial_balance_cents": user.initial_balance_cents,
        "cumulative_delta_cents": cumulative,
        "balance_cents": user.initial_balance_cents + cumulative,
    }


async def check_ledger_integrity(db: AsyncSession, user_id: int) -> dict:
    """
    Re-check the stored cumulative deltas of a whole ledger.

    This is the counterpart of the incremental verification done on every
    write: it walks the full ledger and reports rows whose cumulative delta
    isn't their predecessor's plus their own signed amount. It performs no
    writes, so repeated calls return the same report.

    Returns:
        Dict with user_id, transaction_count, consistent, violations.
    """
    await _get_user(db, user_id)
    ledger = await store.load_ordered_for_user(db, user_id)
    violations = engine.find_violations(ledger)
    return {
        "user_id": user_id,
        "transaction_count": len(ledger),
        "consistent": not violations,
        "violations": [
            {
                "index": v.index,
                "transaction_id": v.transaction_id,
                "expected_cents": v.expected_cents,
                "actual_cents": v.actual_cents,
            }
            for v in violations
        ],
    }


async def get_net_chart_data(
    db: AsyncSession,
    user_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[dict]:
    """
    Per-day totals for charting income, expenses and balance over time.

    Each point covers one date that has entries:
      - income_cents / expense_cents: sums of magnitudes for that day
      - net_cents: income minus expenses
      - closing_balance_cents: initial balance + the cumulative delta of the
        day's last entry, i.e. the balance at the end of that day

    Returns:
        List of point dicts, oldest date first, each with its transactions.
    """
    user = await _get_user(db, user_id)

    query = select(Transaction).where(Transaction.user_id == user_id)
    if date_from:
        query = query.where(Transaction.date >= date_from)
    if date_to:
        query = query.where(Transaction.date <= date_to)
    result = await db.execute(query.order_by(*ORDERING_COLUMNS))

    days: OrderedDict[date, list[Transaction]] = OrderedDict()
    for txn in result.scalars().all():
        days.setdefault(txn.date, []).append(txn)

    points = []
    for day, entries in days.items():
        income = sum(t.amount_cents for t in entries if t.type == TransactionType.INCOME)
        expenses = sum(t.amount_cents for t in entries if t.type == TransactionType.EXPENSE)
        points.append({
            "date": day,
            "income_cents": income,
            "expense_cents": expenses,
            "net_cents": income - expenses,
            "closing_balance_cents": user.initial_balance_cents + entries[-1].cumulative_delta_cents,
            "transactions": entries,
        })
    return points


async def get_category_chart_data(
    db: AsyncSession,
    user_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[dict]:
    """
    Per-category totals for charting where the money went.

    The sums are computed by the database (GROUP BY category_id); the
    entries of each category are attached in chronological order.
    Uncategorized entries form one point with category_id None.

    Returns:
        List of point dicts, largest net_expenses_cents first, with
        category_id as the tie-break and the uncategorized point last.
    """
    await _get_user(db, user_id)

    filters = [Transaction.user_id == user_id]
    if date_from:
        filters.append(Transaction.date >= date_from)
    if date_to:
        filters.append(Transaction.date <= date_to)

    totals = await db.execute(
        select(
            Transaction.category_id,
            func.sum(
                case((Transaction.type == TransactionType.EXPENSE, Transaction.amount_cents), else_=0)
            ).label("expense_cents"),
            func.sum(
                case((Transaction.type == TransactionType.INCOME, Transaction.amount_cents), else_=0)
            ).label("income_cents"),
            func.count(Transaction.id).label("transaction_count"),
        )
        .where(*filters)
        .group_by(Transaction.category_id)
    )

    result = await db.execute(
        select(Transaction).where(*filters).order_by(*ORDERING_COLUMNS)
    )
    entries: dict[int | None, list[Transaction]] = {}
    for txn in result.scalars().all():
        entries.setdefault(txn.category_id, []).append(txn)

    points = []
    for row in totals.all():
        expenses = int(row.expense_cents or 0)
        income = int(row.income_cents or 0)
        points.append({
            "category_id": row.category_id,
            "expense_cents": expenses,
            "income_cents": income,
            "net_expenses_cents": expenses - income,
            "transaction_count": row.transaction_count,
            "transactions": entries.get(row.category_id, []),
        })

    points.sort(key=lambda p: (
        -p["net_expenses_cents"],
        p["category_id"] is None,
        p["category_id"] or 0,
    ))
    return points
