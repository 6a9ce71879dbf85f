"""
Chronological ordering of a user's transactions.

Order is (date, created_at, id), ascending:
  - date is the calendar day the user assigned to the entry
  - created_at breaks ties between entries on the same day
  - id breaks ties between entries created in the same instant

Every place that needs "chronological order" goes through ordering_key(),
so a running balance computed here always refers to the same sequence a
query reads back. Database ORDER BY clauses mirror it with
ORDERING_COLUMNS.
"""

import math
from datetime import date, datetime, timezone

from expense_tracker.models.transaction import Transaction


ORDERING_COLUMNS = (Transaction.date, Transaction.created_at, Transaction.id)


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they were written as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def ordering_key(txn: Transaction) -> tuple[date, datetime, float]:
    """
    Return the sort key for a transaction.

    A row without an id yet (not flushed) sorts after every saved row with
    the same date and timestamp.
    """
    tiebreak = txn.id if txn.id is not None else math.inf
    return (txn.date, _as_utc(txn.created_at), tiebreak)


def compare(a: Transaction, b: Transaction) -> int:
    """Three-way comparison: -1 if a comes first, 1 if b does, 0 if same key."""
    key_a, key_b = ordering_key(a), ordering_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_chronologically(transactions: list[Transaction]) -> list[Transaction]:
    """Sort a list in place by ordering_key and return it."""
    transactions.sort(key=ordering_key)
    return transactions
