"""
Recalculation engine — keeps cumulative deltas correct under edits.

A ledger is a Python list of a single user's transactions sorted by
ordering_key(). Each row carries cumulative_delta_cents, the prefix sum of
signed amounts up to and including that row:

    ledger[0].cumulative_delta_cents == ledger[0].signed_amount_cents
    ledger[i].cumulative_delta_cents == ledger[i - 1].cumulative_delta_cents
                                        + ledger[i].signed_amount_cents

Inserting, changing or removing one term shifts every later prefix sum by
the same amount, so each operation below only touches the rows from the
changed position to the end of the list. Rows before that position are
never read or written, and nothing is recomputed from scratch.

The functions mutate the ORM objects in place and return positions; the
transaction service decides what to persist. None of them do I/O.
"""

import bisect
import logging
from dataclasses import dataclass

from expense_tracker.exceptions import InvariantViolationError
from expense_tracker.ledger.ordering import ordering_key
from expense_tracker.models.transaction import Transaction


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Violation:
    """One row whose cumulative delta does not follow from its predecessor."""
    index: int
    transaction_id: int | None
    expected_cents: int
    actual_cents: int


def _shift(ledger: list[Transaction], start: int, amount_cents: int) -> int:
    """Add amount_cents to every row from start to the end. Returns rows touched."""
    if amount_cents == 0:
        return 0
    for i in range(start, len(ledger)):
        ledger[i].cumulative_delta_cents += amount_cents
    return len(ledger) - start


def insertion_point(ledger: list[Transaction], txn: Transaction) -> int:
    """Index at which txn belongs in the chronologically sorted ledger."""
    return bisect.bisect_left(ledger, ordering_key(txn), key=ordering_key)


def insert(ledger: list[Transaction], txn: Transaction) -> int:
    """
    Place a new entry into the ledger and fix every prefix sum after it.

    The new row's cumulative delta is its predecessor's plus its own signed
    amount (just its signed amount when it becomes the first row). Every
    row after it moves up by the same signed amount.

    Returns:
        The position the entry now occupies.
    """
    position = insertion_point(ledger, txn)
    previous = ledger[position - 1].cumulative_delta_cents if position > 0 else 0
    txn.cumulative_delta_cents = previous + txn.signed_amount_cents

    shifted = _shift(ledger, position, txn.signed_amount_cents)
    ledger.insert(position, txn)

    logger.debug(
        "Inserted transaction %s at position %d, shifted %d later rows by %d",
        txn.id, position, shifted, txn.signed_amount_cents,
    )
    return position


def remove(
    ledger: list[Transaction],
    position: int,
    signed_amount_cents: int | None = None,
) -> Transaction:
    """
    Take the entry at position out of the ledger and fix the rows after it.

    Args:
        ledger: The user's ordered ledger.
        position: Index of the entry to remove.
        signed_amount_cents: The term to subtract from later rows. Defaults
            to the entry's current signed amount; an update passes the
            amount the entry had before it was edited.

    Returns:
        The removed transaction.
    """
    txn = ledger.pop(position)
    term = txn.signed_amount_cents if signed_amount_cents is None else signed_amount_cents
    shifted = _shift(ledger, position, -term)

    logger.debug(
        "Removed transaction %s from position %d, shifted %d later rows by %d",
        txn.id, position, shifted, -term,
    )
    return txn


def reposition(
    ledger: list[Transaction],
    position: int,
    old_signed_amount_cents: int,
) -> int:
    """
    Restore the prefix sums after the entry at position was edited.

    Call this after assigning the new field values. Two cases:

      - The entry still sorts between its neighbours: only its own term
        changed, so it and everything after it move by
        (new signed amount - old signed amount).
      - The entry moved past at least one neighbour: remove it with its
        old signed amount, then insert it again as a new entry. The insert
        has to see the ledger with the old term already taken out, which
        is why this is done as two steps and not one combined shift.

    Returns:
        The entry's position after the update.
    """
    txn = ledger[position]
    key = ordering_key(txn)
    fits_before = position == 0 or ordering_key(ledger[position - 1]) < key
    fits_after = position == len(ledger) - 1 or key < ordering_key(ledger[position + 1])

    if fits_before and fits_after:
        delta = txn.signed_amount_cents - old_signed_amount_cents
        shifted = _shift(ledger, position, delta)
        logger.debug(
            "Updated transaction %s in place at position %d, shifted %d rows by %d",
            txn.id, position, shifted, delta,
        )
        return position

    remove(ledger, position, old_signed_amount_cents)
    return insert(ledger, txn)


def find_violations(ledger: list[Transaction], start: int = 0) -> list[Violation]:
    """
    Check the prefix-sum law for every row from start to the end.

    Read-only: nothing on the rows is changed, so calling it repeatedly
    gives the same answer.
    """
    violations: list[Violation] = []
    for i in range(max(start, 0), len(ledger)):
        previous = ledger[i - 1].cumulative_delta_cents if i > 0 else 0
        expected = previous + ledger[i].signed_amount_cents
        actual = ledger[i].cumulative_delta_cents
        if actual != expected:
            violations.append(
                Violation(
                    index=i,
                    transaction_id=ledger[i].id,
                    expected_cents=expected,
                    actual_cents=actual,
                )
            )
    return violations


def verify(ledger: list[Transaction], start: int = 0) -> None:
    """
    Raise on the first row (from start on) that breaks the prefix-sum law.

    Raises:
        InvariantViolationError: Describing the first bad row.
    """
    violations = find_violations(ledger, start)
    if violations:
        first = violations[0]
        logger.error(
            "Ledger invariant violated at position %d (transaction %s): "
            "expected %d, found %d; %d bad rows in total",
            first.index, first.transaction_id, first.expected_cents,
            first.actual_cents, len(violations),
        )
        raise InvariantViolationError(
            index=first.index,
            transaction_id=first.transaction_id,
            expected_cents=first.expected_cents,
            actual_cents=first.actual_cents,
        )
