"""
Transaction model — one expense or income entry in a user's ledger.

Key fields:
  - type: EXPENSE or INCOME — the direction of money flow
  - amount_cents: The magnitude, never negative (direction is the type)
  - signed_amount_cents: Derived from type + amount; negative for expenses
  - date: Calendar date of the entry, the primary chronological key
  - created_at: Row creation time, orders entries that share a date
  - cumulative_delta_cents: Running sum of signed amounts up to and
    including this row, in chronological order

Chronological order:
  A user's ledger is ordered by (date, created_at, id); see
  expense_tracker.ledger.ordering. The composite index below makes
  "last entry on or before a date" a single index seek.

Why signed_amount_cents is stored:
  The running sum needs the signed value on every shift; storing it avoids
  re-deriving the sign from the type for every row of a suffix. It is
  re-derived automatically whenever type or amount_cents is assigned, so it
  can never drift from the pair it comes from.

Everything else (subject, notes, payment method, category, group) is
descriptive payload. Changing it never touches cumulative deltas.
"""

import enum
import datetime as dt

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from expense_tracker.database import Base


class TransactionType(str, enum.Enum):
    """Direction of a transaction. Inherits from str so it serializes as JSON."""
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class PaymentMethod(str, enum.Enum):
    """How a transaction was paid or received."""
    CASH = "CASH"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_PAYMENT = "MOBILE_PAYMENT"
    PAYPAL = "PAYPAL"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


def signed_amount(txn_type: TransactionType, amount_cents: int) -> int:
    """Apply the type's sign to a magnitude: income adds, expense subtracts."""
    return -amount_cents if txn_type == TransactionType.EXPENSE else amount_cents


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        # Zero is tolerated here; the API layer requires a positive amount
        CheckConstraint("amount_cents >= 0", name="ck_transactions_non_negative_amount"),
        Index("ix_transactions_user_ordering", "user_id", "date", "created_at", "id"),
    )

    # Integer ids are assigned in insert order, which makes them a usable
    # last-resort tie-break when two entries share date and created_at.
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType),
        nullable=False,
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    signed_amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    date: Mapped[dt.date] = mapped_column(
        Date,
        nullable=False,
    )

    cumulative_delta_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    subject: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod),
        nullable=False,
        default=PaymentMethod.OTHER,
    )

    # Category and group management live outside this service; the ids are
    # stored as given and only used for filtering.
    category_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    transaction_group_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: dt.datetime.now(dt.timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: dt.datetime.now(dt.timezone.utc),
        onupdate=lambda: dt.datetime.now(dt.timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="transactions",
    )

    @validates("type", "amount_cents")
    def _rederive_signed_amount(self, key, value):
        txn_type = value if key == "type" else self.type
        amount_cents = value if key == "amount_cents" else self.amount_cents
        if txn_type is not None and amount_cents is not None:
            self.signed_amount_cents = signed_amount(txn_type, amount_cents)
        return value

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} date={self.date} "
            f"signed={self.signed_amount_cents} cumulative={self.cumulative_delta_cents}>"
        )
