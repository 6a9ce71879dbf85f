"""
User model — the authentication identity and owner of one ledger.

Each User holds a login credential (email + Argon2 hash), the balance they
started tracking from, and a version counter that guards their ledger.

Balance model:
  The user's balance at any point is initial_balance_cents plus the
  cumulative delta stored on their chronologically-last transaction at or
  before that point. There is no separate balance table: the running sum
  lives on the transactions themselves.

Ledger version:
  ledger_version is SQLAlchemy's version_id_col for this mapper. Every
  ledger write touches the user row, so the UPDATE is issued as
  "... WHERE id = :id AND ledger_version = :seen". If another request
  committed a write in between, zero rows match, SQLAlchemy raises
  StaleDataError and the transaction service turns it into a
  LedgerConflictError. Two writers can therefore never both shift the
  same ledger from the same stale snapshot.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    # Email is the login identifier — unique and indexed for fast lookups
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password (never store plaintext!)
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Starting balance in cents; may be negative (e.g. an overdrawn account)
    initial_balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    ledger_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Last time any transaction of this user was created, changed or removed
    ledger_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": ledger_version}
