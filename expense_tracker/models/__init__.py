"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from expense_tracker.models directly
"""

from expense_tracker.models.user import User  # noqa: F401
from expense_tracker.models.transaction import (  # noqa: F401
    PaymentMethod,
    Transaction,
    TransactionType,
)
