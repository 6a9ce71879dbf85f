"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors without importing HTTP
concepts; the handlers registered here translate them into responses with
a consistent body: {"detail": "...", "error_type": "..."}.

Exception hierarchy:
    ExpenseTrackerError (base)
    ├── TransactionNotFoundError  — unknown transaction id (or not the caller's)
    ├── UserNotFoundError         — unknown user id
    ├── LedgerConflictError       — concurrent write to the same user's ledger
    ├── InvariantViolationError   — cumulative deltas failed the prefix-sum check
    ├── DuplicateEmailError       — signup with an email already in use
    └── InvalidCredentialsError   — wrong email or password

LedgerConflictError is retryable: the caller re-sends the same request.
InvariantViolationError is never retryable. It means the recalculation code
produced a wrong value; the write is rolled back by get_db and the request
fails with 500.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class ExpenseTrackerError(Exception):
    """Base exception for all Expense Tracker domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class TransactionNotFoundError(ExpenseTrackerError):
    """Raised when a transaction does not exist for the requesting user."""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class UserNotFoundError(ExpenseTrackerError):
    """Raised when a user does not exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class LedgerConflictError(ExpenseTrackerError):
    """
    Raised when another writer changed the same ledger first.

    Detected through the optimistic version counter on the user row.
    Nothing from the losing write is persisted.
    """

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(
            "The ledger was modified by another request. Please retry."
        )


class InvariantViolationError(ExpenseTrackerError):
    """
    Raised when a cumulative delta disagrees with its predecessor plus its
    own signed amount.

    Attributes:
        index: Position in the chronological ledger of the first bad row.
        transaction_id: The offending row's id (None if not yet assigned).
        expected_cents: predecessor's cumulative delta + signed amount.
        actual_cents: The value found on the row.
    """

    def __init__(
        self,
        index: int,
        transaction_id: int | None,
        expected_cents: int,
        actual_cents: int,
    ):
        self.index = index
        self.transaction_id = transaction_id
        self.expected_cents = expected_cents
        self.actual_cents = actual_cents
        super().__init__(
            f"Ledger invariant violated at position {index} "
            f"(transaction {transaction_id}): expected cumulative delta "
            f"{expected_cents}, found {actual_cents}"
        )


class DuplicateEmailError(ExpenseTrackerError):
    """Raised when attempting to register with an email that's already in use."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(ExpenseTrackerError):
    """Raised when login credentials are incorrect."""

    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps a domain exception to an HTTP status code and the
    shared JSON body. Called once during app startup in main.py.
    """

    @app.exception_handler(TransactionNotFoundError)
    async def transaction_not_found_handler(
        request: Request, exc: TransactionNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "transaction_not_found"},
        )

    @app.exception_handler(UserNotFoundError)
    async def user_not_found_handler(
        request: Request, exc: UserNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "user_not_found"},
        )

    @app.exception_handler(LedgerConflictError)
    async def ledger_conflict_handler(
        request: Request, exc: LedgerConflictError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": exc.detail, "error_type": "ledger_conflict"},
        )

    @app.exception_handler(InvariantViolationError)
    async def invariant_violation_handler(
        request: Request, exc: InvariantViolationError
    ) -> JSONResponse:
        # Internal detail stays in the logs; the client only learns the write failed
        return JSONResponse(
            status_code=500,
            content={
                "detail": "The ledger could not be updated consistently",
                "error_type": "invariant_violation",
            },
        )

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(
        request: Request, exc: DuplicateEmailError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": exc.detail, "error_type": "duplicate_email"},
        )

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": exc.detail, "error_type": "invalid_credentials"},
        )
