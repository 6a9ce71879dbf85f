"""
Authentication service — signup and login business logic.

The router calls these functions and translates the results into HTTP
responses, so the logic can be tested without spinning up a web server.

Signup flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create the User with its starting balance (empty ledger)
  4. Return a JWT token so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Return a JWT token

Login returns the same error for "wrong password" and "email not found"
to prevent user enumeration.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import DuplicateEmailError, InvalidCredentialsError
from expense_tracker.models.user import User
from expense_tracker.security import hash_password, verify_password, create_access_token


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    name: str,
    initial_balance_cents: int = 0,
) -> tuple[User, str]:
    """
    Register a new user.

    Args:
        db: Database session.
        email: User's email (must be unique).
        password: Plaintext password (hashed before storage).
        name: Display name.
        initial_balance_cents: Balance before the first transaction.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        name=name.strip(),
        hashed_password=hash_password(password),
        initial_balance_cents=initial_balance_cents,
    )
    db.add(user)
    # Flush to get user.id assigned for the token subject
    await db.flush()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for both cases — prevents user enumeration
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
