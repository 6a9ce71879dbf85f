#!/usr/bin/env python3
"""
Demo seed script — populates the database with sample ledgers for demos.

!! NOT FOR PRODUCTION !!
This script creates test users with known passwords and fake expense and
income history. It is intended ONLY for local demos and frontend development.

Entries are posted in shuffled date order, so most of them land before
entries that already exist. The seed is therefore also a smoke test of
backdated inserts: every user's integrity report is printed at the end.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Reset the database and re-seed:
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┐
    │ Email                        │ Password          │
    ├──────────────────────────────┼───────────────────┤
    │ alice.chen@example.com       │ AliceDemo123!     │
    │ bob.martinez@example.com     │ BobDemo123!       │
    │ carol.nguyen@example.com     │ CarolDemo123!     │
    └──────────────────────────────┴───────────────────┘
"""

import argparse
import asyncio
import os
import random
import sys
from datetime import date, timedelta

import httpx


BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo users
# ---------------------------------------------------------------------------

USERS = [
    {
        "email": "alice.chen@example.com",
        "password": "AliceDemo123!",
        "name": "Alice Chen",
        "initial_balance_cents": 850_00,
    },
    {
        "email": "bob.martinez@example.com",
        "password": "BobDemo123!",
        "name": "Bob Martinez",
        "initial_balance_cents": 1_200_00,
    },
    {
        "email": "carol.nguyen@example.com",
        "password": "CarolDemo123!",
        "name": "Carol Nguyen",
        "initial_balance_cents": -150_00,
    },
]

EXPENSE_SUBJECTS = [
    ("Coffee shop", "DEBIT_CARD"), ("Grocery store", "DEBIT_CARD"),
    ("Gas station", "CREDIT_CARD"), ("Online subscription", "PAYPAL"),
    ("Restaurant", "CREDIT_CARD"), ("Utility bill", "BANK_TRANSFER"),
    ("Phone bill", "BANK_TRANSFER"), ("Parking", "MOBILE_PAYMENT"),
    ("Bookstore", "CASH"), ("Pharmacy", "DEBIT_CARD"),
    ("Movie tickets", "MOBILE_PAYMENT"), ("Gym membership", "BANK_TRANSFER"),
]

INCOME_SUBJECTS = [
    ("Payroll deposit", "BANK_TRANSFER"), ("Freelance payment", "PAYPAL"),
    ("Refund", "CREDIT_CARD"), ("Cash gift", "CASH"),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def cents_to_dollars(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100:,.2f}"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup(client: httpx.AsyncClient, user: dict) -> str:
    """Sign up a user, return JWT token."""
    resp = await client.post(f"{BASE_URL}/auth/signup", json={
        "email": user["email"],
        "password": user["password"],
        "name": user["name"],
        "initial_balance_cents": user["initial_balance_cents"],
    })
    resp.raise_for_status()
    return resp.json()["token"]


async def record(client: httpx.AsyncClient, token: str, entry: dict) -> dict:
    resp = await client.post(f"{BASE_URL}/transactions", json=entry, headers=auth_header(token))
    resp.raise_for_status()
    return resp.json()


def plan_history(months: int) -> list[dict]:
    """Two paydays and 8-15 expenses per month, going back `months` months."""
    today = date.today()
    entries: list[dict] = []
    for month in range(months):
        start = today - timedelta(days=30 * (month + 1))
        for payday in (1, 15):
            subject, method = random.choice(INCOME_SUBJECTS[:1] if payday == 1 else INCOME_SUBJECTS)
            entries.append({
                "type": "INCOME",
                "amount_cents": random.randint(1_200_00, 2_400_00),
                "date": (start + timedelta(days=payday)).isoformat(),
                "subject": subject,
                "payment_method": method,
            })
        for _ in range(random.randint(8, 15)):
            subject, method = random.choice(EXPENSE_SUBJECTS)
            entries.append({
                "type": "EXPENSE",
                "amount_cents": random.randint(3_00, 180_00),
                "date": (start + timedelta(days=random.randint(0, 29))).isoformat(),
                "subject": subject,
                "payment_method": method,
            })
    random.shuffle(entries)
    return entries


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed_user(client: httpx.AsyncClient, user: dict, months: int) -> None:
    print(f"\nCreating {user['name']}...")
    token = await signup(client, user)
    log(f"Login: {user['email']} / {user['password']}")
    log(f"Starting balance: {cents_to_dollars(user['initial_balance_cents'])}")

    created = [await record(client, token, entry) for entry in plan_history(months)]
    log(f"{len(created)} entries posted in shuffled date order")

    # A few edits that move entries across dates and change amounts
    for txn in random.sample(created, k=min(3, len(created))):
        moved = date.fromisoformat(txn["date"]) - timedelta(days=random.randint(1, 20))
        resp = await client.patch(
            f"{BASE_URL}/transactions/{txn['id']}",
            json={"date": moved.isoformat(), "amount_cents": txn["amount_cents"] + 1_00},
            headers=auth_header(token),
        )
        resp.raise_for_status()
    doomed = [t["id"] for t in random.sample(created, k=min(2, len(created)))]
    resp = await client.post(
        f"{BASE_URL}/transactions/batch-delete",
        json={"ids": doomed},
        headers=auth_header(token),
    )
    resp.raise_for_status()
    log(f"Edited 3 entries, deleted {resp.json()['deleted']}")

    balance = (await client.get(f"{BASE_URL}/users/me/balance", headers=auth_header(token))).json()
    report = (await client.get(f"{BASE_URL}/users/me/ledger/integrity", headers=auth_header(token))).json()
    log(f"Current balance: {cents_to_dollars(balance['current_balance_cents'])}")
    status = "consistent" if report["consistent"] else f"{len(report['violations'])} VIOLATIONS"
    log(f"Ledger check: {report['transaction_count']} entries, {status}")


async def seed(base_url: str, months: int) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Health check
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn expense_tracker.main:app --reload\n")
            sys.exit(1)

        for user in USERS:
            await seed_user(client, user, months)

    # --- Summary ---
    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password'}")
    print(f"  {'─' * 30} {'─' * 20}")
    for u in USERS:
        print(f"  {u['email']:<30s} {u['password']}")
    print()


def reset_database() -> None:
    """Delete the SQLite database file so the server recreates it on restart."""
    db_path = os.path.join(os.path.dirname(__file__), "..", "data", "expenses.db")
    db_path = os.path.normpath(db_path)

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
        print("  Restart the server to recreate empty tables.\n")
    else:
        print(f"\n  No database found at {db_path}\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates sample users with a few months of expenses and income.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--months", type=int, default=3,
        help="Months of history per user (default: 3)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the database file and exit (restart the server afterwards)",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
        return

    await seed(args.base_url, args.months)


if __name__ == "__main__":
    asyncio.run(main())
