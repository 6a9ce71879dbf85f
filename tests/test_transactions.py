"""
Tests for transaction endpoints.

These tests verify:
  - Creating entries in and out of chronological order gives the right
    cumulative deltas
  - Editing amount, type or date shifts this entry and every later one
  - Deleting an entry takes its term out of every later entry
  - Batch deletes are all-or-nothing
  - Users can never see or change each other's entries
  - Filtering, sorting and pagination of the listing
"""

from sqlalchemy.orm.exc import StaleDataError

from expense_tracker.ledger import engine, store


async def create(client, txn_type, amount_cents, day, subject="Entry", **extra):
    response = await client.post(
        "/transactions",
        json={
            "type": txn_type,
            "amount_cents": amount_cents,
            "date": day,
            "subject": subject,
            **extra,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def ledger_deltas(client):
    response = await client.get("/transactions/ledger")
    assert response.status_code == 200
    return [t["cumulative_delta_cents"] for t in response.json()]


async def three_day_ledger(client):
    """+100, -30, +50 on three consecutive days."""
    first = await create(client, "INCOME", 100, "2024-03-01", "Salary")
    middle = await create(client, "EXPENSE", 30, "2024-03-02", "Lunch")
    last = await create(client, "INCOME", 50, "2024-03-03", "Refund")
    return first, middle, last


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

class TestCreateTransaction:
    """Tests for POST /transactions."""

    async def test_single_entry_equals_its_signed_amount(self, authenticated_client):
        txn = await create(authenticated_client, "EXPENSE", 4250, "2024-03-01", "Groceries")
        assert txn["amount_cents"] == 4250
        assert txn["signed_amount_cents"] == -4250
        assert txn["cumulative_delta_cents"] == -4250
        assert txn["payment_method"] == "OTHER"

    async def test_consecutive_days(self, authenticated_client):
        await three_day_ledger(authenticated_client)
        assert await ledger_deltas(authenticated_client) == [100, 70, 120]

    async def test_same_day_entries(self, authenticated_client):
        """Entries sharing a date are ordered by creation time."""
        await create(authenticated_client, "INCOME", 200, "2024-03-01")
        await create(authenticated_client, "EXPENSE", 50, "2024-03-01")
        await create(authenticated_client, "EXPENSE", 25, "2024-03-01")
        assert await ledger_deltas(authenticated_client) == [200, 150, 125]

    async def test_backdated_entry_shifts_later_entries(self, authenticated_client):
        await create(authenticated_client, "INCOME", 100, "2024-03-02")
        await create(authenticated_client, "INCOME", 50, "2024-03-03")

        backdated = await create(authenticated_client, "EXPENSE", 30, "2024-03-01")

        assert backdated["cumulative_delta_cents"] == -30
        assert await ledger_deltas(authenticated_client) == [-30, 70, 120]

    async def test_payload_fields_are_stored(self, authenticated_client):
        txn = await create(
            authenticated_client, "EXPENSE", 999, "2024-03-01", "  Coffee  ",
            notes="with a friend",
            payment_method="CREDIT_CARD",
            category_id=3,
            transaction_group_id=7,
        )
        assert txn["subject"] == "Coffee"
        assert txn["notes"] == "with a friend"
        assert txn["payment_method"] == "CREDIT_CARD"
        assert txn["category_id"] == 3
        assert txn["transaction_group_id"] == 7

    async def test_zero_amount_rejected(self, authenticated_client):
        response = await authenticated_client.post(
            "/transactions",
            json={"type": "EXPENSE", "amount_cents": 0, "date": "2024-03-01", "subject": "x"},
        )
        assert response.status_code == 422

    async def test_blank_subject_rejected(self, authenticated_client):
        response = await authenticated_client.post(
            "/transactions",
            json={"type": "EXPENSE", "amount_cents": 10, "date": "2024-03-01", "subject": "   "},
        )
        assert response.status_code == 422

    async def test_unknown_type_rejected(self, authenticated_client):
        response = await authenticated_client.post(
            "/transactions",
            json={"type": "TRANSFER", "amount_cents": 10, "date": "2024-03-01", "subject": "x"},
        )
        assert response.status_code == 422

    async def test_requires_authentication(self, client):
        response = await client.post(
            "/transactions",
            json={"type": "EXPENSE", "amount_cents": 10, "date": "2024-03-01", "subject": "x"},
        )
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

class TestUpdateTransaction:
    """Tests for PATCH /transactions/{id}."""

    async def test_amount_change(self, authenticated_client):
        _, middle, _ = await three_day_ledger(authenticated_client)

        response = await authenticated_client.patch(
            f"/transactions/{middle['id']}", json={"amount_cents": 40},
        )

        assert response.status_code == 200
        assert response.json()["cumulative_delta_cents"] == 60
        assert await ledger_deltas(authenticated_client) == [100, 60, 110]

    async def test_type_change(self, authenticated_client):
        _, middle, _ = await three_day_ledger(authenticated_client)

        response = await authenticated_client.patch(
            f"/transactions/{middle['id']}", json={"type": "INCOME"},
        )

        assert response.json()["signed_amount_cents"] == 30
        assert await ledger_deltas(authenticated_client) == [100, 130, 180]

    async def test_date_moved_onto_existing_day(self, authenticated_client):
        """The moved entry follows the day's earlier entry by creation time."""
        first, middle, last = await three_day_ledger(authenticated_client)

        response = await authenticated_client.patch(
            f"/transactions/{middle['id']}", json={"date": "2024-03-01"},
        )
        assert response.status_code == 200

        ledger = (await authenticated_client.get("/transactions/ledger")).json()
        assert [t["id"] for t in ledger] == [first["id"], middle["id"], last["id"]]
        assert [t["date"] for t in ledger] == ["2024-03-01", "2024-03-01", "2024-03-03"]
        assert [t["cumulative_delta_cents"] for t in ledger] == [100, 70, 120]

    async def test_date_moved_before_everything(self, authenticated_client):
        first, middle, last = await three_day_ledger(authenticated_client)

        await authenticated_client.patch(
            f"/transactions/{last['id']}", json={"date": "2024-02-01", "amount_cents": 10},
        )

        ledger = (await authenticated_client.get("/transactions/ledger")).json()
        assert [t["id"] for t in ledger] == [last["id"], first["id"], middle["id"]]
        assert [t["cumulative_delta_cents"] for t in ledger] == [10, 110, 80]

    async def test_payload_only_change_keeps_deltas(self, authenticated_client):
        _, middle, _ = await three_day_ledger(authenticated_client)

        response = await authenticated_client.patch(
            f"/transactions/{middle['id']}",
            json={"subject": "Dinner", "notes": "  ", "payment_method": "CASH"},
        )

        data = response.json()
        assert data["subject"] == "Dinner"
        assert data["notes"] is None
        assert data["payment_method"] == "CASH"
        assert await ledger_deltas(authenticated_client) == [100, 70, 120]

    async def test_clear_category(self, authenticated_client):
        txn = await create(authenticated_client, "EXPENSE", 10, "2024-03-01", category_id=4)
        response = await authenticated_client.patch(
            f"/transactions/{txn['id']}", json={"category_id": None},
        )
        assert response.json()["category_id"] is None

    async def test_empty_body_rejected(self, authenticated_client):
        txn = await create(authenticated_client, "EXPENSE", 10, "2024-03-01")
        response = await authenticated_client.patch(f"/transactions/{txn['id']}", json={})
        assert response.status_code == 422

    async def test_null_amount_rejected(self, authenticated_client):
        txn = await create(authenticated_client, "EXPENSE", 10, "2024-03-01")
        response = await authenticated_client.patch(
            f"/transactions/{txn['id']}", json={"amount_cents": None},
        )
        assert response.status_code == 422

    async def test_unknown_transaction(self, authenticated_client):
        response = await authenticated_client.patch("/transactions/9999", json={"amount_cents": 5})
        assert response.status_code == 404
        assert response.json()["error_type"] == "transaction_not_found"


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestDeleteTransaction:
    """Tests for DELETE /transactions/{id}."""

    async def test_delete_middle_entry(self, authenticated_client):
        _, middle, _ = await three_day_ledger(authenticated_client)

        response = await authenticated_client.delete(f"/transactions/{middle['id']}")

        assert response.status_code == 204
        assert await ledger_deltas(authenticated_client) == [100, 150]

    async def test_delete_sole_entry_restores_initial_balance(self, authenticated_client):
        await authenticated_client.put("/users/me/initial-balance", json={"initial_balance_cents": 1000})
        txn = await create(authenticated_client, "EXPENSE", 300, "2024-03-01")

        await authenticated_client.delete(f"/transactions/{txn['id']}")

        assert await ledger_deltas(authenticated_client) == []
        balance = (await authenticated_client.get("/users/me/balance")).json()
        assert balance["cumulative_delta_cents"] == 0
        assert balance["current_balance_cents"] == 1000

    async def test_delete_unknown_transaction(self, authenticated_client):
        response = await authenticated_client.delete("/transactions/9999")
        assert response.status_code == 404

    async def test_get_after_delete_is_404(self, authenticated_client):
        txn = await create(authenticated_client, "EXPENSE", 10, "2024-03-01")
        await authenticated_client.delete(f"/transactions/{txn['id']}")
        response = await authenticated_client.get(f"/transactions/{txn['id']}")
        assert response.status_code == 404


class TestBatchDelete:
    """Tests for POST /transactions/batch-delete."""

    async def test_deletes_all_listed(self, authenticated_client):
        first, middle, last = await three_day_ledger(authenticated_client)
        extra = await create(authenticated_client, "EXPENSE", 5, "2024-03-04")

        response = await authenticated_client.post(
            "/transactions/batch-delete", json={"ids": [first["id"], last["id"]]},
        )

        assert response.status_code == 200
        assert response.json()["deleted"] == 2
        ledger = (await authenticated_client.get("/transactions/ledger")).json()
        assert [t["id"] for t in ledger] == [middle["id"], extra["id"]]
        assert [t["cumulative_delta_cents"] for t in ledger] == [-30, -35]

    async def test_duplicate_ids_counted_once(self, authenticated_client):
        _, middle, _ = await three_day_ledger(authenticated_client)
        response = await authenticated_client.post(
            "/transactions/batch-delete", json={"ids": [middle["id"], middle["id"]]},
        )
        assert response.json()["deleted"] == 1
        assert await ledger_deltas(authenticated_client) == [100, 150]

    async def test_unknown_id_deletes_nothing(self, authenticated_client):
        first, middle, last = await three_day_ledger(authenticated_client)

        response = await authenticated_client.post(
            "/transactions/batch-delete", json={"ids": [first["id"], 9999]},
        )

        assert response.status_code == 404
        assert await ledger_deltas(authenticated_client) == [100, 70, 120]

    async def test_empty_list_rejected(self, authenticated_client):
        response = await authenticated_client.post("/transactions/batch-delete", json={"ids": []})
        assert response.status_code == 422

    async def test_too_many_ids_rejected(self, authenticated_client):
        response = await authenticated_client.post(
            "/transactions/batch-delete", json={"ids": list(range(1, 102))},
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------

class TestCrossUserIsolation:
    """A user's ledger is invisible and immutable to everyone else."""

    async def test_cannot_read_other_users_transaction(
        self, authenticated_client, second_authenticated_client
    ):
        txn = await create(authenticated_client, "EXPENSE", 10, "2024-03-01")
        response = await second_authenticated_client.get(f"/transactions/{txn['id']}")
        assert response.status_code == 404

    async def test_cannot_edit_or_delete_other_users_transaction(
        self, authenticated_client, second_authenticated_client
    ):
        await three_day_ledger(authenticated_client)
        ledger = (await authenticated_client.get("/transactions/ledger")).json()
        target = ledger[1]["id"]

        patch = await second_authenticated_client.patch(
            f"/transactions/{target}", json={"amount_cents": 1},
        )
        delete = await second_authenticated_client.delete(f"/transactions/{target}")
        batch = await second_authenticated_client.post(
            "/transactions/batch-delete", json={"ids": [target]},
        )

        assert patch.status_code == 404
        assert delete.status_code == 404
        assert batch.status_code == 404
        assert await ledger_deltas(authenticated_client) == [100, 70, 120]

    async def test_ledgers_are_independent(
        self, authenticated_client, second_authenticated_client
    ):
        await three_day_ledger(authenticated_client)
        await create(second_authenticated_client, "EXPENSE", 5, "2024-03-02")

        assert await ledger_deltas(authenticated_client) == [100, 70, 120]
        assert await ledger_deltas(second_authenticated_client) == [-5]


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestListTransactions:
    """Tests for GET /transactions."""

    async def seed(self, client):
        await create(client, "INCOME", 5000, "2024-03-01", "Salary", payment_method="BANK_TRANSFER")
        await create(client, "EXPENSE", 1200, "2024-03-01", "Groceries", payment_method="DEBIT_CARD", category_id=1)
        await create(client, "EXPENSE", 300, "2024-03-02", "Coffee beans", payment_method="CASH", category_id=1)
        await create(client, "EXPENSE", 4500, "2024-03-05", "Rent share", payment_method="BANK_TRANSFER", category_id=2)

    async def test_default_is_newest_date_first(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get("/transactions")
        assert response.status_code == 200
        subjects = [t["subject"] for t in response.json()]
        assert subjects == ["Rent share", "Coffee beans", "Groceries", "Salary"]

    async def test_ascending(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get("/transactions", params={"sort_descending": False})
        subjects = [t["subject"] for t in response.json()]
        assert subjects == ["Salary", "Groceries", "Coffee beans", "Rent share"]

    async def test_sort_by_amount_within_date(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get(
            "/transactions", params={"sort_by": "amount", "sort_descending": False},
        )
        subjects = [t["subject"] for t in response.json()]
        # Dates stay grouped; on 2024-03-01 the expense (-1200) sorts before the income
        assert subjects == ["Groceries", "Salary", "Coffee beans", "Rent share"]

    async def test_subject_filter_is_case_insensitive(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get("/transactions", params={"subject": "COFFEE"})
        assert [t["subject"] for t in response.json()] == ["Coffee beans"]

    async def test_type_filter(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get("/transactions", params={"type": "INCOME"})
        assert [t["subject"] for t in response.json()] == ["Salary"]

    async def test_payment_method_filter_accepts_several(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get(
            "/transactions", params=[("payment_method", "CASH"), ("payment_method", "DEBIT_CARD")],
        )
        assert sorted(t["subject"] for t in response.json()) == ["Coffee beans", "Groceries"]

    async def test_category_filter(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get("/transactions", params={"category_id": 2})
        assert [t["subject"] for t in response.json()] == ["Rent share"]

    async def test_date_range_is_inclusive(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get(
            "/transactions", params={"date_from": "2024-03-02", "date_to": "2024-03-05"},
        )
        assert [t["subject"] for t in response.json()] == ["Rent share", "Coffee beans"]

    async def test_inverted_date_range_rejected(self, authenticated_client):
        response = await authenticated_client.get(
            "/transactions", params={"date_from": "2024-03-05", "date_to": "2024-03-01"},
        )
        assert response.status_code == 422

    async def test_pagination(self, authenticated_client):
        await self.seed(authenticated_client)
        page1 = await authenticated_client.get("/transactions", params={"limit": 2})
        page2 = await authenticated_client.get("/transactions", params={"limit": 2, "offset": 2})
        assert [t["subject"] for t in page1.json()] == ["Rent share", "Coffee beans"]
        assert [t["subject"] for t in page2.json()] == ["Groceries", "Salary"]

    async def test_listing_carries_cumulative_deltas(self, authenticated_client):
        await self.seed(authenticated_client)
        response = await authenticated_client.get("/transactions", params={"sort_descending": False})
        assert [t["cumulative_delta_cents"] for t in response.json()] == [5000, 3800, 3500, -1000]


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------

class TestWriteFailures:
    """A failed write must leave the stored ledger exactly as it was."""

    async def test_bad_recalculation_is_rolled_back(self, authenticated_client, monkeypatch):
        await create(authenticated_client, "INCOME", 100, "2024-03-02")
        await create(authenticated_client, "INCOME", 50, "2024-03-03")

        def off_by_one_shift(ledger, start, amount_cents):
            for i in range(start, len(ledger)):
                ledger[i].cumulative_delta_cents += amount_cents + 1
            return len(ledger) - start

        monkeypatch.setattr(engine, "_shift", off_by_one_shift)
        response = await authenticated_client.post(
            "/transactions",
            json={"type": "EXPENSE", "amount_cents": 30, "date": "2024-03-01", "subject": "x"},
        )
        monkeypatch.undo()

        assert response.status_code == 500
        assert response.json()["error_type"] == "invariant_violation"
        ledger = (await authenticated_client.get("/transactions/ledger")).json()
        assert [t["cumulative_delta_cents"] for t in ledger] == [100, 150]

    async def test_conflict_is_reported_as_409(self, authenticated_client, monkeypatch):
        await create(authenticated_client, "INCOME", 100, "2024-03-02")

        async def stale_save(db, rows):
            raise StaleDataError("users row changed underneath")

        monkeypatch.setattr(store, "save_batch", stale_save)
        response = await authenticated_client.post(
            "/transactions",
            json={"type": "EXPENSE", "amount_cents": 30, "date": "2024-03-01", "subject": "x"},
        )
        monkeypatch.undo()

        assert response.status_code == 409
        assert response.json()["error_type"] == "ledger_conflict"
        assert await ledger_deltas(authenticated_client) == [100]
