"""Tests for the query/aggregation layer."""

import pytest

from expense_tracker_mcp.auth import register_user
from expense_tracker_mcp.database import Database, NotFound
from expense_tracker_mcp.queries import (
    categories_for_user,
    category_breakdown,
    category_options,
    format_amount,
    get_user,
    summarize,
    transaction_rows,
    transactions_for_user,
)
from expense_tracker_mcp.seed import seed_categories


def add_expense(db: Database, user: dict, category: dict, amount: float, tx_date: str) -> dict:
    return db.insert("transactions", {
        "user_id": user["id"],
        "category_id": category["id"],
        "type": "expense",
        "amount": amount,
        "date": tx_date,
        "note": None,
    })


class TestTransactionsForUser:
    """Test the newest-first ordering contract."""

    def test_sorted_by_date_descending(self, db: Database, user: dict, categories: dict):
        for tx_date in ["2024-01-05", "2024-03-01", "2024-02-10"]:
            add_expense(db, user, categories["Food"], 10.0, tx_date)

        result = transactions_for_user(db, user["id"])

        assert [tx["date"] for tx in result] == ["2024-03-01", "2024-02-10", "2024-01-05"]

    def test_equal_dates_all_returned(self, db: Database, user: dict, categories: dict):
        add_expense(db, user, categories["Food"], 10.0, "2024-02-10")
        add_expense(db, user, categories["Rent"], 20.0, "2024-02-10")
        add_expense(db, user, categories["Food"], 30.0, "2024-02-11")

        result = transactions_for_user(db, user["id"])

        assert result[0]["amount"] == 30.0
        assert sorted(tx["amount"] for tx in result[1:]) == [10.0, 20.0]

    def test_only_own_transactions(self, db: Database, user: dict, categories: dict):
        other = register_user(db, "other@example.com", "pw")
        seed_categories(db, other["id"])
        other_food = next(
            c for c in categories_for_user(db, other["id"]) if c["name"] == "Food"
        )
        add_expense(db, other, other_food, 99.0, "2024-02-10")
        add_expense(db, user, categories["Food"], 10.0, "2024-02-10")

        result = transactions_for_user(db, user["id"])

        assert [tx["amount"] for tx in result] == [10.0]

    def test_deleted_transaction_not_returned(self, db: Database, user: dict, categories: dict):
        tx = add_expense(db, user, categories["Food"], 10.0, "2024-02-10")
        db.delete_by_id("transactions", tx["id"])

        assert transactions_for_user(db, user["id"]) == []

    def test_empty(self, db: Database, user: dict):
        assert transactions_for_user(db, user["id"]) == []


class TestCategoriesForUser:
    """Test category lookup."""

    def test_default_categories(self, db: Database, user: dict):
        result = categories_for_user(db, user["id"])

        assert len(result) == 8
        assert {c["type"] for c in result} == {"income", "expense"}

    def test_unknown_user(self, db: Database):
        assert categories_for_user(db, 999) == []


class TestGetUser:
    """Test session user resolution."""

    def test_get_user(self, db: Database, user: dict):
        assert get_user(db, user["id"])["email"] == "test@example.com"

    def test_get_user_missing(self, db: Database):
        with pytest.raises(NotFound):
            get_user(db, 999)


class TestSummaries:
    """Test display-shaped aggregates."""

    def test_summarize(self, populated_db: Database, user: dict):
        result = summarize(transactions_for_user(populated_db, user["id"]))

        assert result == {"income": 6000.0, "expense": 2220.0, "balance": 3780.0}

    def test_summarize_empty(self):
        assert summarize([]) == {"income": 0, "expense": 0, "balance": 0}

    def test_format_amount(self):
        assert format_amount(1234.5, "income") == "+1,234.50"
        assert format_amount(12, "expense") == "-12.00"
        assert format_amount(0.5) == "0.50"

    def test_transaction_rows(self, populated_db: Database, user: dict):
        transactions = transactions_for_user(populated_db, user["id"])
        categories = categories_for_user(populated_db, user["id"])

        rows = transaction_rows(transactions, categories, limit=3)

        assert len(rows) == 3
        food = next(row for row in rows if row["amount"] == 120.0)
        assert food["category"] == "Food"
        assert food["display_amount"] == "-120.00"
        assert set(food) >= {"id", "date", "category", "display_amount"}

    def test_transaction_rows_unknown_category(self):
        transactions = [{
            "id": 1,
            "category_id": 77,
            "type": "income",
            "amount": 50.0,
            "date": "2024-02-10",
        }]

        rows = transaction_rows(transactions, [])

        assert rows[0]["category"] == "Unknown"
        assert rows[0]["display_amount"] == "+50.00"
        assert rows[0]["note"] is None

    def test_category_breakdown(self, populated_db: Database, user: dict):
        transactions = transactions_for_user(populated_db, user["id"])
        categories = categories_for_user(populated_db, user["id"])

        result = category_breakdown(transactions, categories)

        assert [item["name"] for item in result] == ["Rent", "Food"]
        assert result[0]["amount"] == 2000.0
        assert result[1]["amount"] == 220.0

    def test_category_breakdown_top_n(self):
        transactions = [
            {"category_id": i, "type": "expense", "amount": float(i)} for i in range(1, 9)
        ]

        result = category_breakdown(transactions, [], top_n=5)

        assert [item["category_id"] for item in result] == [8, 7, 6, 5, 4]
        assert all(item["name"] == "Unknown" for item in result)

    def test_category_options(self, categories: dict):
        options = category_options(list(categories.values()))

        labels = {opt["label"] for opt in options}
        assert "Food (expense)" in labels
        assert "Salary (income)" in labels
