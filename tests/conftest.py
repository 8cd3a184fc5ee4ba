"""Test fixtures for expense tracker tests."""

from datetime import date, timedelta

import pytest

from expense_tracker_mcp.analytics import previous_month
from expense_tracker_mcp.auth import register_user
from expense_tracker_mcp.database import Database
from expense_tracker_mcp.queries import categories_for_user
from expense_tracker_mcp.seed import seed_categories


@pytest.fixture
def db() -> Database:
    """Create in-memory database with schema."""
    database = Database(":memory:")
    database.init_schema()
    return database


@pytest.fixture
def user(db: Database) -> dict:
    """Registered user with the default categories."""
    registered = register_user(db, "test@example.com", "secret")
    seed_categories(db, registered["id"])
    return registered


@pytest.fixture
def categories(db: Database, user: dict) -> dict[str, dict]:
    """The user's categories keyed by name."""
    return {cat["name"]: cat for cat in categories_for_user(db, user["id"])}


@pytest.fixture
def populated_db(db: Database, user: dict, categories: dict[str, dict]) -> Database:
    """Database with two months of history for the fixture user.

    Current month: salary 3000, food 120, rent 1000.
    Previous month: salary 3000, food 100, rent 1000.
    """
    today = date.today()
    this_month = today.replace(day=1)
    last_month = previous_month(today)

    def make_tx(category: str, amount: float, day: date, note: str | None = None) -> dict:
        cat = categories[category]
        return {
            "user_id": user["id"],
            "category_id": cat["id"],
            "type": cat["type"],
            "amount": amount,
            "date": day.isoformat(),
            "note": note,
        }

    db.bulk_insert("transactions", [
        make_tx("Salary", 3000.0, last_month, "Salary"),
        make_tx("Rent", 1000.0, last_month + timedelta(days=1)),
        make_tx("Food", 100.0, last_month + timedelta(days=4), "Groceries"),
        make_tx("Salary", 3000.0, this_month, "Salary"),
        make_tx("Rent", 1000.0, this_month),
        make_tx("Food", 120.0, today, "Groceries"),
    ])
    return db
