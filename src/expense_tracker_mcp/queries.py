"""Read-side queries shaped for the dashboard and the insight engine."""

from typing import Any

from .analytics import category_name
from .database import Database


def get_user(db: Database, user_id: int) -> dict[str, Any]:
    """Resolve the session user.

    Raises:
        NotFound: If the user does not exist.
    """
    return db.require_by_id("users", user_id)


def transactions_for_user(db: Database, user_id: int) -> list[dict[str, Any]]:
    """Get all of a user's transactions, newest date first.

    Every consumer (summary, list, chart, insights) relies on this ordering.
    Equal dates keep the store's order.
    """
    transactions = db.get_all_by_index("transactions", "user_id", user_id)
    return sorted(transactions, key=lambda tx: tx["date"], reverse=True)


def categories_for_user(db: Database, user_id: int) -> list[dict[str, Any]]:
    """Get all of a user's categories (unordered)."""
    return db.get_all_by_index("categories", "user_id", user_id)


def summarize(transactions: list[dict[str, Any]]) -> dict[str, float]:
    """Total income, expense and balance over the whole history."""
    income = sum(tx["amount"] for tx in transactions if tx["type"] == "income")
    expense = sum(tx["amount"] for tx in transactions if tx["type"] == "expense")
    return {
        "income": round(income, 2),
        "expense": round(expense, 2),
        "balance": round(income - expense, 2),
    }


def format_amount(amount: float, tx_type: str | None = None) -> str:
    """Format an amount with thousands separators, signed by type if given."""
    text = f"{amount:,.2f}"
    if tx_type == "income":
        return f"+{text}"
    if tx_type == "expense":
        return f"-{text}"
    return text


def transaction_rows(
    transactions: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Build list view models for the most recent transactions.

    Args:
        transactions: Transactions, newest first.
        categories: The user's categories; missing ones render as "Unknown".
        limit: Number of rows to return.
    """
    rows = []
    for tx in transactions[:limit]:
        rows.append({
            "id": tx["id"],
            "date": tx["date"],
            "category": category_name(tx["category_id"], categories),
            "type": tx["type"],
            "amount": tx["amount"],
            "display_amount": format_amount(tx["amount"], tx["type"]),
            "note": tx.get("note"),
        })
    return rows


def category_breakdown(
    transactions: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    top_n: int = 5,
) -> list[dict[str, Any]]:
    """Expense totals per category, largest first."""
    totals: dict[Any, float] = {}
    for tx in transactions:
        if tx["type"] == "expense":
            totals[tx["category_id"]] = totals.get(tx["category_id"], 0) + tx["amount"]

    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:top_n]
    return [
        {
            "category_id": cat_id,
            "name": category_name(cat_id, categories),
            "amount": round(amount, 2),
            "display_amount": format_amount(amount),
        }
        for cat_id, amount in ranked
    ]


def category_options(categories: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Choices for a category picker, e.g. "Food (expense)"."""
    return [
        {"id": cat["id"], "label": f"{cat['name']} ({cat['type']})", "type": cat["type"]}
        for cat in categories
    ]
