"""Insight generation from a user's transaction history.

Everything here is a pure function of its inputs: the engine never touches
the store and never raises for degenerate histories.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


MAX_INSIGHTS = 5

# Category spend below this (currency units) never counts as a spike
SPIKE_FLOOR = 50

# Minimum month-over-month increase (percent) reported as a spike
SPIKE_THRESHOLD_PCT = 20


def month_key(day: date) -> str:
    """Return the 'YYYY-MM' bucket key for a date."""
    return day.strftime("%Y-%m")


def previous_month(day: date) -> date:
    """Return the first day of the calendar month before day's month."""
    if day.month == 1:
        return date(day.year - 1, 12, 1)
    return date(day.year, day.month - 1, 1)


def filter_by_month(transactions: list[dict[str, Any]], key: str) -> list[dict[str, Any]]:
    """Transactions whose ISO date falls in the 'YYYY-MM' bucket."""
    return [tx for tx in transactions if str(tx["date"]).startswith(key)]


def sum_type(transactions: list[dict[str, Any]], tx_type: str) -> float:
    """Sum amounts of transactions of one type (income/expense)."""
    return sum(tx["amount"] for tx in transactions if tx["type"] == tx_type)


def group_by_category(transactions: list[dict[str, Any]]) -> dict[int, float]:
    """Sum expense amounts per category id, in first-seen order."""
    totals: dict[int, float] = {}
    for tx in transactions:
        if tx["type"] != "expense":
            continue
        cat_id = tx["category_id"]
        totals[cat_id] = totals.get(cat_id, 0) + tx["amount"]
    return totals


def whole(value: float) -> str:
    """Format a number with no decimals, rounding halves away from zero."""
    return str(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def category_name(category_id: Any, categories: list[dict[str, Any]]) -> str:
    """Resolve a category id to its name, or "Unknown" for a dangling reference."""
    for cat in categories:
        if str(cat["id"]) == str(category_id):
            return cat["name"]
    return "Unknown"


def generate_insights(
    transactions: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    today: date | None = None,
) -> list[dict[str, str]]:
    """Build up to five insight messages for a user's history.

    Checks run in a fixed order: cash flow, total spending trend, then one
    check per expense category. The result is the first MAX_INSIGHTS
    insights in that order; it is not ranked by severity.

    Args:
        transactions: All of the user's transactions (newest first).
        categories: The user's categories, used to name spikes.
        today: Reference date for the current month. Defaults to today.

    Returns:
        List of {"message", "level"} dicts, level being "info" or "warning".
    """
    if not transactions:
        return [{
            "message": "Welcome! Add your first transaction to get insights.",
            "level": "info",
        }]

    if today is None:
        today = date.today()

    current_data = filter_by_month(transactions, month_key(today))
    prev_data = filter_by_month(transactions, month_key(previous_month(today)))

    insights: list[dict[str, str]] = []

    # Cash flow
    income = sum_type(current_data, "income")
    expense = sum_type(current_data, "expense")

    if income == 0 and expense > 0:
        insights.append({
            "message": "No income recorded this month. Review your cash flow.",
            "level": "warning",
        })
    elif expense > income:
        insights.append({
            "message": f"Your expenses ({whole(expense)}) exceeded income ({whole(income)}) this month.",
            "level": "warning",
        })

    # Total spending vs last month
    prev_expense = sum_type(prev_data, "expense")
    if prev_expense > 0 and expense > 0:
        diff = expense - prev_expense
        pct = diff * 100 / prev_expense

        if diff > 0:
            insights.append({
                "message": f"Total spending increased by {whole(pct)}% compared to last month.",
                "level": "warning",
            })
        else:
            insights.append({
                "message": f"Great job! Spending is down {whole(abs(pct))}% compared to last month.",
                "level": "info",
            })

    # Category spikes
    current_cats = group_by_category(current_data)
    prev_cats = group_by_category(prev_data)

    for cat_id, amount in current_cats.items():
        prev_amount = prev_cats.get(cat_id, 0)
        # New categories and small totals are noise
        if amount > SPIKE_FLOOR and prev_amount > 0:
            pct = (amount - prev_amount) * 100 / prev_amount
            if pct >= SPIKE_THRESHOLD_PCT:
                name = category_name(cat_id, categories)
                insights.append({
                    "message": f"{name} spending jumped {whole(pct)}% compared to last month.",
                    "level": "warning",
                })

    if not insights:
        if not prev_data:
            insights.append({
                "message": "This is your first month of tracking. Keep going to see trends!",
                "level": "info",
            })
        else:
            insights.append({
                "message": "Your spending behavior is stable. Good job!",
                "level": "info",
            })

    return insights[:MAX_INSIGHTS]
