"""Transaction entry: validation, add and delete."""

from datetime import date
from typing import Any

from .database import ConstraintViolation, Database, KINDS, is_iso_date


def validate_transaction(data: dict[str, Any], today: date | None = None) -> list[str]:
    """Check a transaction form before it reaches the store.

    The store has no notion of "now", so the no-future-dates rule lives here.

    Returns:
        List of user-facing error messages (empty if valid).
    """
    if today is None:
        today = date.today()

    errors = []

    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        errors.append("Amount must be greater than 0")

    tx_date = data.get("date")
    if not tx_date:
        errors.append("Date is required")
    elif not is_iso_date(tx_date):
        errors.append("Date must be in YYYY-MM-DD format")
    elif date.fromisoformat(tx_date) > today:
        errors.append("Cannot add future transactions")

    if not data.get("category_id"):
        errors.append("Category is required")

    if data.get("type") not in KINDS:
        errors.append("Type must be income or expense")

    return errors


def add_transaction(
    db: Database,
    user_id: int,
    category_id: int,
    tx_type: str,
    amount: float,
    tx_date: str,
    note: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Validate and store a new transaction.

    Raises:
        ConstraintViolation: With all validation messages joined by newlines,
            or the store's own rejection (e.g. category of another user).
    """
    record = {
        "user_id": user_id,
        "category_id": category_id,
        "type": tx_type,
        "amount": amount,
        "date": tx_date,
        "note": note or None,
    }
    errors = validate_transaction(record, today=today)
    if errors:
        raise ConstraintViolation("\n".join(errors))
    return db.insert("transactions", record)


def delete_transaction(db: Database, transaction_id: int, user_id: int | None = None) -> bool:
    """Delete a transaction by id.

    Missing ids are a successful no-op. If user_id is given, a transaction
    belonging to someone else is left alone.

    Returns:
        True if a transaction was removed.
    """
    if user_id is not None:
        tx = db.get_by_id("transactions", transaction_id)
        if tx is None or tx["user_id"] != user_id:
            return False
    return db.delete_by_id("transactions", transaction_id)
