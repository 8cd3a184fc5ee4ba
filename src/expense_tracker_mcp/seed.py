"""Default categories and demo history for new users."""

import logging
import random
from datetime import date, timedelta

from .analytics import previous_month
from .database import Database
from .queries import categories_for_user, transactions_for_user


logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Salary", "income"),
    ("Freelance", "income"),
    ("Food", "expense"),
    ("Rent", "expense"),
    ("Transport", "expense"),
    ("Utilities", "expense"),
    ("Entertainment", "expense"),
    ("Health", "expense"),
]

DEMO_DAYS = 90
DEMO_EXPENSE_CHANCE = 0.3
DEMO_SALARY = 3500


def seed_categories(db: Database, user_id: int) -> int:
    """Insert the default categories unless the user already has some.

    Returns:
        Number of categories inserted.
    """
    with db.exclusive():
        if categories_for_user(db, user_id):
            logger.debug("User %s already has categories, not seeding", user_id)
            return 0

        inserted = db.bulk_insert(
            "categories",
            [{"user_id": user_id, "name": name, "type": kind} for name, kind in DEFAULT_CATEGORIES],
        )
    logger.info("Seeded %d categories for user %s", len(inserted), user_id)
    return len(inserted)


def seed_demo_data(
    db: Database,
    user_id: int,
    today: date | None = None,
    rng: random.Random | None = None,
) -> int:
    """Fill an empty account with roughly three months of sample history.

    Does nothing if the user already has transactions. The check and the
    inserts hold the store lock, so concurrent calls seed an account once.
    Runs synchronously, so the data is visible to the very next read.

    Args:
        db: Database instance.
        user_id: Owner of the demo data.
        today: Last day of the generated history. Defaults to today.
        rng: Random source (pass a seeded one for reproducible data).

    Returns:
        Number of transactions inserted.
    """
    if today is None:
        today = date.today()
    if rng is None:
        rng = random.Random()

    with db.exclusive():
        if transactions_for_user(db, user_id):
            logger.debug("User %s already has transactions, not seeding demo data", user_id)
            return 0
        inserted = db.bulk_insert("transactions", _demo_transactions(db, user_id, today, rng))

    logger.info("Seeded %d demo transactions for user %s", len(inserted), user_id)
    return len(inserted)


def _demo_transactions(
    db: Database, user_id: int, today: date, rng: random.Random
) -> list[dict]:
    """Generate the demo history records, seeding categories if needed."""
    seed_categories(db, user_id)
    categories = categories_for_user(db, user_id)
    income_cats = [c for c in categories if c["type"] == "income"]
    expense_cats = [c for c in categories if c["type"] == "expense"]

    demo_txs = []

    if expense_cats:
        for offset in range(DEMO_DAYS):
            if rng.random() < DEMO_EXPENSE_CHANCE:
                cat = rng.choice(expense_cats)
                demo_txs.append({
                    "user_id": user_id,
                    "category_id": cat["id"],
                    "type": "expense",
                    "amount": round(rng.uniform(10, 60), 2),
                    "date": (today - timedelta(days=offset)).isoformat(),
                    "note": "Demo expense",
                })

    # Monthly salary on the 1st of this month and the two before it
    if income_cats:
        month_start = today.replace(day=1)
        for _ in range(3):
            demo_txs.append({
                "user_id": user_id,
                "category_id": income_cats[0]["id"],
                "type": "income",
                "amount": DEMO_SALARY,
                "date": month_start.isoformat(),
                "note": "Monthly Salary",
            })
            month_start = previous_month(month_start)

    return demo_txs
