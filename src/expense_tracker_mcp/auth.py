"""User registration and login against the record store."""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any

from .database import Database


logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Unknown email or wrong password."""

    pass


def credential_digest(password: str) -> str:
    """Digest stored in place of the password.

    Plain SHA-256 with no salt: local single-user data, not a security boundary.
    """
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def register_user(db: Database, email: str, password: str) -> dict[str, Any]:
    """Create a user account.

    Returns:
        The stored user record (without the password digest).

    Raises:
        ConstraintViolation: If the email is already registered or empty.
    """
    email = normalize_email(email)
    user = db.insert("users", {
        "email": email or None,
        "password_hash": credential_digest(password),
        "created_at": datetime.now(timezone.utc).isoformat(),
    })
    logger.info("Registered user %s (id=%s)", email, user["id"])
    return public_user(user)


def login_user(db: Database, email: str, password: str) -> dict[str, Any]:
    """Check credentials and return the user.

    Raises:
        AuthenticationError: If the email is unknown or the password is wrong.
    """
    email = normalize_email(email)
    user = db.get_by_unique_index("users", "email", email)
    if user is None or user["password_hash"] != credential_digest(password):
        logger.warning("Failed login for %s", email)
        raise AuthenticationError("Invalid credentials")
    return public_user(user)


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    """Strip the credential digest from a user record."""
    return {k: v for k, v in user.items() if k != "password_hash"}
