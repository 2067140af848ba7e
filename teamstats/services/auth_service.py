"""
Authentication helpers: password hashing, email normalization and invite tokens.
"""

import secrets
from typing import Optional
import bcrypt
from teamstats.utils.constants import INVITE_TOKEN_BYTES

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.

    Args:
        password: Plain text password

    Returns:
        bcrypt hash as a string
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Check a plain text password against a stored bcrypt hash."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def normalize_email(email: str) -> str:
    """
    Normalize an email address for storage and lookup.

    Raises:
        ValueError: If the address is empty or has no "@"
    """
    normalized = (email or "").strip().lower()
    if not normalized or "@" not in normalized:
        raise ValueError("Invalid email address")
    return normalized


def generate_token() -> str:
    """Random URL-safe token for invite and invite request links."""
    return secrets.token_hex(INVITE_TOKEN_BYTES)
