"""
User service layer for user account database operations.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from teamstats.database.models import User
import logging

logger = logging.getLogger(__name__)


async def create_user(session: AsyncSession, name: str, email: str, password_hash: str) -> int:
    """
    Create a new user account.

    Args:
        session: Database session
        name: Display name
        email: Normalized email address
        password_hash: bcrypt hash of the password

    Returns:
        User ID of the created user

    Raises:
        ValueError: If a user with this email already exists
    """
    existing = await get_user_by_email(session, email)
    if existing:
        raise ValueError(f"Email {email} is already registered")

    new_user = User(name=name.strip(), email=email.strip().lower(), password_hash=password_hash)
    session.add(new_user)
    await session.flush()
    user_id = new_user.id
    await session.commit()
    logger.info(f"Created user {user_id}")
    return user_id


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get user by email address.

    Args:
        session: Database session
        email: Email address (will be normalized to lowercase)

    Returns:
        User dictionary or None if not found
    """
    # Normalize email to lowercase for consistent lookup
    email = email.strip().lower() if email else None
    if not email:
        return None

    result = await session.execute(
        select(User).where(func.lower(func.trim(User.email)) == email).limit(1)
    )
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


def _user_to_dict(user: User) -> Dict:
    """
    Convert a User ORM instance to a dictionary.

    Args:
        user: User ORM instance

    Returns:
        User dictionary
    """
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "password_hash": user.password_hash,
        "stripe_customer_id": user.stripe_customer_id,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def public_user(user: Dict) -> Dict:
    """User dict without the password hash, for API responses."""
    return {key: value for key, value in user.items() if key != "password_hash"}
