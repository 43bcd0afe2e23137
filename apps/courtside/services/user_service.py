"""
User directory lookups.

Users are provisioned by the identity service; this module only reads them
(plus a small create helper used by seeding and tests).
"""

from decimal import Decimal
from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from courtside.database.models import User, UserRating
from courtside.utils.constants import DEFAULT_RATING_FORMAT
import logging

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and strip an email address; empty strings become None."""
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


async def create_user(
    session: AsyncSession,
    username: str,
    display_name: Optional[str] = None,
    email: Optional[str] = None,
    skill_level: Optional[str] = None,
    rating: Optional[float] = None,
) -> User:
    """
    Create a user directory entry.

    Args:
        session: Database session
        username: Unique username
        display_name: Optional display name
        email: Optional email (stored lowercase)
        skill_level: Optional SkillLevel value
        rating: Optional matchmaking rating

    Returns:
        The flushed User instance
    """
    user = User(
        username=username,
        display_name=display_name,
        email=normalize_email(email),
        skill_level=skill_level,
        rating=rating,
    )
    session.add(user)
    await session.flush()
    return user


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


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Resolve a user by email, case-insensitively."""
    normalized = normalize_email(email)
    if normalized is None:
        return None
    result = await session.execute(select(User).where(func.lower(User.email) == normalized))
    return result.scalar_one_or_none()


async def get_format_rating(
    session: AsyncSession,
    user_id: int,
    game_format: Optional[str],
    fallback_to_any: bool = False,
) -> Optional[Decimal]:
    """
    Look up a user's rating for a game format.

    Args:
        session: Database session
        user_id: User ID
        game_format: GameFormat value; defaults to doubles when None
        fallback_to_any: When no rating exists for the format, return the
            user's most recently updated rating of any format

    Returns:
        The rating, or None if the user has none
    """
    game_format = game_format or DEFAULT_RATING_FORMAT
    result = await session.execute(
        select(UserRating.rating).where(
            UserRating.user_id == user_id,
            UserRating.game_format == game_format,
        )
    )
    rating = result.scalar_one_or_none()
    if rating is not None or not fallback_to_any:
        return rating

    result = await session.execute(
        select(UserRating.rating)
        .where(UserRating.user_id == user_id)
        .order_by(UserRating.updated_at.desc(), UserRating.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def set_format_rating(
    session: AsyncSession, user_id: int, game_format: str, rating
) -> UserRating:
    """Insert or replace a user's rating for a format (fed by the rating service)."""
    result = await session.execute(
        select(UserRating).where(
            UserRating.user_id == user_id,
            UserRating.game_format == game_format,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = UserRating(user_id=user_id, game_format=game_format, rating=Decimal(str(rating)))
        session.add(row)
    else:
        row.rating = Decimal(str(rating))
    await session.flush()
    return row


def display_name(user: Optional[User]) -> str:
    """Name shown to other players."""
    if user is None:
        return "Unknown"
    return user.display_name or user.username


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
        "username": user.username,
        "display_name": user.display_name,
        "email": user.email,
        "skill_level": user.skill_level,
        "rating": user.rating,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }
