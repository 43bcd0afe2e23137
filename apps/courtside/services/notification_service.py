"""
Notification service for in-app notifications.

Notifications are written after the state change they describe has been
committed. Delivery is best-effort: notify() logs and swallows failures so
they never reach the caller of the operation that produced them.
"""

from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from courtside.database import db
from courtside.database.models import Notification
from courtside.utils.datetime_utils import isoformat_or_none
import json
import logging

logger = logging.getLogger(__name__)


def _notification_to_dict(notification: Notification) -> Dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": json.loads(notification.data) if notification.data else None,
        "is_read": notification.is_read,
        "read_at": isoformat_or_none(notification.read_at),
        "link_url": notification.link_url,
        "created_at": isoformat_or_none(notification.created_at),
    }


async def create_notification(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None
) -> Dict:
    """
    Create a single notification for a user.

    Args:
        session: Database session
        user_id: ID of the user to notify
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        data: Optional JSON metadata (dict will be serialized to JSON string)
        link_url: Optional URL for navigation when notification is clicked

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing or invalid
    """
    if not user_id:
        raise ValueError("user_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    notification = Notification(
        user_id=user_id,
        type=getattr(type, "value", type),
        title=title,
        message=message,
        data=json.dumps(data) if data is not None else None,
        link_url=link_url,
        is_read=False
    )

    session.add(notification)
    await session.flush()
    return _notification_to_dict(notification)


async def notify(
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
) -> bool:
    """
    Create and commit a notification in its own session, swallowing any failure.

    Must only be called once the operation being reported has committed.
    The caller's session is never touched, so a failure here leaves the
    caller's loaded objects usable.

    Returns:
        True if the notification was stored, False otherwise
    """
    try:
        async with db.AsyncSessionLocal() as session:
            await create_notification(
                session=session,
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                data=data,
                link_url=link_url,
            )
            await session.commit()
        return True
    except Exception:
        logger.warning(
            "Failed to create %s notification for user %s", type, user_id, exc_info=True
        )
        return False


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Fetch user notifications with pagination.

    Args:
        session: Database session
        user_id: ID of the user
        limit: Maximum number of notifications to return (default: 50)
        offset: Number of notifications to skip (default: 0)
        unread_only: If True, only return unread notifications (default: False)

    Returns:
        Dict containing:
            - notifications: List of notification dicts (newest first)
            - total_count: Total number of notifications matching the criteria
            - has_more: Boolean indicating if there are more notifications
    """
    query = select(Notification).where(Notification.user_id == user_id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.execute(count_query)
    total_count = total_result.scalar_one() or 0

    query = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(query)
    notification_dicts: List[Dict] = [
        _notification_to_dict(notif) for notif in result.scalars().all()
    ]

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": (offset + len(notification_dicts)) < total_count,
    }
