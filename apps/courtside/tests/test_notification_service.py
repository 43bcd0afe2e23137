"""
Unit tests for notification service.
Tests notification creation, best-effort delivery and inbox retrieval.
"""

import pytest
from sqlalchemy import select, func

from courtside.database.models import Notification, NotificationType
from courtside.services import notification_service


@pytest.mark.asyncio
async def test_create_notification(db_session, make_user):
    """Test creating a single notification."""
    user = await make_user()
    notification = await notification_service.create_notification(
        session=db_session,
        user_id=user.id,
        type=NotificationType.TEAM_INVITE,
        title="Team Invitation",
        message="Ivy invited you to team up",
        data={"invite_code": "abc"},
        link_url="/invite/abc",
    )

    assert notification["user_id"] == user.id
    assert notification["type"] == "team_invite"
    assert notification["data"] == {"invite_code": "abc"}
    assert notification["link_url"] == "/invite/abc"
    assert notification["is_read"] is False
    assert notification["id"] > 0


@pytest.mark.asyncio
async def test_create_notification_validation(db_session, make_user):
    """Test notification creation validation."""
    user = await make_user()
    with pytest.raises(ValueError, match="user_id is required"):
        await notification_service.create_notification(
            session=db_session, user_id=None, type="match_found", title="T", message="M"
        )
    with pytest.raises(ValueError, match="title is required"):
        await notification_service.create_notification(
            session=db_session, user_id=user.id, type="match_found", title="", message="M"
        )


@pytest.mark.asyncio
async def test_notify_swallows_failures(db_session, make_user):
    """A failed notification returns False instead of raising."""
    user = await make_user()

    assert await notification_service.notify(
        None, NotificationType.MATCH_FOUND, "Match Found", "x"
    ) is False
    assert await notification_service.notify(
        user.id, NotificationType.MATCH_FOUND, "Match Found", "Game on"
    ) is True

    count = (
        await db_session.execute(select(func.count()).select_from(Notification))
    ).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_get_user_notifications_pagination(db_session, make_user):
    """Test inbox pagination and unread filtering."""
    user, other = await make_user(), await make_user()
    for i in range(3):
        await notification_service.notify(
            user.id, NotificationType.PARTNER_INTEREST, "Partner Interest", f"note {i}"
        )
    await notification_service.notify(
        other.id, NotificationType.PARTNER_INTEREST, "Partner Interest", "not yours"
    )

    first = await notification_service.get_user_notifications(db_session, user.id, limit=2)
    assert first["total_count"] == 3
    assert first["has_more"] is True
    assert [n["message"] for n in first["notifications"]] == ["note 2", "note 1"]

    rest = await notification_service.get_user_notifications(db_session, user.id, limit=2, offset=2)
    assert [n["message"] for n in rest["notifications"]] == ["note 0"]
    assert rest["has_more"] is False

    unread = await notification_service.get_user_notifications(db_session, user.id, unread_only=True)
    assert unread["total_count"] == 3
