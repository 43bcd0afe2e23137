"""Notification inbox route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.services import notification_service
from courtside.models.schemas import NotificationListResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/notifications", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's notifications, newest first."""
    try:
        return await notification_service.get_user_notifications(
            session, current_user["id"], limit=limit, offset=offset, unread_only=unread_only
        )
    except Exception as e:
        logger.error(f"Error fetching notifications: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching notifications: {str(e)}")
