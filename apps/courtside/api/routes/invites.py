"""Team invite route handlers: create, public lookup, accept, decline, cancel, lists."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import limiter, SERVICE_ERRORS, WRITE_RATE_LIMIT, to_http_exception
from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.services import invite_service, registration_service
from courtside.models.schemas import (
    AcceptInviteResponse,
    CreateInviteRequest,
    InviteActionResponse,
    InviteDetailsResponse,
    InviteResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/invites", response_model=InviteResponse, status_code=201)
@limiter.limit(WRITE_RATE_LIMIT)
async def create_invite(
    request: Request,
    payload: CreateInviteRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Invite a partner (by user id or email) to team up for a tournament or league.

    Returns the invite with its shareable URL.
    """
    try:
        invite = await invite_service.create_invite(session, current_user["id"], payload)
        return invite_service.invite_to_response(invite, include_url=True)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating invite: {str(e)}")


@router.get("/api/invites/my/sent", response_model=List[InviteResponse])
async def list_sent_invites(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invites sent by the current user, newest first."""
    try:
        invites = await invite_service.list_sent_invites(session, current_user["id"])
        return [invite_service.invite_to_response(i, include_url=True) for i in invites]
    except Exception as e:
        logger.error(f"Error listing sent invites: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing sent invites: {str(e)}")


@router.get("/api/invites/my/received", response_model=List[InviteResponse])
async def list_received_invites(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invites addressed to the current user's id or email, newest first."""
    try:
        invites = await invite_service.list_received_invites(session, current_user["id"])
        return [invite_service.invite_to_response(i) for i in invites]
    except Exception as e:
        logger.error(f"Error listing received invites: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing received invites: {str(e)}")


@router.get("/api/invites/{code}", response_model=InviteDetailsResponse)
async def get_invite_details(
    code: str,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Public invite landing-page details.

    No authentication required. A pending invite past its expiry is reported
    as expired without being modified.
    """
    try:
        return await invite_service.get_invite_details(session, code)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retrieving invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error retrieving invite: {str(e)}")


@router.post("/api/invites/{code}/accept", response_model=AcceptInviteResponse)
async def accept_invite(
    code: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Accept an invite and register the team for the event.

    Returns:
        AcceptInviteResponse (410 if the invite expired, 400 if already used)
    """
    try:
        return await registration_service.accept_invite(session, code, current_user["id"])
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error accepting invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error accepting invite: {str(e)}")


@router.post("/api/invites/{code}/decline", response_model=InviteActionResponse)
async def decline_invite(
    code: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline an invite. The inviter is notified."""
    try:
        await invite_service.decline_invite(session, code, current_user["id"])
        return InviteActionResponse(success=True, message="Invitation declined")
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error declining invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error declining invite: {str(e)}")


@router.delete("/api/invites/{code}", response_model=InviteActionResponse)
async def cancel_invite(
    code: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel (delete) a pending invite. Inviter only."""
    try:
        await invite_service.cancel_invite(session, code, current_user["id"])
        return InviteActionResponse(success=True, message="Invitation cancelled")
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error cancelling invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error cancelling invite: {str(e)}")
