"""Partner listing route handlers."""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import SERVICE_ERRORS, to_http_exception
from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.database.models import User
from courtside.services import partner_listing_service
from courtside.models.schemas import (
    ContactListingRequest,
    CreatePartnerListingRequest,
    PartnerListingPage,
    PartnerListingResponse,
)
from courtside.utils.constants import LISTING_SKILL_MAX, LISTING_SKILL_MIN

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/partners/listings", response_model=PartnerListingPage)
async def list_partner_listings(
    event_kind: Optional[Literal["tournament", "league"]] = None,
    event_id: Optional[int] = None,
    sub_event_id: Optional[int] = None,
    skill_min: Optional[float] = Query(None, ge=LISTING_SKILL_MIN, le=LISTING_SKILL_MAX),
    skill_max: Optional[float] = Query(None, ge=LISTING_SKILL_MIN, le=LISTING_SKILL_MAX),
    page: int = Query(1, ge=1),
    limit: int = Query(partner_listing_service.DEFAULT_PAGE_SIZE, ge=1, le=partner_listing_service.MAX_PAGE_SIZE),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Active partner listings, newest first.

    Query params: event_kind + event_id (+ sub_event_id) narrow to one event;
    skill_min/skill_max keep listings whose skill range overlaps.
    """
    try:
        return await partner_listing_service.list_page(
            session,
            page=page,
            limit=limit,
            event_kind=event_kind,
            event_id=event_id,
            sub_event_id=sub_event_id,
            skill_min=skill_min,
            skill_max=skill_max,
        )
    except Exception as e:
        logger.error(f"Error listing partner listings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing partner listings: {str(e)}")


@router.get("/api/partners/listings/my", response_model=List[PartnerListingResponse])
async def list_my_listings(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The current user's listings in any status."""
    try:
        owner = await session.get(User, current_user["id"])
        listings = await partner_listing_service.list_user_listings(session, current_user["id"])
        return [partner_listing_service.listing_to_response(listing, owner) for listing in listings]
    except Exception as e:
        logger.error(f"Error listing user listings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing your listings: {str(e)}")


@router.post("/api/partners/listings", response_model=PartnerListingResponse, status_code=201)
async def create_partner_listing(
    payload: CreatePartnerListingRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Post a "seeking partner" listing for an event (one active listing per event)."""
    try:
        listing = await partner_listing_service.create_listing(session, current_user["id"], payload)
        owner = await session.get(User, current_user["id"])
        return partner_listing_service.listing_to_response(listing, owner)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating partner listing: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating partner listing: {str(e)}")


@router.delete("/api/partners/listings/{listing_id}")
async def delete_partner_listing(
    listing_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete one of the current user's listings."""
    try:
        await partner_listing_service.delete_listing(session, listing_id, current_user["id"])
        return {"success": True, "message": "Listing deleted successfully"}
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting partner listing {listing_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting partner listing: {str(e)}")


@router.post("/api/partners/listings/{listing_id}/contact")
async def contact_listing_owner(
    listing_id: int,
    payload: ContactListingRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Send the listing owner a "Partner Interest" notification."""
    try:
        return await partner_listing_service.contact_listing_owner(
            session, listing_id, current_user["id"], payload.message
        )
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error contacting listing owner {listing_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error contacting listing owner: {str(e)}")
