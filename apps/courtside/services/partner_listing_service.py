"""
Partner listing service: "I need a partner for this event" posts.

A user holds at most one active listing per event (enforced by a partial
unique index on (user_id, event_key) WHERE status = 'active'). Listings
move to ``matched`` when the owner's team invite for the event is accepted
and to ``expired`` when the event stops taking registrations.
"""

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import (
    EventKind,
    League,
    LeagueStatus,
    NotificationType,
    PartnerListing,
    PartnerListingStatus,
    Tournament,
    TournamentStatus,
    User,
)
from courtside.models.schemas import (
    CreatePartnerListingRequest,
    PartnerListingPage,
    PartnerListingResponse,
    event_ref_from_columns,
)
from courtside.services import event_service, notification_service, user_service
from courtside.services.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from courtside.utils.datetime_utils import isoformat_or_none, utcnow

logger = logging.getLogger(__name__)

ACTIVE = PartnerListingStatus.ACTIVE.value
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


async def create_listing(
    session: AsyncSession, user_id: int, data: CreatePartnerListingRequest
) -> PartnerListing:
    """
    Post a partner listing for an event.

    Raises:
        NotFoundError: If the event does not exist
        ConflictError: If the user already has an active listing for the event
    """
    event_ref = data.event
    event = await event_service.get_event(session, event_ref.kind, event_ref.id)
    if event is None:
        raise NotFoundError(f"{event_ref.kind.capitalize()} not found")

    existing = await session.execute(
        select(PartnerListing.id).where(
            PartnerListing.user_id == user_id,
            PartnerListing.event_key == event_ref.key,
            PartnerListing.status == ACTIVE,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("You already have an active listing for this event")

    now = utcnow()
    listing = PartnerListing(
        user_id=user_id,
        event_kind=event_ref.kind,
        event_id=event_ref.id,
        sub_event_id=event_ref.sub_event_id,
        event_key=event_ref.key,
        skill_level_min=data.skill_level_min,
        skill_level_max=data.skill_level_max,
        message=data.message,
        status=ACTIVE,
        created_at=now,
        updated_at=now,
    )
    session.add(listing)
    try:
        await session.flush()
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("You already have an active listing for this event")

    logger.info("Partner listing %s created by user %s for %s", listing.id, user_id, listing.event_key)
    return listing


async def delete_listing(session: AsyncSession, listing_id: int, user_id: int) -> None:
    """
    Delete a listing. Only its owner may delete it.

    Raises:
        NotFoundError: If the listing does not exist
        ForbiddenError: If the user does not own it
    """
    listing = await session.get(PartnerListing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.user_id != user_id:
        raise ForbiddenError("You can only delete your own listings")

    await session.delete(listing)
    await session.commit()
    logger.info("Partner listing %s deleted by user %s", listing_id, user_id)


async def search_listings(
    session: AsyncSession,
    event_kind: Optional[str] = None,
    event_id: Optional[int] = None,
    sub_event_id: Optional[int] = None,
    skill_min: Optional[float] = None,
    skill_max: Optional[float] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Tuple[PartnerListing, User]], int]:
    """
    Active listings, newest first, filtered by event and skill overlap.

    A listing matches the skill filter when its range overlaps
    [skill_min, skill_max]; open-ended listing bounds always overlap.

    Returns:
        (page of (listing, owner) rows, total matching count)
    """
    conditions = [PartnerListing.status == ACTIVE]
    if event_kind is not None:
        conditions.append(PartnerListing.event_kind == event_kind)
    if event_id is not None:
        conditions.append(PartnerListing.event_id == event_id)
    if sub_event_id is not None:
        conditions.append(PartnerListing.sub_event_id == sub_event_id)
    if skill_min is not None:
        conditions.append(
            or_(PartnerListing.skill_level_max >= skill_min, PartnerListing.skill_level_max.is_(None))
        )
    if skill_max is not None:
        conditions.append(
            or_(PartnerListing.skill_level_min <= skill_max, PartnerListing.skill_level_min.is_(None))
        )

    total_result = await session.execute(
        select(func.count()).select_from(PartnerListing).where(*conditions)
    )
    total = total_result.scalar_one() or 0

    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    result = await session.execute(
        select(PartnerListing, User)
        .join(User, User.id == PartnerListing.user_id)
        .where(*conditions)
        .order_by(PartnerListing.created_at.desc(), PartnerListing.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return [(listing, user) for listing, user in result.all()], total


async def list_page(
    session: AsyncSession, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, **filters
) -> PartnerListingPage:
    """search_listings() wrapped into the paginated response."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    rows, total = await search_listings(session, page=page, limit=limit, **filters)
    return PartnerListingPage(
        items=[listing_to_response(listing, user) for listing, user in rows],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


async def list_user_listings(session: AsyncSession, user_id: int) -> List[PartnerListing]:
    """All of a user's listings in any status, newest first."""
    result = await session.execute(
        select(PartnerListing)
        .where(PartnerListing.user_id == user_id)
        .order_by(PartnerListing.created_at.desc(), PartnerListing.id.desc())
    )
    return list(result.scalars().all())


async def contact_listing_owner(
    session: AsyncSession, listing_id: int, contacting_user_id: int, message: str
) -> Dict:
    """
    Tell a listing owner someone wants to partner with them.

    Produces a notification only; the listing is not changed.

    Raises:
        NotFoundError: If the listing does not exist or is not active
        InvalidStateError: If the caller owns the listing
    """
    result = await session.execute(
        select(PartnerListing, User)
        .join(User, User.id == PartnerListing.user_id)
        .where(PartnerListing.id == listing_id, PartnerListing.status == ACTIVE)
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Listing not found or no longer active")
    listing, owner = row
    if listing.user_id == contacting_user_id:
        raise InvalidStateError("You cannot contact your own listing")

    contacting_user = await session.get(User, contacting_user_id)
    event = await event_service.get_event(session, listing.event_kind, listing.event_id)
    event_name = event.name if event else "an event"
    contact_name = user_service.display_name(contacting_user)

    delivered = await notification_service.notify(
        user_id=listing.user_id,
        type=NotificationType.PARTNER_INTEREST.value,
        title="Partner Interest",
        message=f'{contact_name} is interested in partnering with you for {event_name}. Message: "{message}"',
        data={
            "listing_id": listing.id,
            "contact_user_id": contacting_user_id,
            "contact_message": message,
        },
        link_url=f"/profile/{contacting_user_id}",
    )
    logger.info(
        "User %s contacted owner of listing %s (delivered=%s)", contacting_user_id, listing_id, delivered
    )
    return {
        "message": "Contact request sent successfully",
        "contacted": {"user_id": owner.id, "display_name": user_service.display_name(owner)},
    }


async def expire_closed_event_listings(
    session: AsyncSession, now: Optional[datetime] = None
) -> List[Tuple[int, int]]:
    """
    Expire active listings whose event no longer accepts registrations, and commit.

    Returns:
        (listing_id, user_id) for each listing this call expired
    """
    now = now or utcnow()
    open_tournaments = select(Tournament.id).where(
        Tournament.status == TournamentStatus.REGISTRATION_OPEN.value
    )
    open_leagues = select(League.id).where(League.status == LeagueStatus.REGISTRATION_OPEN.value)

    rows = (
        await session.execute(
            select(PartnerListing.id, PartnerListing.user_id).where(
                PartnerListing.status == ACTIVE,
                or_(
                    (PartnerListing.event_kind == EventKind.TOURNAMENT.value)
                    & PartnerListing.event_id.not_in(open_tournaments),
                    (PartnerListing.event_kind == EventKind.LEAGUE.value)
                    & PartnerListing.event_id.not_in(open_leagues),
                ),
            )
        )
    ).all()

    expired = []
    for listing_id, user_id in rows:
        result = await session.execute(
            update(PartnerListing)
            .where(PartnerListing.id == listing_id, PartnerListing.status == ACTIVE)
            .values(status=PartnerListingStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            expired.append((listing_id, user_id))
    await session.commit()
    return expired


def listing_to_response(listing: PartnerListing, owner: Optional[User] = None) -> PartnerListingResponse:
    """Serialize a listing with its owner's display name."""
    return PartnerListingResponse(
        id=listing.id,
        user_id=listing.user_id,
        user_name=user_service.display_name(owner),
        event=event_ref_from_columns(listing.event_kind, listing.event_id, listing.sub_event_id),
        skill_level_min=listing.skill_level_min,
        skill_level_max=listing.skill_level_max,
        message=listing.message,
        status=listing.status,
        created_at=isoformat_or_none(listing.created_at),
    )
