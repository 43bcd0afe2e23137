"""
Match request store.

Owns the lifecycle of "looking for a game" requests: creation, owner
cancellation and time-based expiry. Requests are never deleted; every
status change is a conditional UPDATE guarded by ``status = 'pending'`` so
it cannot overwrite a transition another worker already made.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import MatchRequest, MatchRequestStatus
from courtside.models.schemas import CreateMatchRequest, MatchRequestResponse
from courtside.services.exceptions import ConflictError, InvalidStateError, NotFoundError
from courtside.utils.constants import MATCH_REQUEST_TTL_HOURS
from courtside.utils.datetime_utils import isoformat_or_none, utcnow

logger = logging.getLogger(__name__)

RECENT_REQUESTS_LIMIT = 10

PENDING = MatchRequestStatus.PENDING.value


async def create_request(
    session: AsyncSession,
    user_id: int,
    data: CreateMatchRequest,
    now: Optional[datetime] = None,
) -> MatchRequest:
    """
    Open a new match request for a user.

    A lapsed-but-still-pending request left behind by the sweeper is expired
    first, so it does not block the new one.

    Args:
        session: Database session
        user_id: Requesting user
        data: Validated request body
        now: Clock override (tests)

    Returns:
        The committed MatchRequest

    Raises:
        ConflictError: If the user already has an active request
    """
    now = now or utcnow()
    expired = await _expire_where(
        session,
        MatchRequest.user_id == user_id,
        now=now,
    )
    if expired:
        logger.info("Expired %d lapsed match request(s) for user %s", len(expired), user_id)

    existing = await get_active_request(session, user_id, now=now)
    if existing is not None:
        await session.rollback()
        raise ConflictError("You already have an active match request")

    hours = data.expires_in_hours or MATCH_REQUEST_TTL_HOURS
    match_request = MatchRequest(
        user_id=user_id,
        game_format=data.game_format.value,
        skill_level_min=data.skill_level_min.value if data.skill_level_min else None,
        skill_level_max=data.skill_level_max.value if data.skill_level_max else None,
        latitude=data.latitude,
        longitude=data.longitude,
        max_distance_km=data.max_distance_km,
        preferred_times=json.dumps(data.preferred_times) if data.preferred_times else None,
        status=PENDING,
        expires_at=now + timedelta(hours=hours),
        created_at=now,
        updated_at=now,
    )
    session.add(match_request)
    try:
        await session.flush()
        await session.commit()
    except IntegrityError:
        # Concurrent create won the partial unique index on (user_id) WHERE pending
        await session.rollback()
        raise ConflictError("You already have an active match request")

    logger.info(
        "Match request %s created by user %s (%s)",
        match_request.id,
        user_id,
        match_request.game_format,
    )
    return match_request


async def get_request(session: AsyncSession, request_id: int) -> Optional[MatchRequest]:
    """Load a match request by id, refreshing any stale identity-map copy."""
    result = await session.execute(
        select(MatchRequest)
        .where(MatchRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_request(
    session: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> Optional[MatchRequest]:
    """The user's pending request that has not yet lapsed, if any."""
    now = now or utcnow()
    result = await session.execute(
        select(MatchRequest)
        .where(
            MatchRequest.user_id == user_id,
            MatchRequest.status == PENDING,
            MatchRequest.expires_at > now,
        )
        .order_by(MatchRequest.created_at.desc(), MatchRequest.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def cancel_request(session: AsyncSession, request_id: int, user_id: int) -> MatchRequest:
    """
    Cancel a pending match request. Only the owner may cancel.

    Raises:
        NotFoundError: If the request does not exist or belongs to someone else
        InvalidStateError: If the request is no longer pending
    """
    now = utcnow()
    result = await session.execute(
        update(MatchRequest)
        .where(
            MatchRequest.id == request_id,
            MatchRequest.user_id == user_id,
            MatchRequest.status == PENDING,
        )
        .values(status=MatchRequestStatus.CANCELLED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        match_request = await get_request(session, request_id)
        if match_request is None or match_request.user_id != user_id:
            raise NotFoundError("Match request not found")
        raise InvalidStateError(
            f"Match request is already {match_request.status}", status=match_request.status
        )

    await session.commit()
    logger.info("Match request %s cancelled by user %s", request_id, user_id)
    return await get_request(session, request_id)


async def list_user_requests(
    session: AsyncSession, user_id: int, limit: int = RECENT_REQUESTS_LIMIT
) -> List[MatchRequest]:
    """The user's most recent requests in any status, newest first."""
    result = await session.execute(
        select(MatchRequest)
        .where(MatchRequest.user_id == user_id)
        .order_by(MatchRequest.created_at.desc(), MatchRequest.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_active_requests(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Number of pending, unexpired requests across all users."""
    now = now or utcnow()
    result = await session.execute(
        select(func.count())
        .select_from(MatchRequest)
        .where(MatchRequest.status == PENDING, MatchRequest.expires_at > now)
    )
    return result.scalar_one() or 0


async def expire_lapsed_requests(
    session: AsyncSession, now: Optional[datetime] = None, batch_size: int = 500
) -> List[Tuple[int, int]]:
    """
    Move every pending request whose expiry has passed to ``expired``.

    Commits the batch. Requests another transaction moved to a terminal
    state in the meantime are left untouched.

    Returns:
        (request_id, user_id) for each request this call expired
    """
    expired = await _expire_where(session, now=now or utcnow(), batch_size=batch_size)
    await session.commit()
    return expired


async def _expire_where(
    session: AsyncSession, *criteria, now: datetime, batch_size: Optional[int] = None
) -> List[Tuple[int, int]]:
    query = (
        select(MatchRequest.id, MatchRequest.user_id)
        .where(
            MatchRequest.status == PENDING,
            MatchRequest.expires_at <= now,
            *criteria,
        )
        .order_by(MatchRequest.id)
    )
    if batch_size:
        query = query.limit(batch_size)
    rows = (await session.execute(query)).all()

    expired = []
    for request_id, user_id in rows:
        result = await session.execute(
            update(MatchRequest)
            .where(MatchRequest.id == request_id, MatchRequest.status == PENDING)
            .values(status=MatchRequestStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            expired.append((request_id, user_id))
    return expired


def request_to_response(match_request: MatchRequest) -> MatchRequestResponse:
    """Serialize a match request for its owner."""
    return MatchRequestResponse(
        id=match_request.id,
        user_id=match_request.user_id,
        game_format=match_request.game_format,
        skill_level_min=match_request.skill_level_min,
        skill_level_max=match_request.skill_level_max,
        latitude=match_request.latitude,
        longitude=match_request.longitude,
        max_distance_km=match_request.max_distance_km,
        preferred_times=parse_preferred_times(match_request.preferred_times),
        status=match_request.status,
        matched_game_id=match_request.matched_game_id,
        expires_at=isoformat_or_none(match_request.expires_at),
        created_at=isoformat_or_none(match_request.created_at),
    )


def parse_preferred_times(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return json.loads(raw)
