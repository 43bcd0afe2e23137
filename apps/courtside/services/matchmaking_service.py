"""
Matchmaker: ranks open match requests against each other and commits a
mutual match into a game.

Candidate filtering is bidirectional. A candidate survives only if each
side's skill falls inside the other side's declared range and neither side's
max distance is exceeded. Survivors are ordered by compatibility score
(highest first), then by creation time, then by id.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import (
    MatchRequest,
    MatchRequestStatus,
    NotificationType,
    User,
)
from courtside.models.schemas import CommitMatchResponse, MatchCandidateResponse
from courtside.services import game_service, match_request_service, notification_service
from courtside.services.exceptions import (
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
)
from courtside.services.user_service import display_name
from courtside.utils.constants import DEFAULT_SUGGESTION_LIMIT
from courtside.utils.datetime_utils import ensure_utc, is_past, isoformat_or_none, utcnow
from courtside.utils.geo_utils import calculate_distance_km, compatibility_score, skill_in_range

logger = logging.getLogger(__name__)

PENDING = MatchRequestStatus.PENDING.value


@dataclass
class Candidate:
    """A ranked counterpart for a match request."""

    request: MatchRequest
    user: User
    distance_km: Optional[float]
    score: float


def _request_distance(a: MatchRequest, b: MatchRequest) -> Optional[float]:
    if None in (a.latitude, a.longitude, b.latitude, b.longitude):
        return None
    return calculate_distance_km(a.latitude, a.longitude, b.latitude, b.longitude)


def _within_distance(distance: Optional[float], *limits: Optional[float]) -> bool:
    if distance is None:
        return True
    return all(limit is None or distance <= limit for limit in limits)


def _sort_key(candidate: Candidate) -> Tuple[float, datetime, int]:
    return (-candidate.score, ensure_utc(candidate.request.created_at), candidate.request.id)


async def find_candidates(
    session: AsyncSession, request_id: int, now: Optional[datetime] = None
) -> List[Candidate]:
    """
    Rank the open requests that could be matched with the given one.

    Args:
        session: Database session
        request_id: The request to find counterparts for
        now: Clock override (tests)

    Returns:
        Candidates sorted by score desc, created_at asc, id asc

    Raises:
        NotFoundError: If the request does not exist
        InvalidStateError: If the request is not pending
    """
    now = now or utcnow()
    request = await match_request_service.get_request(session, request_id)
    if request is None:
        raise NotFoundError("Match request not found")
    if request.status != PENDING:
        raise InvalidStateError(f"Match request is already {request.status}", status=request.status)

    requester = await session.get(User, request.user_id)

    result = await session.execute(
        select(MatchRequest, User)
        .join(User, User.id == MatchRequest.user_id)
        .where(
            MatchRequest.status == PENDING,
            MatchRequest.game_format == request.game_format,
            MatchRequest.user_id != request.user_id,
            MatchRequest.expires_at > now,
            MatchRequest.id != request.id,
        )
    )

    candidates = []
    for other, other_user in result.all():
        if not skill_in_range(other_user.skill_level, request.skill_level_min, request.skill_level_max):
            continue
        if not skill_in_range(
            requester.skill_level if requester else None, other.skill_level_min, other.skill_level_max
        ):
            continue

        distance = _request_distance(request, other)
        if not _within_distance(distance, request.max_distance_km, other.max_distance_km):
            continue

        candidates.append(
            Candidate(
                request=other,
                user=other_user,
                distance_km=distance,
                score=compatibility_score(requester, other_user, distance),
            )
        )

    candidates.sort(key=_sort_key)
    return candidates


async def get_suggestions(
    session: AsyncSession,
    user_id: int,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
    now: Optional[datetime] = None,
) -> Tuple[Optional[MatchRequest], List[Candidate]]:
    """
    Suggestions for the user's own active request.

    Returns:
        (the user's active request or None, up to ``limit`` candidates)
    """
    now = now or utcnow()
    request = await match_request_service.get_active_request(session, user_id, now=now)
    if request is None:
        return None, []
    candidates = await find_candidates(session, request.id, now=now)
    return request, candidates[:limit]


async def commit_match(
    session: AsyncSession,
    request_id: int,
    candidate_request_id: int,
    acting_user_id: Optional[int] = None,
) -> CommitMatchResponse:
    """
    Match two pending requests and create a game for them.

    Both requests are read with a row lock (ordered by id so concurrent
    commits cannot deadlock), then flipped to ``matched`` with one UPDATE
    guarded by ``status = 'pending'``. Unless that UPDATE touches exactly two
    rows, nothing is written. Retrying a committed pair therefore fails with
    InvalidStateError instead of creating a second game.

    Args:
        session: Database session
        request_id: The caller's request
        candidate_request_id: The request being accepted
        acting_user_id: When given, must own ``request_id``

    Returns:
        CommitMatchResponse with the new game id

    Raises:
        NotFoundError: If either request does not exist
        ForbiddenError: If acting_user_id does not own request_id
        InvalidStateError: If either request is not pending (ExpiredError if lapsed)
        TransientStorageError: If the store fails mid-transaction
    """
    if request_id == candidate_request_id:
        raise InvalidStateError("A match request cannot be matched with itself")

    now = utcnow()
    try:
        result = await session.execute(
            select(MatchRequest)
            .where(MatchRequest.id.in_([request_id, candidate_request_id]))
            .order_by(MatchRequest.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        by_id: Dict[int, MatchRequest] = {r.id: r for r in result.scalars().all()}
        request = by_id.get(request_id)
        candidate = by_id.get(candidate_request_id)
        if request is None or candidate is None:
            raise NotFoundError("Match request not found")

        if acting_user_id is not None and request.user_id != acting_user_id:
            raise ForbiddenError("You can only accept matches for your own request")
        if request.user_id == candidate.user_id:
            raise InvalidStateError("You cannot match with your own request")
        for r in (request, candidate):
            if r.status != PENDING:
                raise InvalidStateError(f"Match request {r.id} is already {r.status}", status=r.status)
            if is_past(r.expires_at, now):
                raise ExpiredError(f"Match request {r.id} has expired")
        if request.game_format != candidate.game_format:
            raise InvalidStateError("Match requests are for different game formats")

        game = await game_service.create_game(
            session,
            game_format=request.game_format,
            team1_ids=[request.user_id],
            team2_ids=[candidate.user_id],
            created_by=acting_user_id or request.user_id,
        )

        update_result = await session.execute(
            update(MatchRequest)
            .where(
                MatchRequest.id.in_([request_id, candidate_request_id]),
                MatchRequest.status == PENDING,
            )
            .values(
                status=MatchRequestStatus.MATCHED.value,
                matched_game_id=game.id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if update_result.rowcount != 2:
            raise InvalidStateError("Match request is no longer pending")

        await session.commit()
    except (NotFoundError, InvalidStateError, ForbiddenError):
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Match commit %s/%s failed: %s", request_id, candidate_request_id, e)
        raise TransientStorageError("Could not commit the match, please retry") from e
    except Exception:
        await session.rollback()
        raise

    game_id = game.id
    game_format = request.game_format
    player_ids = [request.user_id, candidate.user_id]
    logger.info(
        "Matched requests %s and %s into game %s", request_id, candidate_request_id, game_id
    )

    for user_id, other_id in ((player_ids[0], player_ids[1]), (player_ids[1], player_ids[0])):
        other = await session.get(User, other_id)
        await notification_service.notify(
            user_id=user_id,
            type=NotificationType.MATCH_FOUND.value,
            title="Match Found",
            message=f"You've been matched with {display_name(other)} for a {game_format} game.",
            data={"game_id": game_id, "matched_user_id": other_id},
            link_url=f"/games/{game_id}",
        )

    return CommitMatchResponse(
        game_id=game_id,
        game_format=game_format,
        request_ids=[request_id, candidate_request_id],
        player_ids=player_ids,
    )


def candidate_to_response(candidate: Candidate) -> MatchCandidateResponse:
    """Presentation form: distance to 0.1 km, score to a whole number."""
    return MatchCandidateResponse(
        request_id=candidate.request.id,
        user_id=candidate.user.id,
        user_name=display_name(candidate.user),
        skill_level=candidate.user.skill_level,
        rating=candidate.user.rating,
        game_format=candidate.request.game_format,
        distance_km=round(candidate.distance_km, 1) if candidate.distance_km is not None else None,
        score=round(candidate.score),
        preferred_times=match_request_service.parse_preferred_times(candidate.request.preferred_times),
        expires_at=isoformat_or_none(candidate.request.expires_at),
    )
