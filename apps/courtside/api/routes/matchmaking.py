"""Match request, suggestion and match-commit route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import limiter, SERVICE_ERRORS, WRITE_RATE_LIMIT, to_http_exception
from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.services import match_request_service, matchmaking_service
from courtside.models.schemas import (
    CommitMatchRequest,
    CommitMatchResponse,
    CreateMatchRequest,
    MatchmakingStatsResponse,
    MatchRequestResponse,
    SuggestionsResponse,
)
from courtside.utils.constants import DEFAULT_SUGGESTION_LIMIT

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matchmaking/requests", response_model=MatchRequestResponse, status_code=201)
@limiter.limit(WRITE_RATE_LIMIT)
async def create_match_request(
    request: Request,
    payload: CreateMatchRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Open a match request for the current user.

    A user may only have one active request at a time (409 otherwise).
    """
    try:
        match_request = await match_request_service.create_request(
            session, current_user["id"], payload
        )
        return match_request_service.request_to_response(match_request)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating match request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating match request: {str(e)}")


@router.get("/api/matchmaking/requests", response_model=List[MatchRequestResponse])
async def list_my_match_requests(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The current user's 10 most recent match requests."""
    try:
        requests = await match_request_service.list_user_requests(session, current_user["id"])
        return [match_request_service.request_to_response(r) for r in requests]
    except Exception as e:
        logger.error(f"Error listing match requests: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing match requests: {str(e)}")


@router.delete("/api/matchmaking/requests/{request_id}", response_model=MatchRequestResponse)
async def cancel_match_request(
    request_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel one of the current user's pending match requests (kept for audit)."""
    try:
        match_request = await match_request_service.cancel_request(
            session, request_id, current_user["id"]
        )
        return match_request_service.request_to_response(match_request)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error cancelling match request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error cancelling match request: {str(e)}")


@router.get("/api/matchmaking/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    limit: int = Query(DEFAULT_SUGGESTION_LIMIT, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Ranked candidates for the current user's active request.

    Returns an empty list when the user has no active request.
    """
    try:
        match_request, candidates = await matchmaking_service.get_suggestions(
            session, current_user["id"], limit=limit
        )
        return SuggestionsResponse(
            request_id=match_request.id if match_request else None,
            suggestions=[matchmaking_service.candidate_to_response(c) for c in candidates],
        )
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error getting suggestions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting suggestions: {str(e)}")


@router.post(
    "/api/matchmaking/requests/{request_id}/accept", response_model=CommitMatchResponse
)
async def accept_match(
    request_id: int,
    payload: CommitMatchRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Commit a mutual match between the caller's request and a candidate request.

    Creates a game for both players. Retrying a committed pair returns 400.
    """
    try:
        return await matchmaking_service.commit_match(
            session,
            request_id,
            payload.matched_request_id,
            acting_user_id=current_user["id"],
        )
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error committing match for request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error committing match: {str(e)}")


@router.get("/api/matchmaking/stats", response_model=MatchmakingStatsResponse)
async def get_matchmaking_stats(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Number of open match requests."""
    try:
        count = await match_request_service.count_active_requests(session)
        return MatchmakingStatsResponse(active_requests=count)
    except Exception as e:
        logger.error(f"Error getting matchmaking stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting matchmaking stats: {str(e)}")
