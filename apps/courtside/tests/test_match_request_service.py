"""
Tests for the match request store: create, cancel, list and expiry.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from courtside.database.models import MatchRequest, MatchRequestStatus
from courtside.models.schemas import CreateMatchRequest
from courtside.services import match_request_service
from courtside.services.exceptions import ConflictError, InvalidStateError, NotFoundError
from courtside.utils.datetime_utils import ensure_utc, utcnow


def _payload(**overrides):
    data = {"game_format": "doubles", "expires_in_hours": 24}
    data.update(overrides)
    return CreateMatchRequest(**data)


@pytest.mark.asyncio
async def test_create_request_sets_pending_and_expiry(db_session, make_user):
    user = await make_user()
    now = utcnow()

    request = await match_request_service.create_request(
        db_session, user.id, _payload(preferred_times=["sat-am"], expires_in_hours=6), now=now
    )

    assert request.id is not None
    assert request.status == MatchRequestStatus.PENDING.value
    assert ensure_utc(request.expires_at) == now + timedelta(hours=6)
    assert match_request_service.parse_preferred_times(request.preferred_times) == ["sat-am"]


@pytest.mark.asyncio
async def test_second_active_request_conflicts(db_session, make_user):
    user = await make_user()
    await match_request_service.create_request(db_session, user.id, _payload())

    with pytest.raises(ConflictError):
        await match_request_service.create_request(db_session, user.id, _payload())


@pytest.mark.asyncio
async def test_lapsed_request_does_not_block_new_one(db_session, make_user):
    user = await make_user()
    past = utcnow() - timedelta(hours=48)
    old = await match_request_service.create_request(
        db_session, user.id, _payload(expires_in_hours=1), now=past
    )

    new = await match_request_service.create_request(db_session, user.id, _payload())

    refreshed = await match_request_service.get_request(db_session, old.id)
    assert refreshed.status == MatchRequestStatus.EXPIRED.value
    assert new.status == MatchRequestStatus.PENDING.value


@pytest.mark.asyncio
async def test_cancel_request(db_session, make_user):
    user = await make_user()
    request = await match_request_service.create_request(db_session, user.id, _payload())

    cancelled = await match_request_service.cancel_request(db_session, request.id, user.id)

    assert cancelled.status == MatchRequestStatus.CANCELLED.value
    # Kept for audit
    rows = (await db_session.execute(select(MatchRequest.id))).scalars().all()
    assert rows == [request.id]


@pytest.mark.asyncio
async def test_cancel_twice_reports_current_status(db_session, make_user):
    user = await make_user()
    request = await match_request_service.create_request(db_session, user.id, _payload())
    await match_request_service.cancel_request(db_session, request.id, user.id)

    with pytest.raises(InvalidStateError) as exc_info:
        await match_request_service.cancel_request(db_session, request.id, user.id)
    assert exc_info.value.status == "cancelled"


@pytest.mark.asyncio
async def test_cancel_someone_elses_request_is_not_found(db_session, make_user):
    owner = await make_user()
    other = await make_user()
    request = await match_request_service.create_request(db_session, owner.id, _payload())
    # A failed cancel rolls the session back, so keep plain ids
    request_id, owner_id, other_id = request.id, owner.id, other.id

    with pytest.raises(NotFoundError):
        await match_request_service.cancel_request(db_session, request_id, other_id)
    with pytest.raises(NotFoundError):
        await match_request_service.cancel_request(db_session, 99999, owner_id)

    refreshed = await match_request_service.get_request(db_session, request_id)
    assert refreshed.status == MatchRequestStatus.PENDING.value


@pytest.mark.asyncio
async def test_expire_lapsed_requests_only_touches_pending(db_session, make_user):
    u1, u2, u3 = await make_user(), await make_user(), await make_user()
    past = utcnow() - timedelta(hours=10)
    lapsed = await match_request_service.create_request(
        db_session, u1.id, _payload(expires_in_hours=1), now=past
    )
    cancelled = await match_request_service.create_request(
        db_session, u2.id, _payload(expires_in_hours=1), now=past
    )
    await match_request_service.cancel_request(db_session, cancelled.id, u2.id)
    live = await match_request_service.create_request(db_session, u3.id, _payload())

    expired = await match_request_service.expire_lapsed_requests(db_session)

    assert expired == [(lapsed.id, u1.id)]
    statuses = {
        r.id: r.status
        for r in (
            await db_session.execute(
                select(MatchRequest).execution_options(populate_existing=True)
            )
        ).scalars()
    }
    assert statuses == {
        lapsed.id: "expired",
        cancelled.id: "cancelled",
        live.id: "pending",
    }

    # Second run finds nothing
    assert await match_request_service.expire_lapsed_requests(db_session) == []


@pytest.mark.asyncio
async def test_list_and_count(db_session, make_user):
    u1, u2 = await make_user(), await make_user()
    first = await match_request_service.create_request(db_session, u1.id, _payload())
    await match_request_service.cancel_request(db_session, first.id, u1.id)
    second = await match_request_service.create_request(db_session, u1.id, _payload())
    await match_request_service.create_request(db_session, u2.id, _payload())

    listed = await match_request_service.list_user_requests(db_session, u1.id)

    assert [r.id for r in listed] == [second.id, first.id]
    assert await match_request_service.count_active_requests(db_session) == 2


def test_payload_validation_rejects_inverted_skill_bounds():
    with pytest.raises(ValueError):
        _payload(skill_level_min="expert", skill_level_max="beginner")


def test_payload_validation_requires_coordinate_pairs():
    with pytest.raises(ValueError):
        _payload(latitude=33.0)
