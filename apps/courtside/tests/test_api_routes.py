"""
Route tests with the service layer mocked.

Checks request validation, authentication, and the service error → HTTP
status translation for every router.
"""

import pytest
from fastapi.testclient import TestClient

from courtside.api.main import app
from courtside.database.models import TeamInvite
from courtside.models.schemas import (
    AcceptInviteResponse,
    CommitMatchResponse,
    InviteDetailsResponse,
    InviterSummary,
    PartnerListingPage,
    TournamentRef,
)
from courtside.services import (
    auth_service,
    invite_service,
    matchmaking_service,
    notification_service,
    partner_listing_service,
    registration_service,
    user_service,
)
from courtside.services.exceptions import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
)
from courtside.utils.datetime_utils import utcnow


def make_client_with_auth(monkeypatch, user_id=1):
    """Helper to create an authenticated test client."""
    def fake_verify_token(token):
        return {"user_id": user_id}

    async def fake_get_user_by_id(session, uid):
        return {
            "id": user_id,
            "username": "tester",
            "display_name": "Test User",
            "email": "test@example.com",
            "skill_level": "intermediate",
            "rating": 1500.0,
            "created_at": "2026-01-01T00:00:00+00:00",
        }

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)
    return TestClient(app), {"Authorization": "Bearer dummy"}


def _fake_invite(**overrides):
    now = utcnow()
    fields = dict(
        id=7,
        event_kind="tournament",
        event_id=3,
        sub_event_id=None,
        inviter_id=1,
        invitee_user_id=2,
        invitee_email=None,
        invite_code="abc123",
        team_name=None,
        message=None,
        status="pending",
        expires_at=now,
        responded_at=None,
        created_at=now,
    )
    fields.update(overrides)
    return TeamInvite(**fields)


INVITE_BODY = {
    "event": {"kind": "tournament", "id": 3},
    "invitee": {"kind": "user", "user_id": 2},
}


class TestAuthentication:
    def test_missing_token_is_rejected(self):
        client = TestClient(app)
        response = client.get("/api/matchmaking/suggestions")
        assert response.status_code in (401, 403)

    def test_invalid_token_is_rejected(self, monkeypatch):
        monkeypatch.setattr(auth_service, "verify_token", lambda token: None, raising=True)
        client = TestClient(app)
        response = client.get(
            "/api/matchmaking/suggestions", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401


class TestMatchmakingRoutes:
    def test_suggestions_empty_without_request(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_get_suggestions(session, user_id, limit=10):
            assert limit == 5
            return None, []

        monkeypatch.setattr(matchmaking_service, "get_suggestions", fake_get_suggestions)
        response = client.get("/api/matchmaking/suggestions?limit=5", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"request_id": None, "suggestions": []}

    def test_suggestions_limit_is_validated(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.get("/api/matchmaking/suggestions?limit=0", headers=headers)
        assert response.status_code == 422

    def test_create_request_validation(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.post(
            "/api/matchmaking/requests",
            json={"game_format": "doubles", "latitude": 33.7},
            headers=headers,
        )
        assert response.status_code == 422

    def test_accept_match_success(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=4)

        async def fake_commit(session, request_id, candidate_request_id, acting_user_id=None):
            assert (request_id, candidate_request_id, acting_user_id) == (10, 11, 4)
            return CommitMatchResponse(
                game_id=99, game_format="doubles", request_ids=[10, 11], player_ids=[4, 5]
            )

        monkeypatch.setattr(matchmaking_service, "commit_match", fake_commit)
        response = client.post(
            "/api/matchmaking/requests/10/accept", json={"matched_request_id": 11}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["game_id"] == 99

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (NotFoundError("Match request not found"), 404),
            (ForbiddenError("not yours"), 403),
            (InvalidStateError("Match request 11 is already matched", status="matched"), 400),
            (ExpiredError("Match request 11 has expired"), 410),
            (TransientStorageError("retry"), 503),
        ],
    )
    def test_accept_match_error_mapping(self, monkeypatch, error, status_code):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_commit(session, request_id, candidate_request_id, acting_user_id=None):
            raise error

        monkeypatch.setattr(matchmaking_service, "commit_match", fake_commit)
        response = client.post(
            "/api/matchmaking/requests/10/accept", json={"matched_request_id": 11}, headers=headers
        )
        assert response.status_code == status_code
        assert response.json()["detail"] == str(error)


class TestInviteRoutes:
    def test_create_invite_returns_share_url(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_create_invite(session, inviter_id, data):
            assert data.invitee.user_id == 2
            return _fake_invite()

        monkeypatch.setattr(invite_service, "create_invite", fake_create_invite)
        response = client.post("/api/invites", json=INVITE_BODY, headers=headers)
        assert response.status_code == 201
        body = response.json()
        assert body["invite_code"] == "abc123"
        assert body["invite_url"].endswith("/invite/abc123")
        assert body["event"] == {"kind": "tournament", "id": 3, "sub_event_id": None}

    def test_create_invite_duplicate_is_409(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_create_invite(session, inviter_id, data):
            raise ConflictError("An invite has already been sent to this player for this event")

        monkeypatch.setattr(invite_service, "create_invite", fake_create_invite)
        response = client.post("/api/invites", json=INVITE_BODY, headers=headers)
        assert response.status_code == 409

    def test_create_invite_rejects_malformed_invitee(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        body = {"event": {"kind": "tournament", "id": 3}, "invitee": {"kind": "email", "email": "nope"}}
        response = client.post("/api/invites", json=body, headers=headers)
        assert response.status_code == 422

        body = {"event": {"kind": "club", "id": 3}, "invitee": {"kind": "user", "user_id": 2}}
        response = client.post("/api/invites", json=body, headers=headers)
        assert response.status_code == 422

    def test_public_details_need_no_auth(self, monkeypatch):
        async def fake_details(session, code):
            return InviteDetailsResponse(
                invite_code=code,
                status="expired",
                expires_at="2026-01-01T00:00:00+00:00",
                inviter=InviterSummary(id=1, name="Ivy"),
                event={"kind": "tournament", "id": 3, "name": "Summer Slam"},
            )

        monkeypatch.setattr(invite_service, "get_invite_details", fake_details)
        response = TestClient(app).get("/api/invites/abc123")
        assert response.status_code == 200
        assert response.json()["status"] == "expired"

    def test_sent_list_is_not_captured_by_code_route(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_sent(session, user_id):
            return [_fake_invite(), _fake_invite(id=8, invite_code="def456")]

        monkeypatch.setattr(invite_service, "list_sent_invites", fake_sent)
        response = client.get("/api/invites/my/sent", headers=headers)
        assert response.status_code == 200
        assert [i["invite_code"] for i in response.json()] == ["abc123", "def456"]

    def test_accept_invite_success(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=2)

        async def fake_accept(session, code, accepting_user_id):
            assert (code, accepting_user_id) == ("abc123", 2)
            return AcceptInviteResponse(
                success=True,
                message="Invitation accepted. You are now registered as a team!",
                event=TournamentRef(id=3),
                team_name="Ivy & Pat",
                registration_id=12,
            )

        monkeypatch.setattr(registration_service, "accept_invite", fake_accept)
        response = client.post("/api/invites/abc123/accept", headers=headers)
        assert response.status_code == 200
        assert response.json()["registration_id"] == 12

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (NotFoundError("Invite not found"), 404),
            (ExpiredError(), 410),
            (InvalidStateError("Invite already accepted", status="accepted"), 400),
            (ForbiddenError("This invite was sent to a different user"), 403),
            (TransientStorageError("Could not accept the invite, please retry"), 503),
        ],
    )
    def test_accept_invite_error_mapping(self, monkeypatch, error, status_code):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_accept(session, code, accepting_user_id):
            raise error

        monkeypatch.setattr(registration_service, "accept_invite", fake_accept)
        response = client.post("/api/invites/abc123/accept", headers=headers)
        assert response.status_code == status_code

    def test_unexpected_error_is_500(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_decline(session, code, user_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(invite_service, "decline_invite", fake_decline)
        response = client.post("/api/invites/abc123/decline", headers=headers)
        assert response.status_code == 500

    def test_cancel_by_non_inviter_is_403(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_cancel(session, code, user_id):
            raise ForbiddenError("Only the inviter can cancel this invite")

        monkeypatch.setattr(invite_service, "cancel_invite", fake_cancel)
        response = client.delete("/api/invites/abc123", headers=headers)
        assert response.status_code == 403


class TestPartnerRoutes:
    def test_list_passes_filters(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        seen = {}

        async def fake_list_page(session, page=1, limit=20, **filters):
            seen.update(filters, page=page, limit=limit)
            return PartnerListingPage(items=[], page=page, limit=limit, total=0, total_pages=0)

        monkeypatch.setattr(partner_listing_service, "list_page", fake_list_page)
        response = client.get(
            "/api/partners/listings?event_kind=league&event_id=4&skill_min=3.5&page=2&limit=5",
            headers=headers,
        )
        assert response.status_code == 200
        assert seen["event_kind"] == "league"
        assert seen["event_id"] == 4
        assert seen["skill_min"] == 3.5
        assert (seen["page"], seen["limit"]) == (2, 5)

    def test_list_validates_skill_bounds(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.get("/api/partners/listings?skill_min=9", headers=headers)
        assert response.status_code == 422

    def test_create_duplicate_listing_is_409(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_create(session, user_id, data):
            raise ConflictError("You already have an active listing for this event")

        monkeypatch.setattr(partner_listing_service, "create_listing", fake_create)
        response = client.post(
            "/api/partners/listings",
            json={"event": {"kind": "tournament", "id": 3}},
            headers=headers,
        )
        assert response.status_code == 409

    def test_contact_requires_message(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.post("/api/partners/listings/5/contact", json={}, headers=headers)
        assert response.status_code == 422

    def test_contact_own_listing_is_400(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_contact(session, listing_id, user_id, message):
            raise InvalidStateError("You cannot contact your own listing")

        monkeypatch.setattr(partner_listing_service, "contact_listing_owner", fake_contact)
        response = client.post(
            "/api/partners/listings/5/contact", json={"message": "hi"}, headers=headers
        )
        assert response.status_code == 400

    def test_delete_someone_elses_listing_is_403(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_delete(session, listing_id, user_id):
            raise ForbiddenError("You can only delete your own listings")

        monkeypatch.setattr(partner_listing_service, "delete_listing", fake_delete)
        response = client.delete("/api/partners/listings/5", headers=headers)
        assert response.status_code == 403


class TestNotificationRoutes:
    def test_inbox_passes_paging(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=9)
        seen = {}

        async def fake_list(session, user_id, limit=50, offset=0, unread_only=False):
            seen.update(user_id=user_id, limit=limit, offset=offset, unread_only=unread_only)
            return {"notifications": [], "total_count": 0, "has_more": False}

        monkeypatch.setattr(notification_service, "get_user_notifications", fake_list)
        response = client.get(
            "/api/notifications?limit=5&offset=10&unread_only=true", headers=headers
        )

        assert response.status_code == 200
        assert response.json() == {"notifications": [], "total_count": 0, "has_more": False}
        assert seen == {"user_id": 9, "limit": 5, "offset": 10, "unread_only": True}

    def test_inbox_limit_is_bounded(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.get("/api/notifications?limit=0", headers=headers)
        assert response.status_code == 422
