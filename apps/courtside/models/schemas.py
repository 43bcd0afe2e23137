"""
Pydantic models for API request/response validation.

Event and invitee references are tagged unions: the ``kind`` field selects
the variant, so "both set" and "neither set" cannot be expressed.
"""

from typing import Annotated, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict, model_validator

from courtside.database.models import GameFormat, SkillLevel
from courtside.utils.constants import (
    LISTING_SKILL_MAX,
    LISTING_SKILL_MIN,
    MATCH_REQUEST_MAX_DISTANCE_KM,
    MATCH_REQUEST_MAX_TTL_HOURS,
    MATCH_REQUEST_TTL_HOURS,
)
from courtside.utils.geo_utils import skill_index

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Tagged references
# ---------------------------------------------------------------------------


class TournamentRef(BaseModel):
    """Reference to a tournament, optionally narrowed to a division."""

    kind: Literal["tournament"] = "tournament"
    id: int = Field(gt=0)
    sub_event_id: Optional[int] = Field(default=None, gt=0)

    @property
    def key(self) -> str:
        return _event_key(self.kind, self.id, self.sub_event_id)


class LeagueRef(BaseModel):
    """Reference to a league, optionally narrowed to a division."""

    kind: Literal["league"] = "league"
    id: int = Field(gt=0)
    sub_event_id: Optional[int] = Field(default=None, gt=0)

    @property
    def key(self) -> str:
        return _event_key(self.kind, self.id, self.sub_event_id)


EventRef = Annotated[Union[TournamentRef, LeagueRef], Field(discriminator="kind")]


class ByUser(BaseModel):
    """Invitee addressed by user id."""

    kind: Literal["user"] = "user"
    user_id: int = Field(gt=0)

    @property
    def key(self) -> str:
        return f"user:{self.user_id}"


class ByEmail(BaseModel):
    """Invitee addressed by email (may not have an account yet)."""

    kind: Literal["email"] = "email"
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)

    @model_validator(mode="after")
    def normalize_email(self):
        """Emails compare case-insensitively; store them lowercase."""
        self.email = self.email.strip().lower()
        return self

    @property
    def key(self) -> str:
        return f"email:{self.email}"


InviteeRef = Annotated[Union[ByUser, ByEmail], Field(discriminator="kind")]


def _event_key(kind: str, event_id: int, sub_event_id: Optional[int]) -> str:
    if sub_event_id is None:
        return f"{kind}:{event_id}"
    return f"{kind}:{event_id}:{sub_event_id}"


def event_ref_from_columns(kind: str, event_id: int, sub_event_id: Optional[int] = None):
    """Rebuild an EventRef from its stored (kind, id, sub_event_id) columns."""
    if kind == "tournament":
        return TournamentRef(id=event_id, sub_event_id=sub_event_id)
    if kind == "league":
        return LeagueRef(id=event_id, sub_event_id=sub_event_id)
    raise ValueError(f"Unknown event kind: {kind}")


# ---------------------------------------------------------------------------
# Matchmaking
# ---------------------------------------------------------------------------


class CreateMatchRequest(BaseModel):
    """Request to open a "looking for a game" match request."""

    game_format: GameFormat
    skill_level_min: Optional[SkillLevel] = None
    skill_level_max: Optional[SkillLevel] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    max_distance_km: Optional[float] = Field(default=None, gt=0, le=MATCH_REQUEST_MAX_DISTANCE_KM)
    preferred_times: Optional[List[str]] = None
    expires_in_hours: int = Field(default=MATCH_REQUEST_TTL_HOURS, ge=1, le=MATCH_REQUEST_MAX_TTL_HOURS)

    @model_validator(mode="after")
    def validate_bounds(self):
        """Skill bounds must be ordered and coordinates come in pairs."""
        if (
            self.skill_level_min is not None
            and self.skill_level_max is not None
            and skill_index(self.skill_level_min) > skill_index(self.skill_level_max)
        ):
            raise ValueError("skill_level_min cannot be above skill_level_max")
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self


class MatchRequestResponse(BaseModel):
    """A match request as returned to its owner."""

    id: int
    user_id: int
    game_format: str
    skill_level_min: Optional[str] = None
    skill_level_max: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    max_distance_km: Optional[float] = None
    preferred_times: Optional[List[str]] = None
    status: str
    matched_game_id: Optional[int] = None
    expires_at: str
    created_at: Optional[str] = None


class MatchCandidateResponse(BaseModel):
    """One ranked suggestion."""

    request_id: int
    user_id: int
    user_name: str
    skill_level: Optional[str] = None
    rating: Optional[float] = None
    game_format: str
    distance_km: Optional[float] = None
    score: int
    preferred_times: Optional[List[str]] = None
    expires_at: str


class SuggestionsResponse(BaseModel):
    """Suggestions for the caller's pending request (empty when there is none)."""

    request_id: Optional[int] = None
    suggestions: List[MatchCandidateResponse]


class CommitMatchRequest(BaseModel):
    """Body of the mutual-match commit."""

    matched_request_id: int = Field(gt=0)


class CommitMatchResponse(BaseModel):
    """Result of a committed match."""

    game_id: int
    game_format: str
    request_ids: List[int]
    player_ids: List[int]


class MatchmakingStatsResponse(BaseModel):
    """Open-request counters."""

    active_requests: int


# ---------------------------------------------------------------------------
# Team invites
# ---------------------------------------------------------------------------


class CreateInviteRequest(BaseModel):
    """Request to invite a partner to an event."""

    event: EventRef
    invitee: InviteeRef
    team_name: Optional[str] = Field(default=None, max_length=100)
    message: Optional[str] = Field(default=None, max_length=500)


class InviteResponse(BaseModel):
    """A team invite as seen by its inviter or invitee."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    invite_code: str
    event: EventRef
    inviter_id: int
    invitee_user_id: Optional[int] = None
    invitee_email: Optional[str] = None
    team_name: Optional[str] = None
    message: Optional[str] = None
    status: str
    effective_status: str
    expires_at: str
    responded_at: Optional[str] = None
    created_at: Optional[str] = None
    invite_url: Optional[str] = None


class InviterSummary(BaseModel):
    """Public inviter details shown on the invite landing page."""

    id: int
    name: str
    skill_level: Optional[str] = None
    rating: Optional[float] = None


class InviteDetailsResponse(BaseModel):
    """Public-facing invite details for the landing page."""

    invite_code: str
    status: str
    team_name: Optional[str] = None
    message: Optional[str] = None
    expires_at: str
    inviter: InviterSummary
    event: Dict


class AcceptInviteResponse(BaseModel):
    """Response after accepting an invite."""

    success: bool
    message: str
    event: EventRef
    team_name: str
    registration_id: Optional[int] = None
    participant_id: Optional[int] = None


class InviteActionResponse(BaseModel):
    """Response for decline/cancel."""

    success: bool
    message: str


# ---------------------------------------------------------------------------
# Partner listings
# ---------------------------------------------------------------------------


class CreatePartnerListingRequest(BaseModel):
    """Request to post a "seeking partner" listing for an event."""

    event: EventRef
    skill_level_min: Optional[float] = Field(default=None, ge=LISTING_SKILL_MIN, le=LISTING_SKILL_MAX)
    skill_level_max: Optional[float] = Field(default=None, ge=LISTING_SKILL_MIN, le=LISTING_SKILL_MAX)
    message: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def validate_skill_range(self):
        """Ensure skill_level_min <= skill_level_max when both are given."""
        if (
            self.skill_level_min is not None
            and self.skill_level_max is not None
            and self.skill_level_min > self.skill_level_max
        ):
            raise ValueError("skill_level_min cannot be above skill_level_max")
        return self


class PartnerListingResponse(BaseModel):
    """A partner listing with its owner's public details."""

    id: int
    user_id: int
    user_name: str
    event: EventRef
    skill_level_min: Optional[float] = None
    skill_level_max: Optional[float] = None
    message: Optional[str] = None
    status: str
    created_at: Optional[str] = None


class PartnerListingPage(BaseModel):
    """Paginated listing search result."""

    items: List[PartnerListingResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class ContactListingRequest(BaseModel):
    """Note sent to a listing owner."""

    message: str = Field(min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    """Notification response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    is_read: bool
    read_at: Optional[str] = None
    link_url: Optional[str] = None
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool
