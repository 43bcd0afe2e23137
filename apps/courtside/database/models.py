"""
SQLAlchemy ORM models for the partner-matching and team-invite engine.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    Numeric,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from courtside.database.db import Base
from courtside.utils.datetime_utils import utcnow


def _in_values(column: str, enum_cls) -> str:
    """Build a CHECK expression restricting a column to the enum's values."""
    return f"{column} IN ({', '.join(repr(e.value) for e in enum_cls)})"


class SkillLevel(str, enum.Enum):
    """Ordinal skill ladder, lowest first."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"
    PRO = "pro"


class GameFormat(str, enum.Enum):
    """Game format enum."""

    SINGLES = "singles"
    DOUBLES = "doubles"
    MIXED_DOUBLES = "mixed_doubles"


class EventKind(str, enum.Enum):
    """Which event aggregate a listing or invite points at."""

    TOURNAMENT = "tournament"
    LEAGUE = "league"


class InviteeKind(str, enum.Enum):
    """How a team invite addresses its invitee."""

    USER = "user"
    EMAIL = "email"


class MatchRequestStatus(str, enum.Enum):
    """Match request status enum. Only pending is non-terminal."""

    PENDING = "pending"
    MATCHED = "matched"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PartnerListingStatus(str, enum.Enum):
    """Partner listing status enum."""

    ACTIVE = "active"
    MATCHED = "matched"
    EXPIRED = "expired"


class InviteStatus(str, enum.Enum):
    """Team invite status enum. Transitions: pending → accepted | declined | expired."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class TournamentStatus(str, enum.Enum):
    """Tournament lifecycle."""

    DRAFT = "draft"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LeagueStatus(str, enum.Enum):
    """League and league-season lifecycle."""

    DRAFT = "draft"
    REGISTRATION_OPEN = "registration_open"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    MATCH_FOUND = "match_found"
    MATCH_REQUEST_EXPIRED = "match_request_expired"
    TEAM_INVITE = "team_invite"
    INVITE_ACCEPTED = "invite_accepted"
    INVITE_DECLINED = "invite_declined"
    INVITE_EXPIRED = "invite_expired"
    PARTNER_INTEREST = "partner_interest"
    PARTNER_LISTING_EXPIRED = "partner_listing_expired"


class User(Base):
    """User directory entry (identity lives in the auth provider)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    display_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, unique=True)  # stored lowercase
    skill_level = Column(String(20), nullable=True)
    rating = Column(Float, nullable=True)  # matchmaking rating, refreshed by the rating service
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    ratings = relationship("UserRating", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_users_email", "email"),
    )


class UserRating(Base):
    """Per-format rating supplied by the external rating service."""

    __tablename__ = "user_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_format = Column(String(20), nullable=False)
    rating = Column(Numeric(4, 2), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    user = relationship("User", back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("user_id", "game_format", name="uq_user_ratings_user_format"),
        Index("idx_user_ratings_user", "user_id"),
    )


class Tournament(Base):
    """Tournament event. Owns the current_participants counter."""

    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    game_format = Column(String(20), nullable=False, default=GameFormat.DOUBLES.value)
    status = Column(
        String(30),
        nullable=False,
        default=TournamentStatus.REGISTRATION_OPEN.value,
        server_default=TournamentStatus.REGISTRATION_OPEN.value,
    )
    max_participants = Column(Integer, nullable=True)
    current_participants = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(_in_values("status", TournamentStatus), name="ck_tournaments_status"),
        CheckConstraint("current_participants >= 0", name="ck_tournaments_participants"),
    )


class League(Base):
    """League event. Capacity is tracked through participant rows per season."""

    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    game_format = Column(String(20), nullable=False, default=GameFormat.DOUBLES.value)
    status = Column(
        String(30),
        nullable=False,
        default=LeagueStatus.REGISTRATION_OPEN.value,
        server_default=LeagueStatus.REGISTRATION_OPEN.value,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    seasons = relationship("LeagueSeason", back_populates="league")

    __table_args__ = (
        CheckConstraint(_in_values("status", LeagueStatus), name="ck_leagues_status"),
    )


class LeagueSeason(Base):
    """Numbered season within a league; the highest number is the current one."""

    __tablename__ = "league_seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    season_number = Column(Integer, nullable=False)
    max_participants = Column(Integer, nullable=True)
    status = Column(String(30), nullable=False, default=LeagueStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    league = relationship("League", back_populates="seasons")

    __table_args__ = (
        UniqueConstraint("league_id", "season_number", name="uq_league_seasons_number"),
        Index("idx_league_seasons_league", "league_id"),
    )


class TournamentRegistration(Base):
    """A team entered into a tournament. At most one per accepted invite."""

    __tablename__ = "tournament_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    division_id = Column(Integer, nullable=True)
    team_name = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="registered")
    invite_id = Column(Integer, ForeignKey("team_invites.id", ondelete="SET NULL"), nullable=True)
    registered_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    players = relationship(
        "TournamentRegistrationPlayer",
        back_populates="registration",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("invite_id", name="uq_tournament_registrations_invite"),
        Index("idx_tournament_registrations_tournament", "tournament_id"),
    )


class TournamentRegistrationPlayer(Base):
    """Player membership on a tournament registration, with a rating snapshot."""

    __tablename__ = "tournament_registration_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registration_id = Column(
        Integer, ForeignKey("tournament_registrations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_captain = Column(Boolean, nullable=False, default=False)
    rating_at_registration = Column(Numeric(4, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    registration = relationship("TournamentRegistration", back_populates="players")

    __table_args__ = (
        UniqueConstraint("registration_id", "user_id", name="uq_tournament_registration_players"),
        Index("idx_tournament_registration_players_user", "user_id"),
    )


class LeagueParticipant(Base):
    """A team entered into a league season. At most one per accepted invite."""

    __tablename__ = "league_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(Integer, ForeignKey("league_seasons.id", ondelete="CASCADE"), nullable=False)
    team_name = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    invite_id = Column(Integer, ForeignKey("team_invites.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    players = relationship(
        "LeagueParticipantPlayer",
        back_populates="participant",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("invite_id", name="uq_league_participants_invite"),
        Index("idx_league_participants_season", "season_id"),
    )


class LeagueParticipantPlayer(Base):
    """Player membership on a league participant, with a rating snapshot."""

    __tablename__ = "league_participant_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(
        Integer, ForeignKey("league_participants.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_captain = Column(Boolean, nullable=False, default=False)
    rating_at_registration = Column(Numeric(4, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    participant = relationship("LeagueParticipant", back_populates="players")

    __table_args__ = (
        UniqueConstraint("participant_id", "user_id", name="uq_league_participant_players"),
        Index("idx_league_participant_players_user", "user_id"),
    )


class Game(Base):
    """Game session created when two match requests are committed together."""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_format = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    players = relationship("GamePlayer", back_populates="game", lazy="selectin")


class GamePlayer(Base):
    """Player seat in a game (team 1 or team 2)."""

    __tablename__ = "game_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team = Column(Integer, nullable=False)

    game = relationship("Game", back_populates="players")

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_game_players"),
        CheckConstraint("team IN (1, 2)", name="ck_game_players_team"),
    )


class MatchRequest(Base):
    """Open "looking for a game" request.

    Status transitions: pending → matched | cancelled | expired. Rows are
    never deleted. A user holds at most one pending request.
    """

    __tablename__ = "match_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_format = Column(String(20), nullable=False)
    skill_level_min = Column(String(20), nullable=True)
    skill_level_max = Column(String(20), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    max_distance_km = Column(Float, nullable=True)
    preferred_times = Column(Text, nullable=True)  # JSON list of strings
    status = Column(String(20), nullable=False, default=MatchRequestStatus.PENDING.value)
    matched_game_id = Column(Integer, ForeignKey("games.id", ondelete="SET NULL"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(_in_values("status", MatchRequestStatus), name="ck_match_requests_status"),
        CheckConstraint(_in_values("game_format", GameFormat), name="ck_match_requests_format"),
        Index("idx_match_requests_status_expires", "status", "expires_at"),
        Index("idx_match_requests_format_status", "game_format", "status"),
        Index(
            "uq_match_requests_one_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )


class PartnerListing(Base):
    """Standing "need a partner for this event" post.

    One active listing per (user, event). event_key is the canonical
    tournament:<id>[:<sub>] / league:<id>[:<sub>] string.
    """

    __tablename__ = "partner_listings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_kind = Column(String(20), nullable=False)
    event_id = Column(Integer, nullable=False)
    sub_event_id = Column(Integer, nullable=True)
    event_key = Column(String(64), nullable=False)
    skill_level_min = Column(Float, nullable=True)
    skill_level_max = Column(Float, nullable=True)
    message = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=PartnerListingStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(_in_values("status", PartnerListingStatus), name="ck_partner_listings_status"),
        CheckConstraint(_in_values("event_kind", EventKind), name="ck_partner_listings_event_kind"),
        Index("idx_partner_listings_event", "event_kind", "event_id", "status"),
        Index(
            "uq_partner_listings_one_active",
            "user_id",
            "event_key",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class TeamInvite(Base):
    """Directed, code-addressable partner invitation for one event.

    Status transitions: pending → accepted | declined | expired (all terminal).
    invite_code is the only handle shared outside the system.
    """

    __tablename__ = "team_invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_kind = Column(String(20), nullable=False)
    event_id = Column(Integer, nullable=False)
    sub_event_id = Column(Integer, nullable=True)
    event_key = Column(String(64), nullable=False)
    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    invitee_kind = Column(String(10), nullable=False)
    invitee_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invitee_email = Column(String(255), nullable=True)  # stored lowercase
    invitee_key = Column(String(300), nullable=False)
    invite_code = Column(String(64), nullable=False)
    team_name = Column(String(100), nullable=True)
    message = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=InviteStatus.PENDING.value)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(_in_values("status", InviteStatus), name="ck_team_invites_status"),
        CheckConstraint(_in_values("event_kind", EventKind), name="ck_team_invites_event_kind"),
        CheckConstraint(
            "invitee_user_id IS NOT NULL OR invitee_email IS NOT NULL",
            name="ck_team_invites_invitee",
        ),
        Index("idx_team_invites_code", "invite_code", unique=True),
        Index("idx_team_invites_status_expires", "status", "expires_at"),
        Index("idx_team_invites_inviter", "inviter_id"),
        Index("idx_team_invites_invitee_user", "invitee_user_id"),
        Index("idx_team_invites_invitee_email", "invitee_email"),
        Index(
            "uq_team_invites_one_pending",
            "inviter_id",
            "event_key",
            "invitee_key",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )


class Notification(Base):
    """User notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(
        Text, nullable=True
    )  # JSON string for flexible metadata (invite_id, game_id, etc.)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    link_url = Column(String(500), nullable=True)  # Navigation target
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
