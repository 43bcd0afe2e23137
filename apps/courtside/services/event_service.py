"""
Event store access for tournaments and leagues.

Registration rows and the tournament participant counter are written here,
always on the caller's session so they share the caller's transaction.
"""

from decimal import Decimal
from typing import Iterable, Optional, Tuple, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from courtside.database.models import (
    EventKind,
    League,
    LeagueParticipant,
    LeagueParticipantPlayer,
    LeagueSeason,
    LeagueStatus,
    Tournament,
    TournamentRegistration,
    TournamentRegistrationPlayer,
    TournamentStatus,
)
from courtside.services.exceptions import InvalidStateError
import logging

logger = logging.getLogger(__name__)

Event = Union[Tournament, League]

# (user_id, is_captain, rating_at_registration)
PlayerEntry = Tuple[int, bool, Decimal]


def _kind_value(kind) -> str:
    return getattr(kind, "value", kind)


async def get_event(session: AsyncSession, kind, event_id: int) -> Optional[Event]:
    """Load a tournament or league by kind and id, or None."""
    kind = _kind_value(kind)
    if kind == EventKind.TOURNAMENT.value:
        return await session.get(Tournament, event_id)
    if kind == EventKind.LEAGUE.value:
        return await session.get(League, event_id)
    return None


def is_registration_open(event: Event) -> bool:
    """Both tournaments and leagues accept teams only while registration is open."""
    if isinstance(event, Tournament):
        return event.status == TournamentStatus.REGISTRATION_OPEN.value
    return event.status == LeagueStatus.REGISTRATION_OPEN.value


def event_summary(kind, event: Event) -> dict:
    """Short event description embedded in invite and listing responses."""
    return {
        "kind": _kind_value(kind),
        "id": event.id,
        "name": event.name,
        "game_format": event.game_format,
        "status": event.status,
    }


async def get_current_season(session: AsyncSession, league_id: int) -> Optional[LeagueSeason]:
    """The league's season with the highest season number, or None."""
    result = await session.execute(
        select(LeagueSeason)
        .where(LeagueSeason.league_id == league_id)
        .order_by(LeagueSeason.season_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def increment_participant_count(session: AsyncSession, tournament_id: int) -> int:
    """
    Add one team to a tournament's participant counter.

    The increment is a single UPDATE evaluated by the database, guarded by the
    capacity limit, so concurrent registrations can never overshoot or lose
    an increment.

    Args:
        session: Database session (caller owns the transaction)
        tournament_id: Tournament ID

    Returns:
        The new participant count

    Raises:
        InvalidStateError: If the tournament is at capacity
    """
    result = await session.execute(
        update(Tournament)
        .where(
            Tournament.id == tournament_id,
            or_(
                Tournament.max_participants.is_(None),
                Tournament.current_participants < Tournament.max_participants,
            ),
        )
        .values(current_participants=Tournament.current_participants + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError("Tournament is full", status="full")

    count_result = await session.execute(
        select(Tournament.current_participants).where(Tournament.id == tournament_id)
    )
    return count_result.scalar_one()


async def create_registration(
    session: AsyncSession,
    tournament_id: int,
    team_name: str,
    invite_id: Optional[int] = None,
    division_id: Optional[int] = None,
) -> TournamentRegistration:
    """Insert a tournament registration row (no players yet)."""
    registration = TournamentRegistration(
        tournament_id=tournament_id,
        division_id=division_id,
        team_name=team_name,
        status="registered",
        invite_id=invite_id,
    )
    session.add(registration)
    await session.flush()
    return registration


async def add_registration_players(
    session: AsyncSession, registration_id: int, players: Iterable[PlayerEntry]
) -> None:
    """Insert the player membership rows for a tournament registration."""
    session.add_all(
        [
            TournamentRegistrationPlayer(
                registration_id=registration_id,
                user_id=user_id,
                is_captain=is_captain,
                rating_at_registration=rating,
            )
            for user_id, is_captain, rating in players
        ]
    )
    await session.flush()


async def create_participant(
    session: AsyncSession,
    season_id: int,
    team_name: str,
    invite_id: Optional[int] = None,
) -> LeagueParticipant:
    """Insert a league participant row (no players yet)."""
    participant = LeagueParticipant(
        season_id=season_id,
        team_name=team_name,
        status="active",
        invite_id=invite_id,
    )
    session.add(participant)
    await session.flush()
    return participant


async def add_participant_players(
    session: AsyncSession, participant_id: int, players: Iterable[PlayerEntry]
) -> None:
    """Insert the player membership rows for a league participant."""
    session.add_all(
        [
            LeagueParticipantPlayer(
                participant_id=participant_id,
                user_id=user_id,
                is_captain=is_captain,
                rating_at_registration=rating,
            )
            for user_id, is_captain, rating in players
        ]
    )
    await session.flush()
