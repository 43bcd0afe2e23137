"""
Atomic invite acceptance.

accept_invite() turns a pending team invite into a tournament registration
or league participant. The status flip, the team row, both player rows,
the listing cleanup and the tournament counter increment share one
transaction: either all of them commit or the invite stays pending.
The inviter is notified only after the commit.

Concurrent acceptances are serialized twice over: the invite row is read
with SELECT ... FOR UPDATE, and the flip to ``accepted`` is an UPDATE
guarded by ``status = 'pending'`` whose row count must be 1. Exactly one
caller gets past that point; every other caller sees the terminal status.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import (
    EventKind,
    InviteStatus,
    NotificationType,
    PartnerListing,
    PartnerListingStatus,
    TeamInvite,
    User,
)
from courtside.models.schemas import AcceptInviteResponse, event_ref_from_columns
from courtside.services import event_service, invite_service, notification_service, user_service
from courtside.services.exceptions import (
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
)
from courtside.utils.constants import DEFAULT_REGISTRATION_RATING
from courtside.utils.datetime_utils import is_past, utcnow

logger = logging.getLogger(__name__)

PENDING = InviteStatus.PENDING.value


def default_team_name(inviter: Optional[User], accepter: User) -> str:
    return f"{user_service.display_name(inviter)} & {user_service.display_name(accepter)}"


async def _rating_snapshot(session: AsyncSession, user_id: int, game_format: Optional[str]) -> Decimal:
    rating = await user_service.get_format_rating(session, user_id, game_format)
    if rating is None:
        return Decimal(DEFAULT_REGISTRATION_RATING)
    return Decimal(str(rating))


async def accept_invite(
    session: AsyncSession, code: str, accepting_user_id: int
) -> AcceptInviteResponse:
    """
    Accept a team invite and register the team for the invite's event.

    Validation order: unknown code, non-pending status, lapsed expiry (which
    is persisted before failing), self-accept, then invitee identity.

    Args:
        session: Database session
        code: Invite share code
        accepting_user_id: Authenticated user accepting the invite

    Returns:
        AcceptInviteResponse with the registration or participant id

    Raises:
        NotFoundError: If the code, the accepting user or the event is unknown
        InvalidStateError: If the invite is not pending, the accepter is the
            inviter, the league has no season or the tournament is full
        ExpiredError: If the invite lapsed (it is marked expired)
        ForbiddenError: If the invite is addressed to someone else
        TransientStorageError: If the store fails mid-transaction
    """
    now = utcnow()
    try:
        invite = await invite_service.get_invite_by_code(session, code, for_update=True)
        if invite is None:
            raise NotFoundError("Invite not found")
        if invite.status != PENDING:
            raise InvalidStateError(f"Invite already {invite.status}", status=invite.status)
        if is_past(invite.expires_at, now):
            await _expire(session, invite, now)
            raise ExpiredError()
        if invite.inviter_id == accepting_user_id:
            raise InvalidStateError("You cannot accept your own invite", status=invite.status)

        accepter = await session.get(User, accepting_user_id)
        if accepter is None:
            raise NotFoundError("User not found")
        if invite.invitee_user_id is not None and invite.invitee_user_id != accepting_user_id:
            raise ForbiddenError("This invite was sent to a different user")
        if invite.invitee_email is not None and invite.invitee_email != user_service.normalize_email(
            accepter.email
        ):
            raise ForbiddenError("This invite was sent to a different email address")

        flipped = await session.execute(
            update(TeamInvite)
            .where(TeamInvite.id == invite.id, TeamInvite.status == PENDING)
            .values(
                status=InviteStatus.ACCEPTED.value,
                invitee_user_id=accepting_user_id,
                responded_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            status_result = await session.execute(
                select(TeamInvite.status).where(TeamInvite.id == invite.id)
            )
            status = status_result.scalar_one_or_none()
            raise InvalidStateError(f"Invite already {status}", status=status)

        event = await event_service.get_event(session, invite.event_kind, invite.event_id)
        if event is None:
            raise NotFoundError("Event not found")

        inviter = await session.get(User, invite.inviter_id)
        team_name = invite.team_name or default_team_name(inviter, accepter)
        players = [
            (invite.inviter_id, True, await _rating_snapshot(session, invite.inviter_id, event.game_format)),
            (accepting_user_id, False, await _rating_snapshot(session, accepting_user_id, event.game_format)),
        ]

        registration_id = None
        participant_id = None
        if invite.event_kind == EventKind.TOURNAMENT.value:
            registration = await event_service.create_registration(
                session,
                tournament_id=invite.event_id,
                team_name=team_name,
                invite_id=invite.id,
                division_id=invite.sub_event_id,
            )
            registration_id = registration.id
            await event_service.add_registration_players(session, registration_id, players)
            await event_service.increment_participant_count(session, invite.event_id)
        else:
            season = await event_service.get_current_season(session, invite.event_id)
            if season is None:
                raise InvalidStateError("No active season found for this league")
            participant = await event_service.create_participant(
                session, season_id=season.id, team_name=team_name, invite_id=invite.id
            )
            participant_id = participant.id
            await event_service.add_participant_players(session, participant_id, players)

        await session.execute(
            update(PartnerListing)
            .where(
                PartnerListing.user_id.in_([invite.inviter_id, accepting_user_id]),
                PartnerListing.event_kind == invite.event_kind,
                PartnerListing.event_id == invite.event_id,
                PartnerListing.status == PartnerListingStatus.ACTIVE.value,
            )
            .values(status=PartnerListingStatus.MATCHED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        await session.commit()
    except ExpiredError:
        raise
    except (NotFoundError, InvalidStateError, ForbiddenError):
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Accepting invite %s failed, rolled back: %s", code, e)
        raise TransientStorageError("Could not accept the invite, please retry") from e
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Invite %s accepted by user %s (%s %s, team %r)",
        invite.id,
        accepting_user_id,
        invite.event_kind,
        invite.event_id,
        team_name,
    )

    await notification_service.notify(
        user_id=invite.inviter_id,
        type=NotificationType.INVITE_ACCEPTED.value,
        title="Invitation Accepted",
        message=(
            f"{user_service.display_name(accepter)} has accepted your partner invitation "
            f"for {event.name}. Your team is now registered!"
        ),
        data={
            "invite_id": invite.id,
            "registration_id": registration_id,
            "participant_id": participant_id,
        },
        link_url=invite_service.event_link(invite.event_kind, invite.event_id),
    )

    return AcceptInviteResponse(
        success=True,
        message="Invitation accepted. You are now registered as a team!",
        event=event_ref_from_columns(invite.event_kind, invite.event_id, invite.sub_event_id),
        team_name=team_name,
        registration_id=registration_id,
        participant_id=participant_id,
    )


async def _expire(session: AsyncSession, invite: TeamInvite, now) -> None:
    """Persist the lapse of an invite found expired on the accept path."""
    result = await session.execute(
        update(TeamInvite)
        .where(TeamInvite.id == invite.id, TeamInvite.status == PENDING)
        .values(status=InviteStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if result.rowcount == 1:
        logger.info("Invite %s expired on accept attempt", invite.id)
