"""
Team invite ledger.

Handles the invite state machine (pending → accepted | declined | expired,
all terminal): creation with an unguessable share code, the public lookup
view with lazily computed expiry, decline, inviter cancellation, the sent
and received lists, and batch expiry for the sweeper. Acceptance lives in
registration_service because it also writes the team registration.

Every transition out of ``pending`` is a single UPDATE/DELETE whose WHERE
clause includes ``status = 'pending'``; the affected row count decides who
won a race.
"""

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import (
    EventKind,
    InviteStatus,
    NotificationType,
    TeamInvite,
    User,
)
from courtside.models.schemas import (
    ByEmail,
    ByUser,
    CreateInviteRequest,
    InviteDetailsResponse,
    InviteResponse,
    InviterSummary,
    event_ref_from_columns,
)
from courtside.services import event_service, notification_service, user_service
from courtside.services.exceptions import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from courtside.utils.constants import INVITE_CODE_BYTES, INVITE_CODE_MAX_ATTEMPTS, INVITE_TTL_DAYS
from courtside.utils.datetime_utils import is_past, isoformat_or_none, utcnow

logger = logging.getLogger(__name__)

FRONTEND_BASE_URL = os.getenv("FRONTEND_URL", "https://courtside.app")

PENDING = InviteStatus.PENDING.value


@dataclass
class ExpiredInvite:
    """An invite the sweeper just moved to ``expired``."""

    id: int
    inviter_id: int
    invitee_user_id: Optional[int]
    event_kind: str
    event_id: int


def generate_invite_code() -> str:
    """Random URL-safe share code (128 bits of entropy)."""
    return secrets.token_urlsafe(INVITE_CODE_BYTES)


def invite_url(code: str) -> str:
    return f"{FRONTEND_BASE_URL}/invite/{code}"


def event_link(event_kind: str, event_id: int) -> str:
    if event_kind == EventKind.TOURNAMENT.value:
        return f"/tournaments/{event_id}"
    return f"/leagues/{event_id}"


def effective_status(invite: TeamInvite, now: Optional[datetime] = None) -> str:
    """
    Status as callers should see it.

    A pending invite whose expiry has passed reads as ``expired`` even before
    the sweeper (or the next write) persists that.
    """
    if invite.status == PENDING and is_past(invite.expires_at, now):
        return InviteStatus.EXPIRED.value
    return invite.status


async def get_invite_by_code(
    session: AsyncSession, code: str, for_update: bool = False
) -> Optional[TeamInvite]:
    """Load an invite by share code, optionally taking a row lock."""
    query = (
        select(TeamInvite)
        .where(TeamInvite.invite_code == code)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def create_invite(
    session: AsyncSession,
    inviter_id: int,
    data: CreateInviteRequest,
    ttl: Optional[timedelta] = None,
) -> TeamInvite:
    """
    Create a pending team invite.

    Args:
        session: Database session
        inviter_id: User sending the invite
        data: Event reference, invitee reference, optional team name/message
        ttl: Lifetime override (default INVITE_TTL_DAYS)

    Returns:
        The committed TeamInvite

    Raises:
        NotFoundError: If the event or the addressed user does not exist
        InvalidStateError: If the event is not open or the inviter invites themself
        ConflictError: If an identical pending invite already exists
    """
    inviter = await session.get(User, inviter_id)
    if inviter is None:
        raise NotFoundError("Inviter not found")

    event_ref = data.event
    event = await event_service.get_event(session, event_ref.kind, event_ref.id)
    if event is None:
        raise NotFoundError(f"{event_ref.kind.capitalize()} not found")
    if not event_service.is_registration_open(event):
        raise InvalidStateError(
            f"{event_ref.kind.capitalize()} is not open for registration", status=event.status
        )

    invitee_user, invitee_email, invitee_key = await _resolve_invitee(session, inviter, data.invitee)

    existing = await session.execute(
        select(TeamInvite.id).where(
            TeamInvite.inviter_id == inviter_id,
            TeamInvite.event_key == event_ref.key,
            TeamInvite.invitee_key == invitee_key,
            TeamInvite.status == PENDING,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("An invite has already been sent to this player for this event")

    now = utcnow()
    invite = None
    for attempt in range(INVITE_CODE_MAX_ATTEMPTS):
        code = generate_invite_code()
        taken = await session.execute(select(TeamInvite.id).where(TeamInvite.invite_code == code))
        if taken.scalar_one_or_none() is None:
            invite = TeamInvite(
                event_kind=event_ref.kind,
                event_id=event_ref.id,
                sub_event_id=event_ref.sub_event_id,
                event_key=event_ref.key,
                inviter_id=inviter_id,
                invitee_kind=data.invitee.kind,
                invitee_user_id=invitee_user.id if invitee_user else None,
                invitee_email=invitee_email,
                invitee_key=invitee_key,
                invite_code=code,
                team_name=data.team_name,
                message=data.message,
                status=PENDING,
                expires_at=now + (ttl or timedelta(days=INVITE_TTL_DAYS)),
                created_at=now,
                updated_at=now,
            )
            break
        logger.warning("Invite code collision on attempt %d, regenerating", attempt + 1)
    if invite is None:
        raise RuntimeError("Could not generate a unique invite code")

    session.add(invite)
    try:
        await session.flush()
        await session.commit()
    except IntegrityError:
        # Lost a race on the pending-invite partial unique index
        await session.rollback()
        raise ConflictError("An invite has already been sent to this player for this event")

    logger.info(
        "Invite %s created by user %s for %s (invitee %s)",
        invite.id,
        inviter_id,
        invite.event_key,
        invite.invitee_key,
    )

    if invitee_user is not None:
        inviter_name = user_service.display_name(inviter)
        await notification_service.notify(
            user_id=invitee_user.id,
            type=NotificationType.TEAM_INVITE.value,
            title="Team Invitation",
            message=f"{inviter_name} invited you to team up for {event.name}.",
            data={"invite_id": invite.id, "invite_code": invite.invite_code},
            link_url=f"/invite/{invite.invite_code}",
        )

    return invite


async def _resolve_invitee(
    session: AsyncSession, inviter: User, invitee: Union[ByUser, ByEmail]
):
    """Return (resolved user or None, stored email or None, invitee key)."""
    if isinstance(invitee, ByUser):
        user = await session.get(User, invitee.user_id)
        if user is None:
            raise NotFoundError("Invitee not found")
        if user.id == inviter.id:
            raise InvalidStateError("You cannot invite yourself")
        return user, None, invitee.key

    if inviter.email and user_service.normalize_email(inviter.email) == invitee.email:
        raise InvalidStateError("You cannot invite yourself")
    user = await user_service.get_user_by_email(session, invitee.email)
    if user is not None:
        # Known account: key on the user so email and id invites collide
        return user, invitee.email, f"user:{user.id}"
    return None, invitee.email, invitee.key


async def get_invite_details(session: AsyncSession, code: str) -> InviteDetailsResponse:
    """
    Public invite landing-page view. Never mutates the invite.

    Raises:
        NotFoundError: If the code is unknown
    """
    invite = await get_invite_by_code(session, code)
    if invite is None:
        raise NotFoundError("Invite not found")

    inviter = await session.get(User, invite.inviter_id)
    event = await event_service.get_event(session, invite.event_kind, invite.event_id)
    rating = await user_service.get_format_rating(
        session,
        invite.inviter_id,
        event.game_format if event else None,
        fallback_to_any=True,
    )

    return InviteDetailsResponse(
        invite_code=invite.invite_code,
        status=effective_status(invite),
        team_name=invite.team_name,
        message=invite.message,
        expires_at=isoformat_or_none(invite.expires_at),
        inviter=InviterSummary(
            id=invite.inviter_id,
            name=user_service.display_name(inviter),
            skill_level=inviter.skill_level if inviter else None,
            rating=float(rating) if rating is not None else None,
        ),
        event=(
            event_service.event_summary(invite.event_kind, event)
            if event
            else {"kind": invite.event_kind, "id": invite.event_id}
        ),
    )


async def _persist_expiry(session: AsyncSession, invite_id: int) -> bool:
    """Conditionally flip a lapsed pending invite to expired and commit."""
    now = utcnow()
    result = await session.execute(
        update(TeamInvite)
        .where(
            TeamInvite.id == invite_id,
            TeamInvite.status == PENDING,
            TeamInvite.expires_at <= now,
        )
        .values(status=InviteStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if result.rowcount == 1:
        logger.info("Invite %s expired on access", invite_id)
    return result.rowcount == 1


async def _current_status(session: AsyncSession, invite_id: int) -> Optional[str]:
    result = await session.execute(select(TeamInvite.status).where(TeamInvite.id == invite_id))
    return result.scalar_one_or_none()


async def decline_invite(session: AsyncSession, code: str, declining_user_id: int) -> TeamInvite:
    """
    Decline a pending invite and notify the inviter.

    Raises:
        NotFoundError: If the code is unknown
        InvalidStateError: If the invite is not pending (ExpiredError if it lapsed),
            or if the decliner is the inviter
    """
    invite = await get_invite_by_code(session, code)
    if invite is None:
        raise NotFoundError("Invite not found")
    if invite.status != PENDING:
        raise InvalidStateError(f"Invite already {invite.status}", status=invite.status)
    if is_past(invite.expires_at):
        await _persist_expiry(session, invite.id)
        raise ExpiredError()
    if invite.inviter_id == declining_user_id:
        raise InvalidStateError("Use cancel to withdraw your own invite", status=invite.status)

    invite_id = invite.id
    now = utcnow()
    result = await session.execute(
        update(TeamInvite)
        .where(TeamInvite.id == invite_id, TeamInvite.status == PENDING)
        .values(
            status=InviteStatus.DECLINED.value,
            invitee_user_id=declining_user_id,
            responded_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        status = await _current_status(session, invite_id)
        raise InvalidStateError(f"Invite already {status}", status=status)
    await session.commit()
    logger.info("Invite %s declined by user %s", invite.id, declining_user_id)

    decliner = await session.get(User, declining_user_id)
    event = await event_service.get_event(session, invite.event_kind, invite.event_id)
    event_name = event.name if event else "the event"
    await notification_service.notify(
        user_id=invite.inviter_id,
        type=NotificationType.INVITE_DECLINED.value,
        title="Invitation Declined",
        message=f"{user_service.display_name(decliner)} has declined your partner invitation for {event_name}.",
        data={"invite_id": invite.id},
        link_url=event_link(invite.event_kind, invite.event_id),
    )
    return await get_invite_by_code(session, code)


async def cancel_invite(session: AsyncSession, code: str, requesting_user_id: int) -> None:
    """
    Withdraw (hard-delete) a pending invite. Only the inviter may cancel.

    Raises:
        NotFoundError: If the code is unknown
        ForbiddenError: If the requester is not the inviter
        InvalidStateError: If the invite is no longer pending
    """
    invite = await get_invite_by_code(session, code)
    if invite is None:
        raise NotFoundError("Invite not found")
    if invite.inviter_id != requesting_user_id:
        raise ForbiddenError("Only the inviter can cancel this invite")
    if invite.status != PENDING:
        raise InvalidStateError(f"Invite already {invite.status}", status=invite.status)

    invite_id = invite.id
    result = await session.execute(
        delete(TeamInvite)
        .where(TeamInvite.id == invite_id, TeamInvite.status == PENDING)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        status = await _current_status(session, invite_id)
        raise InvalidStateError(f"Invite already {status}", status=status)
    await session.commit()
    session.expunge(invite)
    logger.info("Invite %s cancelled by inviter %s", invite.id, requesting_user_id)


async def list_sent_invites(session: AsyncSession, user_id: int) -> List[TeamInvite]:
    """Invites the user sent, newest first."""
    result = await session.execute(
        select(TeamInvite)
        .where(TeamInvite.inviter_id == user_id)
        .order_by(TeamInvite.created_at.desc(), TeamInvite.id.desc())
    )
    return list(result.scalars().all())


async def list_received_invites(session: AsyncSession, user_id: int) -> List[TeamInvite]:
    """Invites addressed to the user's id or email, newest first."""
    user = await session.get(User, user_id)
    if user is None:
        return []
    conditions = [TeamInvite.invitee_user_id == user_id]
    email = user_service.normalize_email(user.email)
    if email:
        conditions.append(TeamInvite.invitee_email == email)
    result = await session.execute(
        select(TeamInvite)
        .where(or_(*conditions))
        .order_by(TeamInvite.created_at.desc(), TeamInvite.id.desc())
    )
    return list(result.scalars().all())


async def expire_lapsed_invites(
    session: AsyncSession, now: Optional[datetime] = None, batch_size: int = 500
) -> List[ExpiredInvite]:
    """
    Move every pending invite whose expiry has passed to ``expired`` and commit.

    Invites accepted or declined concurrently are left untouched.

    Returns:
        The invites this call expired
    """
    now = now or utcnow()
    rows = (
        await session.execute(
            select(
                TeamInvite.id,
                TeamInvite.inviter_id,
                TeamInvite.invitee_user_id,
                TeamInvite.event_kind,
                TeamInvite.event_id,
            )
            .where(TeamInvite.status == PENDING, TeamInvite.expires_at <= now)
            .order_by(TeamInvite.id)
            .limit(batch_size)
        )
    ).all()

    expired = []
    for row in rows:
        result = await session.execute(
            update(TeamInvite)
            .where(TeamInvite.id == row.id, TeamInvite.status == PENDING)
            .values(status=InviteStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            expired.append(
                ExpiredInvite(
                    id=row.id,
                    inviter_id=row.inviter_id,
                    invitee_user_id=row.invitee_user_id,
                    event_kind=row.event_kind,
                    event_id=row.event_id,
                )
            )
    await session.commit()
    return expired


def invite_to_response(invite: TeamInvite, include_url: bool = False) -> InviteResponse:
    """Serialize an invite, including its effective status."""
    return InviteResponse(
        id=invite.id,
        invite_code=invite.invite_code,
        event=event_ref_from_columns(invite.event_kind, invite.event_id, invite.sub_event_id),
        inviter_id=invite.inviter_id,
        invitee_user_id=invite.invitee_user_id,
        invitee_email=invite.invitee_email,
        team_name=invite.team_name,
        message=invite.message,
        status=invite.status,
        effective_status=effective_status(invite),
        expires_at=isoformat_or_none(invite.expires_at),
        responded_at=isoformat_or_none(invite.responded_at),
        created_at=isoformat_or_none(invite.created_at),
        invite_url=invite_url(invite.invite_code) if include_url else None,
    )
