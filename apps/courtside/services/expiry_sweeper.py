"""
Expiry sweeper: moves lapsed match requests, team invites and partner
listings to ``expired`` and notifies their owners.

Background worker owned by the app lifespan. Every update it issues is
guarded by the entity's non-terminal status, so a sweep racing an accept or
a match commit either expires the row before the other side locks it or
leaves it alone. Running a sweep that finds nothing is a no-op.
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import db
from courtside.database.models import NotificationType
from courtside.services import (
    event_service,
    invite_service,
    match_request_service,
    notification_service,
    partner_listing_service,
)
from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# How often the worker sweeps (seconds)
POLL_INTERVAL_SECONDS = float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "60"))

# Rows handled per entity kind per sweep
SWEEP_BATCH_SIZE = 500


class ExpirySweeper:
    """Background service that expires lapsed pending state."""

    def __init__(self, interval_seconds: float = POLL_INTERVAL_SECONDS):
        self.interval_seconds = interval_seconds
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start(self) -> None:
        """Start the background sweep worker."""
        if not self.running:
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Expiry sweeper started (every %ss)", self.interval_seconds)

    def stop(self) -> None:
        """Stop the background sweep worker."""
        self._stop_event.set()
        if self.running:
            self._worker_task.cancel()
            logger.info("Expiry sweeper stopped")

    async def _poll_loop(self) -> None:
        """Main loop: sweep, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in expiry sweeper: {e}", exc_info=True)

            # Wait for poll interval or until stop is signalled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

    async def run_once(
        self, session: Optional[AsyncSession] = None, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """
        Perform one sweep.

        Args:
            session: Session to use; a fresh one from db.AsyncSessionLocal when None
            now: Clock override (tests)

        Returns:
            Number of rows expired per entity kind
        """
        if session is None:
            async with db.AsyncSessionLocal() as own_session:
                return await self._sweep(own_session, now or utcnow())
        return await self._sweep(session, now or utcnow())

    async def _sweep(self, session: AsyncSession, now: datetime) -> Dict[str, int]:
        requests = await match_request_service.expire_lapsed_requests(
            session, now=now, batch_size=SWEEP_BATCH_SIZE
        )
        for request_id, user_id in requests:
            await notification_service.notify(
                user_id=user_id,
                type=NotificationType.MATCH_REQUEST_EXPIRED.value,
                title="Match request expired",
                message="Your match request expired before a match was found.",
                data={"match_request_id": request_id},
                link_url="/matchmaking",
            )

        invites = await invite_service.expire_lapsed_invites(
            session, now=now, batch_size=SWEEP_BATCH_SIZE
        )
        for invite in invites:
            await self._notify_invite_expired(session, invite)

        listings = await partner_listing_service.expire_closed_event_listings(session, now=now)
        for listing_id, user_id in listings:
            await notification_service.notify(
                user_id=user_id,
                type=NotificationType.PARTNER_LISTING_EXPIRED.value,
                title="Partner listing closed",
                message="Your partner listing was closed because the event is no longer taking registrations.",
                data={"listing_id": listing_id},
                link_url="/partners",
            )

        counts = {
            "match_requests": len(requests),
            "team_invites": len(invites),
            "partner_listings": len(listings),
        }
        if any(counts.values()):
            logger.info(
                "Expiry sweep: %d match request(s), %d invite(s), %d listing(s) expired",
                counts["match_requests"],
                counts["team_invites"],
                counts["partner_listings"],
            )
        return counts

    async def _notify_invite_expired(
        self, session: AsyncSession, invite: "invite_service.ExpiredInvite"
    ) -> None:
        """Tell the inviter (and a known invitee) that an invite lapsed."""
        event = await event_service.get_event(session, invite.event_kind, invite.event_id)
        event_name = event.name if event else "the event"
        link_url = invite_service.event_link(invite.event_kind, invite.event_id)

        await notification_service.notify(
            user_id=invite.inviter_id,
            type=NotificationType.INVITE_EXPIRED.value,
            title="Invitation expired",
            message=f"Your partner invitation for {event_name} expired without a response.",
            data={"invite_id": invite.id},
            link_url=link_url,
        )
        if invite.invitee_user_id:
            await notification_service.notify(
                user_id=invite.invitee_user_id,
                type=NotificationType.INVITE_EXPIRED.value,
                title="Invitation expired",
                message=f"A partner invitation for {event_name} has expired.",
                data={"invite_id": invite.id},
                link_url=link_url,
            )


# Global singleton
_expiry_sweeper = ExpirySweeper()


def get_expiry_sweeper() -> ExpirySweeper:
    """Get the global expiry sweeper instance."""
    return _expiry_sweeper
