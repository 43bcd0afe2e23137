"""001_initial_schema

Revision ID: 001
Revises: 
Create Date: 2026-09-28 10:00:00.000000

Initial schema - creates all tables from the current models:
- Directory tables: users, user_ratings
- Event tables: tournaments, leagues, league_seasons
- Registration tables: tournament_registrations, tournament_registration_players,
  league_participants, league_participant_players
- Matchmaking tables: match_requests, games, game_players
- Partner tables: partner_listings, team_invites
- notifications
Partial unique indexes (one pending request per user, one active listing per
user and event, one pending invite per inviter/event/invitee) come from the
model definitions.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    # Import models to register them with Base.metadata
    from courtside.database.db import Base
    from courtside.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from courtside.database.db import Base
    from courtside.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
