"""
Game session store used by the matchmaker when a pair is committed.
"""

from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from courtside.database.models import Game, GamePlayer


async def create_game(
    session: AsyncSession,
    game_format: str,
    team1_ids: Sequence[int],
    team2_ids: Sequence[int],
    created_by: Optional[int] = None,
) -> Game:
    """
    Create a scheduled game with its player seats.

    Runs on the caller's session and only flushes, so the game commits or
    rolls back together with whatever the caller is doing.

    Args:
        session: Database session
        game_format: GameFormat value
        team1_ids: User IDs on team 1
        team2_ids: User IDs on team 2
        created_by: User who triggered the game

    Returns:
        The flushed Game
    """
    if not team1_ids or not team2_ids:
        raise ValueError("Both teams need at least one player")

    game = Game(game_format=game_format, status="scheduled", created_by=created_by)
    session.add(game)
    await session.flush()

    seats = [GamePlayer(game_id=game.id, user_id=uid, team=1) for uid in team1_ids]
    seats += [GamePlayer(game_id=game.id, user_id=uid, team=2) for uid in team2_ids]
    session.add_all(seats)
    await session.flush()
    return game


async def get_game_player_ids(session: AsyncSession, game_id: int) -> List[int]:
    """User IDs seated in a game, team 1 first."""
    result = await session.execute(
        select(GamePlayer.user_id)
        .where(GamePlayer.game_id == game_id)
        .order_by(GamePlayer.team, GamePlayer.id)
    )
    return list(result.scalars().all())
