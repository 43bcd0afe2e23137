"""Health check route handler."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.db import get_db_session
from courtside.services.expiry_sweeper import get_expiry_sweeper

router = APIRouter()


@router.get("/api/health")
async def health_check(session: AsyncSession = Depends(get_db_session)):
    """
    Health check endpoint.

    Returns:
        dict: Service status, database reachability and sweeper state
    """
    try:
        await session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "message": "API is running",
            "expiry_sweeper_running": get_expiry_sweeper().running,
        }
    except Exception as e:
        return {"status": "unhealthy", "database_available": False, "message": f"Error: {str(e)}"}
