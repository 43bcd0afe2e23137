"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error translation) lives here; every
sub-router imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from courtside.services.exceptions import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

WRITE_RATE_LIMIT = "10/minute"

# ---------------------------------------------------------------------------
# Service error → HTTP status
# ---------------------------------------------------------------------------
SERVICE_ERRORS = (
    NotFoundError,
    InvalidStateError,
    ForbiddenError,
    ConflictError,
    TransientStorageError,
)


def to_http_exception(error: Exception) -> HTTPException:
    """Translate a service-layer exception into the matching HTTPException."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ExpiredError):
        return HTTPException(status_code=410, detail=str(error))
    if isinstance(error, InvalidStateError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ForbiddenError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, TransientStorageError):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from courtside.api.routes.health import router as health_router  # noqa: E402
from courtside.api.routes.matchmaking import router as matchmaking_router  # noqa: E402
from courtside.api.routes.invites import router as invites_router  # noqa: E402
from courtside.api.routes.partners import router as partners_router  # noqa: E402
from courtside.api.routes.notifications import router as notifications_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(matchmaking_router)
router.include_router(invites_router)
router.include_router(partners_router)
router.include_router(notifications_router)
