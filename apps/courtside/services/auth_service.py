"""
Bearer-token helpers. Tokens are issued by the identity service and carry
the caller's ``user_id`` claim; this module only signs (for tooling and
tests) and verifies them.
"""

import logging
import os
from datetime import timedelta
from typing import Dict, Optional

import jwt

from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "courtside-dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token.

    Args:
        data: Claims to embed (must include user_id)
        expires_delta: Lifetime override

    Returns:
        Encoded JWT
    """
    payload = dict(data)
    payload["exp"] = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify and decode an access token.

    Returns:
        The claims, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid token: {e}")
        return None
