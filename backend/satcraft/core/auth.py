import logging

from fastapi import Header

from satcraft.core.deps import get_supabase_client
from satcraft.core.errors import Unauthorized

logger = logging.getLogger("satcraft.auth")


def get_user_id_from_token(authorization: str) -> str:
    """Extract and verify user ID from a Supabase JWT token."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Missing or invalid authorization header")

    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise Unauthorized("Missing or invalid authorization header")

    try:
        user_response = get_supabase_client().auth.get_user(token)
    except Exception as e:
        logger.warning("[auth] token verification failed: %s", e)
        raise Unauthorized("Invalid or expired token")

    user = getattr(user_response, "user", None)
    if not user:
        raise Unauthorized("Invalid or expired token")
    return user.id


def get_current_user_id(authorization: str = Header(default="")) -> str:
    """FastAPI dependency: the authenticated caller's user id, or 401."""
    return get_user_id_from_token(authorization)
