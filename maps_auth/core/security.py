import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

# Session key holding the ID token claims of the signed-in user.
SESSION_USER_KEY = "user"


def get_session_user(request: Request) -> Optional[Dict[str, Any]]:
    """Returns the signed-in user's claims, or None when there is no session."""
    if "session" not in request.scope:
        return None
    return request.session.get(SESSION_USER_KEY)


async def require_signed_in_user(request: Request) -> Dict[str, Any]:
    """
    Dependency gating enterprise-tier routes behind an interactive sign-in.
    Raises 401 when the caller has no signed-in session.
    """
    user = get_session_user(request)
    if not user:
        logger.warning(f"Unauthenticated request to {request.url.path} rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign-in required",
        )
    return user
