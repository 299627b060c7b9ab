"""
API dependency helpers.

Resolves the database facade and the session user for routes, and provides
role and internal-secret guards.
"""
import hmac
import logging
from typing import Optional, Dict, Any

from fastapi import Depends, Header, HTTPException, Request, status

from arcana.db.database import DatabaseService, get_database_service
from arcana.utils.jwt_tokens import SESSION_COOKIE, InvalidSessionToken, decode_session_token
from arcana.utils.runtime import internal_api_key

logger = logging.getLogger(__name__)

PUBLIC_HEADER_VALUE = "public"


def get_database() -> DatabaseService:
    return get_database_service()


# Contract:
# Returns the decoded session claims ({id, email, role, iat, exp}).
# Raises 403 when the cookie is missing or the token does not verify.

def get_current_user(request: Request) -> Dict[str, Any]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No token provided.")
    try:
        claims = decode_session_token(token)
    except InvalidSessionToken as e:
        logger.debug("Rejected session token: %s", e)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token.")
    request.state.user = claims
    return claims


def get_user_or_public(
    request: Request,
    x_internal: Optional[str] = Header(default=None),
) -> Optional[Dict[str, Any]]:
    """Session user for read endpoints; ``x-internal: public`` skips the check and yields None."""
    if (x_internal or "").strip().lower() == PUBLIC_HEADER_VALUE:
        return None
    return get_current_user(request)


def user_role(user: Optional[Dict[str, Any]]) -> str:
    return (user or {}).get("role") or "user"


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return user_role(user) == "admin"


def require_roles(*roles: str):
    """Dependency factory granting access to ``roles``; admin is always allowed."""
    allowed = list(dict.fromkeys([*roles, "admin"]))

    def _guard(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        role = user_role(user)
        if role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role(s): {', '.join(allowed)}. Your role: {role}",
            )
        return user

    return _guard


require_admin = require_roles("admin")


def require_internal_secret(x_internal_secret: Optional[str] = Header(default=None)) -> None:
    expected = internal_api_key()
    if expected is None:
        return
    if not x_internal_secret or not hmac.compare_digest(x_internal_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
