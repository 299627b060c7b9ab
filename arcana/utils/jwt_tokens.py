"""
Session and password-reset tokens signed with PyJWT.

Responsibilities:
- Issue HS256 session tokens carrying ``id``, ``email`` and ``role`` claims
- Decide when a session sits in the last quarter of its lifetime and re-issue it
- Keep remember-me sessions (lifetime over 14 days) on the long lifetime when refreshed
- Provide cookie settings shared by login, logout and the refresh middleware
- Issue short-lived reset tokens that hold a keyed HMAC of the emailed code
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from arcana.utils.runtime import is_production, jwt_secret

SESSION_COOKIE = "access_token"
ALGORITHM = "HS256"

DEFAULT_LIFETIME = timedelta(days=7)
REMEMBER_LIFETIME = timedelta(days=30)
REMEMBER_THRESHOLD = timedelta(days=14)
REFRESH_WINDOW = 0.25

RESET_LIFETIME = timedelta(minutes=15)
RESET_PURPOSE = "password_reset"

_IDENTITY_CLAIMS = ("id", "email", "role")


class InvalidSessionToken(Exception):
    """Raised when a token is missing, expired, tampered with or of the wrong kind."""


def _now() -> int:
    return int(time.time())


def lifetime_for(remember: bool) -> timedelta:
    return REMEMBER_LIFETIME if remember else DEFAULT_LIFETIME


def create_session_token(claims: Dict[str, Any], remember: bool = False, now: Optional[int] = None) -> str:
    """Sign a session token for the given user claims."""
    issued_at = _now() if now is None else int(now)
    payload = {
        "id": str(claims.get("id")),
        "email": claims.get("email"),
        "role": claims.get("role") or "user",
        "iat": issued_at,
        "exp": issued_at + int(lifetime_for(remember).total_seconds()),
    }
    return jwt.encode(payload, jwt_secret(), algorithm=ALGORITHM)


def decode_session_token(token: Optional[str]) -> Dict[str, Any]:
    if not token:
        raise InvalidSessionToken("No token provided.")
    try:
        claims = jwt.decode(token, jwt_secret(), algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        raise InvalidSessionToken(str(exc)) from exc
    if claims.get("purpose"):
        raise InvalidSessionToken("Not a session token")
    return claims


def token_lifetime(claims: Dict[str, Any]) -> int:
    try:
        return int(claims["exp"]) - int(claims["iat"])
    except (KeyError, TypeError, ValueError):
        return 0


def is_remember_session(claims: Dict[str, Any]) -> bool:
    return token_lifetime(claims) > REMEMBER_THRESHOLD.total_seconds()


def should_refresh(claims: Dict[str, Any], now: Optional[int] = None) -> bool:
    """Return True when at most ``REFRESH_WINDOW`` of the lifetime remains."""
    lifetime = token_lifetime(claims)
    if lifetime <= 0:
        return False
    current = _now() if now is None else int(now)
    remaining = int(claims["exp"]) - current
    if remaining <= 0:
        return False
    return remaining <= lifetime * REFRESH_WINDOW


def refresh_session_token(claims: Dict[str, Any], now: Optional[int] = None) -> str:
    identity = {k: claims.get(k) for k in _IDENTITY_CLAIMS}
    return create_session_token(identity, remember=is_remember_session(claims), now=now)


def session_cookie_kwargs(max_age: int) -> Dict[str, Any]:
    """Keyword arguments for ``Response.set_cookie`` on the session cookie."""
    return {
        "key": SESSION_COOKIE,
        "max_age": max_age,
        "httponly": True,
        "samesite": "lax",
        "secure": is_production(),
        "path": "/",
    }


def generate_reset_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def reset_code_digest(email: str, code: str) -> str:
    """HMAC-SHA256 of ``email:code`` keyed with the server secret.

    The token payload is readable by its holder, so the digest must not be
    checkable without the secret.
    """
    message = f"{email.strip().lower()}:{str(code).strip()}".encode("utf-8")
    return hmac.new(jwt_secret().encode("utf-8"), message, hashlib.sha256).hexdigest()


def create_reset_token(email: str, code: str, now: Optional[int] = None) -> str:
    issued_at = _now() if now is None else int(now)
    payload = {
        "sub": email,
        "purpose": RESET_PURPOSE,
        "code_hash": reset_code_digest(email, code),
        "iat": issued_at,
        "exp": issued_at + int(RESET_LIFETIME.total_seconds()),
    }
    return jwt.encode(payload, jwt_secret(), algorithm=ALGORITHM)


def verify_reset_token(token: Optional[str], code: Optional[str], email: Optional[str] = None) -> str:
    """Validate a reset token against the emailed code and return the account email."""
    if not token or not code:
        raise InvalidSessionToken("Reset token and code are required")
    try:
        claims = jwt.decode(token, jwt_secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise InvalidSessionToken("Reset code expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidSessionToken("Invalid reset token") from exc
    if claims.get("purpose") != RESET_PURPOSE:
        raise InvalidSessionToken("Invalid reset token")
    subject = (claims.get("sub") or "").lower()
    if email is not None and subject != email.strip().lower():
        raise InvalidSessionToken("Reset token does not match this email")
    expected = reset_code_digest(subject, code)
    if not hmac.compare_digest(expected, str(claims.get("code_hash") or "")):
        raise InvalidSessionToken("Invalid verification code")
    return subject
