"""
Authentication helpers.

Email normalization and validation, the password rule, admin elevation via
``ADMIN_EMAILS`` and shaping of user records for responses.
"""
import os
import re
from typing import Optional, Dict, Any

from arcana.db.models import now_utc
from arcana.utils.passwords import hash_password

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LOWER_RE = re.compile(r"[a-z]")
_STRONG_RE = re.compile(r"[A-Z0-9!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 32
PASSWORD_RULE_MESSAGE = (
    "Password must be at least 8 characters with lowercase and one uppercase or number."
)

# Fields never returned to clients
_SECRET_FIELDS = ("password_hash", "password", "salt")


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_RE.match(email.strip()) is not None


def password_problem(password: Optional[str]) -> Optional[str]:
    """Return the rule violation message for ``password``, or None when acceptable."""
    if not password:
        return PASSWORD_RULE_MESSAGE
    if len(password) > PASSWORD_MAX_LENGTH:
        return f"Password must be at most {PASSWORD_MAX_LENGTH} characters."
    if len(password) < PASSWORD_MIN_LENGTH or not _LOWER_RE.search(password) or not _STRONG_RE.search(password):
        return PASSWORD_RULE_MESSAGE
    return None


def _normalize_list_env(var_name: str) -> set:
    raw = os.getenv(var_name, "")
    values = set()
    for entry in raw.split(","):
        cleaned = entry.strip().strip('"').strip("'")
        if cleaned:
            values.add(cleaned.lower())
    return values


def admin_emails() -> set:
    return _normalize_list_env("ADMIN_EMAILS")


def public_user(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {k: v for k, v in record.items() if k not in _SECRET_FIELDS}


def session_claims(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(record["id"]),
        "email": record.get("email"),
        "role": record.get("role") or "user",
    }


def build_user_record(name: str, email: str, password: str) -> Dict[str, Any]:
    """Create the stored representation of a newly registered user.

    Users listed in ``ADMIN_EMAILS`` are elevated at creation time only.
    """
    email = normalize_email(email)
    now = now_utc().isoformat()
    return {
        "display_name": name.strip(),
        "email": email,
        "password_hash": hash_password(password),
        "role": "admin" if email in admin_emails() else "user",
        "created_at": now,
        "updated_at": now,
    }
