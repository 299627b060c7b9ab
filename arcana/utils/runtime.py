"""Runtime environment helpers for guarding production-only requirements."""

import logging
import os
from typing import Optional, Set

logger = logging.getLogger(__name__)

_PRODUCTION_NAMES: Set[str] = {"production", "prod"}
_DEV_JWT_SECRET = "arcana-dev-only-secret-change-me"
_warned_dev_secret = False


def environment_name() -> str:
    """Return the normalized deployment environment name."""
    raw = os.getenv("APP_ENV") or os.getenv("ENVIRONMENT") or "development"
    return raw.strip().lower()


def is_production() -> bool:
    return environment_name() in _PRODUCTION_NAMES


def jwt_secret() -> str:
    """Return the JWT signing secret; raise if misconfigured.

    Production deployments must set JWT_SECRET explicitly. Elsewhere a fixed
    development secret is used so local runs and tests work without setup.
    """
    global _warned_dev_secret
    secret = os.getenv("JWT_SECRET", "").strip()
    if secret:
        return secret
    if is_production():
        raise RuntimeError("JWT_SECRET must be set when APP_ENV=production")
    if not _warned_dev_secret:
        logger.warning("JWT_SECRET not set; using the development signing secret")
        _warned_dev_secret = True
    return _DEV_JWT_SECRET


def app_url() -> str:
    return os.getenv("APP_URL", "http://localhost:3000").rstrip("/")


def internal_api_key() -> Optional[str]:
    value = os.getenv("INTERNAL_API_KEY", "").strip()
    return value or None
