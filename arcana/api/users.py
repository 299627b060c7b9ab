"""
Users API endpoints.

Admin-only listing, role/profile updates and removal of accounts.
"""
from typing import Optional, Dict, Any
import logging
from fastapi import APIRouter, Depends, HTTPException, Query

from arcana.api.auth import public_user
from arcana.api.deps import get_database, require_admin
from arcana.db import schemas
from arcana.db.database import DatabaseService
from arcana.db.models import now_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(require_admin)])

USERS_TABLE = "users"
ALLOWED_ROLES = ("user", "staff", "admin")


@router.get("")
def list_users(
    search: Optional[str] = Query(default=None),
    role: Optional[str] = Query(default=None),
    db: DatabaseService = Depends(get_database),
):
    users = db.read_all(USERS_TABLE)
    if role:
        users = [u for u in users if (u.get("role") or "user") == role.strip().lower()]
    if search:
        term = search.strip().lower()
        users = [
            u for u in users
            if term in (u.get("email") or "").lower() or term in (u.get("display_name") or "").lower()
        ]
    users.sort(key=lambda u: (u.get("email") or ""))
    return {"success": True, "data": [public_user(u) for u in users], "total": len(users)}


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    payload: schemas.UserAdminUpdate,
    db: DatabaseService = Depends(get_database),
    current: Dict[str, Any] = Depends(require_admin),
):
    if not db.read(user_id, USERS_TABLE):
        raise HTTPException(status_code=404, detail="User not found")

    changes: Dict[str, Any] = {}
    if payload.role is not None:
        role = payload.role.strip().lower()
        if role not in ALLOWED_ROLES:
            raise HTTPException(status_code=400, detail=f"Invalid role. Valid options: {', '.join(ALLOWED_ROLES)}")
        changes["role"] = role
    if payload.display_name is not None:
        # Basic validation
        s = payload.display_name.strip()
        if len(s) == 0 or len(s) > 80:
            raise HTTPException(status_code=400, detail="display_name must be 1..80 characters")
        changes["display_name"] = s
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")

    changes["updated_at"] = now_utc().isoformat()
    updated = db.update(user_id, changes, USERS_TABLE)
    if "role" in changes:
        logger.info("User %s role set to %s by %s", user_id, changes["role"], current.get("id"))
    return {"success": True, "data": public_user(updated), "message": "User updated successfully!"}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: DatabaseService = Depends(get_database),
    current: Dict[str, Any] = Depends(require_admin),
):
    if str(current.get("id")) == str(user_id):
        raise HTTPException(status_code=400, detail="You cannot delete your own account.")
    if not db.read(user_id, USERS_TABLE):
        raise HTTPException(status_code=404, detail="User not found")
    db.delete(user_id, USERS_TABLE)
    logger.info("User %s deleted by %s", user_id, current.get("id"))
    return {"success": True, "message": "User deleted successfully!", "data": {"id": user_id}}
