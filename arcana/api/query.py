"""
Generic collection endpoints.

``/api/query/{slug}`` performs CRUD on any collection through the database
facade. Collections listed in ``QUERY_ADMIN_COLLECTIONS`` are admin-only;
those in ``QUERY_ADMIN_WRITE_COLLECTIONS`` (default ``shop_items``) are
readable by anyone but writable only by admins.
"""
import logging
import os
from typing import Optional, Dict, Any, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from arcana.api.auth import public_user
from arcana.api.deps import get_current_user, get_database, get_user_or_public, is_admin, require_admin, user_role
from arcana.db.database import DatabaseService
from arcana.db.models import now_utc
from arcana.db.schema_inference import ensure_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/query", tags=["query"])


def _env_set(name: str, default: str) -> set:
    raw = os.getenv(name, default)
    return {entry.strip().lower() for entry in raw.split(",") if entry.strip()}


def admin_collections() -> set:
    return _env_set("QUERY_ADMIN_COLLECTIONS", "users,orders")


def admin_write_collections() -> set:
    """Collections anyone may read but only admins may write (the catalog has its own admin routes)."""
    return admin_collections() | _env_set("QUERY_ADMIN_WRITE_COLLECTIONS", "shop_items")


def _collection(slug: str, user: Optional[Dict[str, Any]], write: bool = False) -> str:
    ensure_identifier(slug, "collection name")
    protected = admin_write_collections() if write else admin_collections()
    if slug.lower() in protected and not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied. Required role(s): admin. Your role: {user_role(user) if user else 'public'}",
        )
    return slug


def _shape(slug: str, data):
    """Strip credentials from user records before they leave the service."""
    if slug.lower() != "users" or data is None:
        return data
    if isinstance(data, list):
        return [public_user(r) for r in data]
    return public_user(data)


@router.get("/{slug}")
def get_records(
    slug: str,
    id: Optional[str] = Query(default=None),
    key: Optional[str] = Query(default=None),
    value: Optional[str] = Query(default=None),
    db: DatabaseService = Depends(get_database),
    user: Optional[Dict[str, Any]] = Depends(get_user_or_public),
):
    table = _collection(slug, user)
    if id:
        result = db.read(id, table)
        if not result:
            raise HTTPException(status_code=404, detail="Record not found")
    elif key and value is not None:
        result = db.get_items_by_key_value(key, value, table)
        if not result:
            raise HTTPException(status_code=404, detail="No records found")
    else:
        result = db.read_all(table)
    return {"success": True, "data": _shape(table, result)}


@router.post("/{slug}", status_code=status.HTTP_201_CREATED)
def create_record(
    slug: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(get_current_user),
):
    table = _collection(slug, user, write=True)
    if not payload:
        raise HTTPException(status_code=400, detail="Request body is required")
    now = now_utc().isoformat()
    record = db.create(
        {**payload, "created_at": now, "created_by": user["id"], "updated_at": now, "updated_by": user["id"]},
        table,
    )
    logger.info("Created %s record %s", table, record.get("id"))
    return {"success": True, "data": _shape(table, record), "message": "Record created successfully!"}


@router.put("/{slug}")
def update_record(
    slug: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(require_admin),
):
    table = _collection(slug, user)
    if not payload or not payload.get("id"):
        raise HTTPException(status_code=400, detail="Request body with id is required")
    record_id = str(payload["id"])
    existing = db.read(record_id, table)
    if not existing:
        raise HTTPException(status_code=404, detail="Record not found")
    changes = {**payload, "updated_at": now_utc().isoformat(), "updated_by": user["id"]}
    updated = db.update(record_id, changes, table)
    if not updated:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"success": True, "data": _shape(table, updated), "message": "Record updated successfully!"}


@router.delete("/{slug}")
def delete_record(
    slug: str,
    id: Optional[str] = Query(default=None),
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(require_admin),
):
    table = _collection(slug, user)
    if not id:
        raise HTTPException(status_code=400, detail="Record ID is required")
    if not db.read(id, table):
        raise HTTPException(status_code=404, detail="Record not found")
    db.delete(id, table)
    logger.info("Deleted %s record %s", table, id)
    return {"success": True, "message": "Record deleted successfully!", "data": {"id": id}}
