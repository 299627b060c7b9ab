"""
Shop catalog endpoints.

Listing, search and categories are readable by any session (or the public
bypass); catalog changes, stats and bulk operations are admin-only.
"""
import logging
import math
from typing import Optional, Dict, Any, List, Tuple

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from arcana.api.deps import get_database, get_user_or_public, require_admin
from arcana.db import schemas
from arcana.db.database import DatabaseService
from arcana.db.models import now_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shop", tags=["shop"])

ITEMS_TABLE = "shop_items"
MAX_PAGE_SIZE = 100
_TEXT_FIELDS = ("name", "description", "category", "image")
_IMMUTABLE_FIELDS = ("id", "created_at", "created_by")
SORT_OPTIONS = ("price_asc", "price_desc", "name", "newest")


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_price(value: Any) -> float:
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail="Price must be a valid positive number.")
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Price must be a valid positive number.")
    if math.isnan(price) or math.isinf(price) or price < 0:
        raise HTTPException(status_code=400, detail="Price must be a valid positive number.")
    return price


def _parse_stock(value: Any) -> int:
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail="Stock must be a non-negative integer.")
    try:
        stock = int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Stock must be a non-negative integer.")
    if stock < 0 or (isinstance(value, float) and value != stock):
        raise HTTPException(status_code=400, detail="Stock must be a non-negative integer.")
    return stock


_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise HTTPException(status_code=400, detail="is_active must be true or false.")


def _clean_changes(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a partial item update: drop nulls and immutable keys, trim text, validate numbers."""
    changes = {k: v for k, v in data.items() if v is not None and k not in _IMMUTABLE_FIELDS}
    for field in _TEXT_FIELDS:
        if isinstance(changes.get(field), str):
            changes[field] = changes[field].strip()
    if "price" in changes:
        changes["price"] = _parse_price(changes["price"])
    if "stock" in changes:
        changes["stock"] = _parse_stock(changes["stock"])
    if "is_active" in changes:
        changes["is_active"] = _parse_flag(changes["is_active"])
    return changes


def _paginate(items: List[Dict[str, Any]], page: int, limit: int) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    start = (page - 1) * limit
    end = start + limit
    pagination = schemas.Pagination(
        current_page=page,
        total_items=len(items),
        total_pages=math.ceil(len(items) / limit),
        has_next=end < len(items),
        has_prev=page > 1,
    )
    return items[start:end], pagination.model_dump()


def _matches_text(item: Dict[str, Any], term: str, fields=("name", "description")) -> bool:
    term = term.lower()
    return any(term in str(item.get(f) or "").lower() for f in fields)


def _category_of(item: Dict[str, Any]) -> str:
    return str(item.get("category") or "").strip()


def _price(item: Dict[str, Any]) -> float:
    try:
        return float(item.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0


def _stock(item: Dict[str, Any]) -> int:
    try:
        return int(item.get("stock") or 0)
    except (TypeError, ValueError):
        return 0


@router.get("/items")
def list_items(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    db: DatabaseService = Depends(get_database),
    user=Depends(get_user_or_public),
):
    items = db.read_all(ITEMS_TABLE)
    if category:
        items = [i for i in items if _category_of(i).lower() == category.strip().lower()]
    if search:
        items = [i for i in items if _matches_text(i, search.strip())]
    data, pagination = _paginate(items, page, limit)
    return {"success": True, "data": data, "pagination": pagination}


@router.post("/items", status_code=status.HTTP_201_CREATED)
def create_item(
    payload: Dict[str, Any] = Body(...),
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(require_admin),
):
    missing = [f for f in ("name", "price") if _is_missing(payload.get(f))]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    now = now_utc().isoformat()
    item = {
        "name": str(payload["name"]).strip(),
        "description": str(payload.get("description") or "").strip(),
        "price": _parse_price(payload["price"]),
        "category": str(payload.get("category") or "").strip() or "general",
        "image": str(payload.get("image") or "").strip(),
        "stock": _parse_stock(payload.get("stock") or 0),
        "is_active": _parse_flag(payload["is_active"]) if payload.get("is_active") is not None else True,
        "created_at": now,
        "created_by": user["id"],
        "updated_at": now,
        "updated_by": user["id"],
    }
    created = db.create(item, ITEMS_TABLE)
    logger.info("Created shop item %s (%s)", created.get("id"), created.get("name"))
    return {"success": True, "data": created, "message": "Item created successfully!"}


@router.get("/items/{item_id}")
def get_item(item_id: str, db: DatabaseService = Depends(get_database), user=Depends(get_user_or_public)):
    item = db.read(item_id, ITEMS_TABLE)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found.")
    return {"success": True, "data": item}


@router.api_route("/items/{item_id}", methods=["PUT", "PATCH"])
def update_item(
    item_id: str,
    payload: Dict[str, Any] = Body(...),
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(require_admin),
):
    if not db.read(item_id, ITEMS_TABLE):
        raise HTTPException(status_code=404, detail="Item not found.")
    changes = _clean_changes(payload)
    if "name" in changes and not changes["name"]:
        raise HTTPException(status_code=400, detail="Name cannot be empty.")
    changes.update(updated_at=now_utc().isoformat(), updated_by=user["id"])
    updated = db.update(item_id, changes, ITEMS_TABLE)
    return {"success": True, "data": updated, "message": "Item updated successfully!"}


@router.delete("/items/{item_id}")
def delete_item(item_id: str, db: DatabaseService = Depends(get_database), user: Dict[str, Any] = Depends(require_admin)):
    existing = db.read(item_id, ITEMS_TABLE)
    if not existing:
        raise HTTPException(status_code=404, detail="Item not found.")
    db.delete(item_id, ITEMS_TABLE)
    logger.info("Deleted shop item %s", item_id)
    return {"success": True, "message": "Item deleted successfully!", "deleted_item": existing}


@router.get("/categories")
def list_categories(db: DatabaseService = Depends(get_database), user=Depends(get_user_or_public)):
    items = db.read_all(ITEMS_TABLE)
    counts: Dict[str, Dict[str, Any]] = {}
    for item in items:
        name = _category_of(item)
        if not name:
            continue
        entry = counts.setdefault(name, {"name": name, "count": 0, "active_count": 0})
        entry["count"] += 1
        if item.get("is_active") is not False:
            entry["active_count"] += 1
    if not counts:
        return {"success": True, "data": [], "total_categories": 0, "message": "No categories found."}
    data = sorted(counts.values(), key=lambda c: c["count"], reverse=True)
    return {"success": True, "data": data, "total_categories": len(data)}


@router.get("/search")
def search_items(
    q: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    in_stock: bool = Query(default=False),
    sort: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    db: DatabaseService = Depends(get_database),
    user=Depends(get_user_or_public),
):
    """Storefront search: active items only, with price/stock filters and sorting."""
    if sort and sort not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"Invalid sort. Valid options: {', '.join(SORT_OPTIONS)}")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise HTTPException(status_code=400, detail="min_price cannot exceed max_price")

    items = [i for i in db.read_all(ITEMS_TABLE) if i.get("is_active") is not False]
    if q:
        items = [i for i in items if _matches_text(i, q.strip(), ("name", "description", "category"))]
    if category:
        items = [i for i in items if _category_of(i).lower() == category.strip().lower()]
    if min_price is not None:
        items = [i for i in items if _price(i) >= min_price]
    if max_price is not None:
        items = [i for i in items if _price(i) <= max_price]
    if in_stock:
        items = [i for i in items if _stock(i) > 0]

    if sort == "price_asc":
        items.sort(key=_price)
    elif sort == "price_desc":
        items.sort(key=_price, reverse=True)
    elif sort == "name":
        items.sort(key=lambda i: str(i.get("name") or "").lower())
    elif sort == "newest":
        items.sort(key=lambda i: str(i.get("created_at") or ""), reverse=True)

    data, pagination = _paginate(items, page, limit)
    return {"success": True, "data": data, "pagination": pagination}


@router.get("/stats")
def catalog_stats(db: DatabaseService = Depends(get_database), user: Dict[str, Any] = Depends(require_admin)):
    items = db.read_all(ITEMS_TABLE)
    active = [i for i in items if i.get("is_active") is not False]
    prices = [_price(i) for i in items]
    return {
        "success": True,
        "data": {
            "total_items": len(items),
            "active_items": len(active),
            "inactive_items": len(items) - len(active),
            "out_of_stock": sum(1 for i in items if _stock(i) <= 0),
            "inventory_value": round(sum(_price(i) * _stock(i) for i in items), 2),
            "average_price": round(sum(prices) / len(prices), 2) if prices else 0.0,
            "categories": len({_category_of(i) for i in items if _category_of(i)}),
        },
    }


@router.post("/bulk")
def bulk_items(
    payload: schemas.BulkItemRequest,
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(require_admin),
):
    if payload.operation == "update" and not payload.data:
        raise HTTPException(status_code=400, detail="Update operation requires data")
    changes: Dict[str, Any] = {}
    if payload.operation == "activate":
        changes = {"is_active": True}
    elif payload.operation == "deactivate":
        changes = {"is_active": False}
    elif payload.operation == "update":
        changes = _clean_changes(payload.data)

    results = []
    for item_id in dict.fromkeys(payload.item_ids):
        if not db.read(item_id, ITEMS_TABLE):
            results.append({"id": item_id, "success": False, "error": "Item not found."})
            continue
        if payload.operation == "delete":
            ok = db.delete(item_id, ITEMS_TABLE)
        else:
            stamped = {**changes, "updated_at": now_utc().isoformat(), "updated_by": user["id"]}
            ok = db.update(item_id, stamped, ITEMS_TABLE) is not None
        results.append({"id": item_id, "success": bool(ok)} if ok else {"id": item_id, "success": False, "error": "Operation failed."})

    succeeded = sum(1 for r in results if r["success"])
    logger.info("Bulk %s on %d items: %d succeeded", payload.operation, len(results), succeeded)
    return {
        "success": succeeded == len(results),
        "operation": payload.operation,
        "results": results,
        "summary": {"total": len(results), "succeeded": succeeded, "failed": len(results) - succeeded},
    }
