"""
Admin order management.
"""
import json
import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from arcana.api.deps import get_database, require_admin
from arcana.db import schemas
from arcana.db.database import DatabaseService
from arcana.db.models import now_utc
from arcana.services.mailer import ShopMailer, build_order_details, get_mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"], dependencies=[Depends(require_admin)])

ORDERS_TABLE = "orders"


def decode_order(record: Dict[str, Any]) -> Dict[str, Any]:
    """Return the order with its JSON-encoded fields parsed."""
    order = dict(record)
    for field in ("items", "shipping_address"):
        value = order.get(field)
        if isinstance(value, str) and value.strip():
            try:
                order[field] = json.loads(value)
            except ValueError:
                logger.warning("Order %s has malformed %s", order.get("id"), field)
    return order


def _get_or_404(db: DatabaseService, order_id: str) -> Dict[str, Any]:
    order = db.read(order_id, ORDERS_TABLE)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("")
def list_orders(status: Optional[str] = Query(default=None), db: DatabaseService = Depends(get_database)):
    orders = db.read_all(ORDERS_TABLE)
    if status:
        orders = [o for o in orders if (o.get("status") or "").lower() == status.strip().lower()]
    orders.sort(key=lambda o: str(o.get("created_at") or ""), reverse=True)
    return {"success": True, "data": orders, "total": len(orders)}


@router.get("/{order_id}")
def get_order(order_id: str, db: DatabaseService = Depends(get_database)):
    return {"success": True, "data": decode_order(_get_or_404(db, order_id))}


@router.patch("/{order_id}")
def update_order(
    order_id: str,
    payload: schemas.OrderUpdate,
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(require_admin),
):
    _get_or_404(db, order_id)
    changes = payload.model_dump(exclude_none=True)
    if "status" in changes:
        changes["status"] = changes["status"].strip().lower()
        if changes["status"] not in schemas.ORDER_STATUSES:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Valid options: {', '.join(schemas.ORDER_STATUSES)}",
            )
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")
    changes["updated_at"] = now_utc().isoformat()
    updated = db.update(order_id, changes, ORDERS_TABLE)
    logger.info("Order %s updated by %s: %s", order_id, user.get("id"), sorted(changes))
    return {"success": True, "data": decode_order(updated), "message": "Order updated successfully!"}


@router.delete("/{order_id}")
def delete_order(order_id: str, db: DatabaseService = Depends(get_database)):
    _get_or_404(db, order_id)
    db.delete(order_id, ORDERS_TABLE)
    logger.info("Deleted order %s", order_id)
    return {"success": True, "message": "Order deleted successfully!", "data": {"id": order_id}}


@router.post("/{order_id}/resend-confirmation")
async def resend_confirmation(
    order_id: str,
    db: DatabaseService = Depends(get_database),
    mailer: ShopMailer = Depends(get_mailer),
):
    order = _get_or_404(db, order_id)
    if not order.get("cst_email"):
        raise HTTPException(status_code=400, detail="Order has no customer email")
    result = await mailer.send_order_confirmation_email(order["cst_email"], build_order_details(order))
    if not result.get("success"):
        logger.warning(f"Resending confirmation for order {order_id} failed: {result.get('error')}")
        raise HTTPException(status_code=502, detail="Failed to send confirmation email")
    return {"success": True, "message": f"Confirmation sent to {order['cst_email']}"}
