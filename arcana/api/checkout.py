"""
Checkout endpoints: Stripe PaymentIntent creation and order recording.
"""
import logging
import random
import time
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, status

from arcana.api.deps import get_database, require_internal_secret
from arcana.db import schemas
from arcana.db.database import DatabaseService
from arcana.db.models import now_utc
from arcana.services import payment_service
from arcana.services.mailer import ShopMailer, build_order_details, get_mailer
from arcana.services.payment_service import PaymentError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["checkout"])

ORDERS_TABLE = "orders"


def generate_order_uid() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def _to_cents(amount: float) -> int:
    return int(round(float(amount) * 100))


@router.post("/stripe")
def create_payment_intent(payload: schemas.PaymentIntentRequest, db: DatabaseService = Depends(get_database)):
    try:
        if payload.items:
            amount = payment_service.cart_total_cents(
                db, [line.model_dump() for line in payload.items], payload.shipping
            )
        else:
            amount = payload.amount
        if not amount or amount <= 0:
            raise HTTPException(status_code=400, detail="Amount must be greater than zero")
        intent = payment_service.create_payment_intent(
            amount,
            currency=payload.currency,
            email=payload.email,
            payment_method_type=payload.payment_method_type,
        )
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"client_secret": intent.client_secret, "payment_intent_id": intent.id, "amount": amount}


def _catalog_total_cents(db: DatabaseService, order: schemas.OrderCreate) -> int:
    """Price the order's lines from the catalog, ignoring the prices the client sent."""
    if any(not line.id for line in order.items):
        raise HTTPException(status_code=400, detail="Order items must reference catalog items")
    lines = [{"id": line.id, "quantity": line.quantity} for line in order.items]
    return payment_service.cart_total_cents(db, lines, _to_cents(order.shipping))


def _verify_payment(db: DatabaseService, order: schemas.OrderCreate) -> str:
    """Return the payment status to store; raise 402 for an unpaid or mismatched intent."""
    if not order.tx or not payment_service.is_configured():
        return "unverified"
    try:
        intent = payment_service.retrieve_payment_intent(order.tx)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    intent_status = getattr(intent, "status", None)
    if intent_status != "succeeded":
        logger.warning("Checkout rejected for %s: payment status %s", order.tx, intent_status)
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="Payment not completed")
    try:
        expected = _catalog_total_cents(db, order)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    received = getattr(intent, "amount_received", None) or getattr(intent, "amount", None)
    if received is None or int(received) != _to_cents(order.amount) or int(received) != expected:
        logger.warning(
            "Checkout rejected for %s: received %s, order %s, catalog %s",
            order.tx, received, _to_cents(order.amount), expected,
        )
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="Payment amount mismatch")
    return intent_status


@router.post("/checkout", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_internal_secret)])
async def checkout(
    payload: schemas.CheckoutRequest,
    db: DatabaseService = Depends(get_database),
    mailer: ShopMailer = Depends(get_mailer),
):
    order = payload.order_data
    if order.tx:
        existing = db.get_items_by_key_value("tx", order.tx, ORDERS_TABLE)
        if existing:
            logger.info("Checkout for %s already recorded as %s", order.tx, existing[0].get("uid"))
            return {"success": True, "data": existing[0], "duplicate": True, "email_sent": False}

    payment_status = _verify_payment(db, order)
    record = order.to_record()
    record["uid"] = record.get("uid") or generate_order_uid()
    record["payment_status"] = payment_status
    if payment_status == "succeeded" and record.get("status") == "pending":
        record["status"] = "paid"
    now = now_utc().isoformat()
    record.update(created_at=now, updated_at=now)
    if record.get("cst_email"):
        record["cst_email"] = record["cst_email"].strip().lower()

    created = db.create(record, ORDERS_TABLE)
    logger.info("Recorded order %s (tx=%s, payment=%s)", created.get("uid"), order.tx, payment_status)

    email_payload = payload.email_payload or {}
    recipient = created.get("cst_email") or email_payload.get("to")
    email_sent = False
    if recipient:
        result = await mailer.send_order_confirmation_email(recipient, build_order_details(created, email_payload))
        email_sent = bool(result.get("success"))
        if not email_sent:
            logger.warning(f"Order confirmation for {created.get('uid')} not sent: {result.get('error')}")

    return {"success": True, "data": created, "email_sent": email_sent}
