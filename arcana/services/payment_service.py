"""
Stripe payments: PaymentIntent creation and verification plus server-side cart pricing.
"""
import logging
import os
from typing import Any, Dict, Iterable, Mapping, Optional

import stripe

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Raised when the payment backend rejects a request or is unavailable."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentConfig:
    def __init__(self):
        self.secret_key = os.getenv("STRIPE_SECRET_KEY", "")
        self.currency = os.getenv("STRIPE_CURRENCY", "eur").lower()

    def is_configured(self) -> bool:
        return bool(self.secret_key)


def is_configured() -> bool:
    return PaymentConfig().is_configured()


def _configured_client() -> PaymentConfig:
    config = PaymentConfig()
    if not config.is_configured():
        raise PaymentError("Payment provider not configured", status_code=503)
    stripe.api_key = config.secret_key
    return config


def create_payment_intent(
    amount: int,
    currency: Optional[str] = None,
    email: Optional[str] = None,
    payment_method_type: str = "card",
    metadata: Optional[Dict[str, str]] = None,
):
    """Create a PaymentIntent for ``amount`` in the currency's minor unit."""
    config = _configured_client()
    if not isinstance(amount, int) or amount <= 0:
        raise PaymentError("Amount must be a positive integer")
    params: Dict[str, Any] = {
        "amount": amount,
        "currency": (currency or config.currency).lower(),
        "payment_method_types": [payment_method_type],
    }
    if email:
        params["receipt_email"] = email
    if metadata:
        params["metadata"] = metadata
    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as e:
        logger.warning("Stripe PaymentIntent creation failed: %s", e)
        raise PaymentError(getattr(e, "user_message", None) or str(e)) from e
    logger.info("Created PaymentIntent %s for %s %s", intent.id, amount, params["currency"])
    return intent


def retrieve_payment_intent(payment_intent_id: str):
    _configured_client()
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        logger.warning("Stripe PaymentIntent lookup failed for %s: %s", payment_intent_id, e)
        raise PaymentError(f"Unable to verify payment {payment_intent_id}") from e


def cart_total_cents(db, items: Iterable[Mapping[str, Any]], shipping_cents: int = 0) -> int:
    """Price a cart from catalog records, ignoring any client-side prices.

    Each line is ``{"id", "quantity"}``. Unknown and inactive items raise
    ``PaymentError`` so a stale cart can't be charged.
    """
    total = 0
    for line in items:
        item_id = str(line["id"])
        quantity = int(line.get("quantity") or 1)
        if quantity < 1:
            raise PaymentError(f"Invalid quantity for item {item_id}")
        record = db.read(item_id, "shop_items")
        if not record or record.get("is_active") is False:
            raise PaymentError(f"Item {item_id} is not available")
        total += int(round(float(record.get("price") or 0) * 100)) * quantity
    return total + max(int(shipping_cents or 0), 0)
