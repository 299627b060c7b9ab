"""
Shop mailer: the customer-facing emails sent by the account and checkout flows.

Each method renders a Jinja2 template from the transactional email service's
template directory and sends it through the configured provider. Failures are
reported in the returned dict and never raised, so callers can treat email as
best-effort.
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Mapping, Optional

from jinja2 import TemplateError

from arcana.services.transactional_email_service import (
    TransactionalEmailService,
    get_transactional_email_service,
)
from arcana.utils.runtime import app_url

logger = logging.getLogger(__name__)


def _money(value: Any) -> str:
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return "0.00"


def _decode(value: Any, default):
    if isinstance(value, str):
        try:
            return json.loads(value) if value.strip() else default
        except ValueError:
            return default
    return value if value is not None else default


def build_order_details(order: Mapping[str, Any], overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Assemble the order-confirmation context from a stored order record.

    ``overrides`` carries client-supplied presentation values (customer name,
    formatted date) and wins over what is derived from the record.
    """
    items: List[Dict[str, Any]] = _decode(order.get("items"), [])
    created = order.get("created_at")
    if isinstance(created, datetime):
        created = created.strftime("%Y-%m-%d")
    elif isinstance(created, str):
        created = created[:10]
    details = {
        "customer_name": order.get("cst_name") or "",
        "order_id": order.get("uid") or order.get("id"),
        "order_date": created or "",
        "items": items,
        "subtotal": _money(order.get("subtotal")),
        "shipping_cost": _money(order.get("shipping")),
        "total": _money(order.get("amount")),
        "currency": (order.get("currency") or "eur").upper(),
        "shipping_address": _decode(order.get("shipping_address"), {}) or {},
    }
    for key, value in (overrides or {}).items():
        if value is not None and key in details:
            details[key] = value
    return details


class ShopMailer:

    def __init__(self, email_service: Optional[TransactionalEmailService] = None):
        self.email_service = email_service or get_transactional_email_service()

    @property
    def company_name(self) -> str:
        return self.email_service.config.from_name

    async def _send(self, to: str, subject: str, template: str, context: Dict[str, Any]) -> Dict[str, Any]:
        context = {"company_name": self.company_name, "company_url": app_url(), **context}
        try:
            html, text = self.email_service.render_template(template, context)
        except TemplateError as e:
            logger.error("Failed to render %s email: %s", template, e)
            return {"success": False, "error": f"Template rendering failed for {template}: {e}"}
        return await self.email_service.send_email(to, subject, html, text)

    async def send_password_reset_email(self, to: str, reset_code: str, user_display_name: Optional[str] = None):
        return await self._send(
            to,
            "Password Reset Code",
            "password_reset",
            {"reset_code": reset_code, "user_display_name": user_display_name},
        )

    async def send_welcome_email(self, to: str, user_display_name: Optional[str]):
        return await self._send(
            to,
            f"Welcome to {self.company_name}!",
            "welcome",
            {"user_display_name": user_display_name, "login_url": f"{app_url()}/auth/login"},
        )

    async def send_email_verification(self, to: str, verification_code: str, user_display_name: Optional[str] = None):
        return await self._send(
            to,
            "Verify Your Email Address",
            "email_verification",
            {"verification_code": verification_code, "user_display_name": user_display_name},
        )

    async def send_order_confirmation_email(self, to: str, order_details: Mapping[str, Any]):
        details = dict(order_details)
        return await self._send(
            to,
            f"Order Confirmation #{details.get('order_id')}",
            "order_confirmation",
            {**details, "order_url": f"{app_url()}/shop/checkout/success?order={details.get('order_id')}"},
        )

    async def test_connection(self) -> Dict[str, Any]:
        return await self.email_service.test_connection()


def get_mailer() -> ShopMailer:
    return ShopMailer()


def send_sync(coro: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
    """Run a mailer coroutine from synchronous code (scripts, sync handlers)."""
    return asyncio.run(coro)
