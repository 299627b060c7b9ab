"""Business logic services package with public service helpers."""

from .transactional_email_service import (
    EmailProvider,
    TransactionalEmailConfig,
    TransactionalEmailService,
    get_transactional_email_service,
    reset_transactional_email_service_for_tests,
)
from .mailer import ShopMailer, build_order_details, get_mailer
from .payment_service import PaymentConfig, PaymentError

__all__ = [
    "EmailProvider",
    "TransactionalEmailConfig",
    "TransactionalEmailService",
    "get_transactional_email_service",
    "reset_transactional_email_service_for_tests",
    "ShopMailer",
    "build_order_details",
    "get_mailer",
    "PaymentConfig",
    "PaymentError",
]
