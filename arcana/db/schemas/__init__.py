"""
Domain-split Pydantic schemas with a compatibility aggregator.
"""

from .users import (
    LoginRequest,
    RegisterRequest,
    ForgotPasswordRequest,
    VerifyCodeRequest,
    ResetPasswordRequest,
    UserAdminUpdate,
)
from .shop import Pagination, BulkItemRequest
from .orders import (
    ORDER_STATUSES,
    OrderLine,
    ShippingAddress,
    OrderCreate,
    CheckoutRequest,
    CartLine,
    PaymentIntentRequest,
    OrderUpdate,
)

__all__ = [
    # users
    "LoginRequest",
    "RegisterRequest",
    "ForgotPasswordRequest",
    "VerifyCodeRequest",
    "ResetPasswordRequest",
    "UserAdminUpdate",
    # shop
    "Pagination",
    "BulkItemRequest",
    # orders
    "ORDER_STATUSES",
    "OrderLine",
    "ShippingAddress",
    "OrderCreate",
    "CheckoutRequest",
    "CartLine",
    "PaymentIntentRequest",
    "OrderUpdate",
]
