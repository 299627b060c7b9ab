"""
Domain-split SQLAlchemy models with a compatibility aggregator.

Exposes `Base`, `now_utc`, and the ORM classes for the canonical tables.
Generic collections created at runtime are not declared here.
"""

from .base import Base, now_utc, new_id  # re-export

# Domain models
from .users import User
from .shop import ShopItem
from .orders import Order

__all__ = [
    # base
    "Base",
    "now_utc",
    "new_id",
    # accounts
    "User",
    # catalog/orders
    "ShopItem",
    "Order",
]
