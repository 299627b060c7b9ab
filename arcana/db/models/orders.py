from sqlalchemy import Column, String, Text, Float, DateTime
from .base import Base, now_utc, new_id


class Order(Base):
    __tablename__ = 'orders'
    id = Column(String(36), primary_key=True, default=new_id)
    uid = Column(String, nullable=False, index=True)
    cst_email = Column(String, nullable=True, index=True)
    cst_name = Column(String, nullable=True)
    # Stripe PaymentIntent id; checkout dedupes on it
    tx = Column(String, nullable=True, index=True)
    amount = Column(Float, nullable=True)
    subtotal = Column(Float, nullable=True)
    shipping = Column(Float, nullable=True)
    currency = Column(String, nullable=True, default='eur')
    method = Column(String, nullable=True)
    status = Column(String, nullable=False, default='pending')
    payment_status = Column(String, nullable=True)
    tracking = Column(String, nullable=True, default='')
    delivery_notes = Column(Text, nullable=True)
    ref = Column(String, nullable=True)
    # JSON-encoded strings, kept as text so every provider stores them the same way
    items = Column(Text, nullable=True)
    shipping_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
