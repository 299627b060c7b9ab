from sqlalchemy import Column, String, Text, Float, Integer, Boolean, DateTime
from .base import Base, now_utc, new_id


class ShopItem(Base):
    __tablename__ = 'shop_items'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True, default='')
    price = Column(Float, nullable=False, default=0.0)
    category = Column(String, nullable=True, default='general', index=True)
    image = Column(String, nullable=True, default='')
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=now_utc)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
    updated_by = Column(String, nullable=True)
