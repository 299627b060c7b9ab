from sqlalchemy import Column, String, DateTime
from .base import Base, now_utc, new_id


class User(Base):
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    # Argon2id encoded hash; the salt lives inside the encoded string
    password_hash = Column(String, nullable=True)
    # 'user'|'staff'|'admin'
    role = Column(String, nullable=False, default='user')
    wallet_address = Column(String, nullable=True)
    wallet_type = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
