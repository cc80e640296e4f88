# backend/leadverify/models/account.py
from sqlalchemy import Column, String, DateTime

from leadverify.db import Base
from .common import new_id, utcnow


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False, index=True)
    domain = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
