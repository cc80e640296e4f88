# backend/leadverify/models/audit.py
from sqlalchemy import Column, String, DateTime, JSON

from leadverify.db import Base
from .common import new_id, utcnow


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=new_id)
    campaign_id = Column(String(36), nullable=True, index=True)
    action = Column(String(64), nullable=False)
    entity_type = Column(String(32), nullable=False)
    entity_ids = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)
    actor = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
