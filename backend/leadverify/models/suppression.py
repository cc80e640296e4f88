# backend/leadverify/models/suppression.py
from sqlalchemy import Column, String, DateTime, ForeignKey, Text

from leadverify.db import Base
from .common import new_id, utcnow


class SuppressionEntry(Base):
    """A do-not-contact entry. ``campaign_id`` NULL means global."""

    __tablename__ = "suppression_list"

    id = Column(String(36), primary_key=True, default=new_id)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True, index=True)

    email = Column(String, nullable=True)
    email_lower = Column(String, nullable=True, index=True)
    cav_id = Column(String, nullable=True, index=True)
    cav_user_id = Column(String, nullable=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    # set only when first name, last name and company were all present
    name_company_hash = Column(String(64), nullable=True, index=True)

    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
