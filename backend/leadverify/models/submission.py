# backend/leadverify/models/submission.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint

from leadverify.db import Base
from .common import new_id, utcnow


class LeadSubmission(Base):
    __tablename__ = "lead_submissions"

    id = Column(String(36), primary_key=True, default=new_id)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, unique=True)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), default=utcnow)


class AccountCapStatus(Base):
    """
    Per (campaign, account) summary. ``cap`` is the operator override; the
    counters are recomputed from contacts and submissions and may be stale.
    """

    __tablename__ = "account_cap_status"

    id = Column(String(36), primary_key=True, default=new_id)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    cap = Column(Integer, nullable=True)
    submitted_count = Column(Integer, nullable=False, default=0)
    reserved_count = Column(Integer, nullable=False, default=0)
    eligible_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("campaign_id", "account_id", name="uq_account_cap_status_campaign_account"),
    )
